from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from models.base import ApiModel, as_utc, utcnow


class AttemptSession(ApiModel):
    """
    Client state of an in-progress attempt.

    Persisted as one JSON document per content id so an attempt can be
    restored after a restart without asking the server.
    """
    attempt_id: str
    content_id: str
    question_order: List[str] = Field(default_factory=list)
    answer_map: Dict[str, str] = Field(default_factory=dict)
    answered_flags: Dict[str, bool] = Field(default_factory=dict)
    unsure_flags: Dict[str, bool] = Field(default_factory=dict)
    current_index: int = 0
    start_time: datetime = Field(default_factory=utcnow)
    duration_limit_minutes: Optional[int] = None
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("start_time", "timestamp")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)

    @field_validator("duration_limit_minutes")
    @classmethod
    def _untimed(cls, value):
        return value or None

    @model_validator(mode="after")
    def _check_invariants(self):
        known = set(self.question_order)
        for name in ("answer_map", "answered_flags", "unsure_flags"):
            unknown = set(getattr(self, name)) - known
            if unknown:
                raise ValueError(f"{name} has questions outside question_order: {sorted(unknown)}")
        self.current_index = self.clamp_index(self.current_index)
        return self

    @property
    def total_questions(self) -> int:
        return len(self.question_order)

    @property
    def current_question_id(self) -> Optional[str]:
        if not self.question_order:
            return None
        return self.question_order[self.current_index]

    def clamp_index(self, index: int) -> int:
        if not self.question_order:
            return 0
        return max(0, min(index, len(self.question_order) - 1))

    def is_answered(self, question_id: str) -> bool:
        return bool(self.answered_flags.get(question_id))

    def is_unsure(self, question_id: str) -> bool:
        return bool(self.unsure_flags.get(question_id))

    def answered_count(self) -> int:
        return sum(1 for q in self.question_order if self.answered_flags.get(q))

    def touch(self):
        self.timestamp = utcnow()
