from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from models.base import ApiModel, as_utc
from models.quiz import QuestionType


class AttemptStatus(str, Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    GRADED = "GRADED"

    @property
    def is_closed(self) -> bool:
        return self in (AttemptStatus.SUBMITTED, AttemptStatus.GRADED)


class AttemptSummary(ApiModel):
    """One row of the learner's attempt history."""
    id: str
    attempt_no: int = 0
    total_score: Optional[float] = None
    is_passed: Optional[bool] = None
    quiz_start: Optional[datetime] = None
    quiz_end: Optional[datetime] = None

    @field_validator("quiz_start", "quiz_end")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)

    @property
    def is_pending(self) -> bool:
        return self.quiz_end is None or self.total_score is None


class AttemptHistory(ApiModel):
    attempts: List[AttemptSummary] = Field(default_factory=list)

    @field_validator("attempts", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    def pending(self) -> Optional[AttemptSummary]:
        return next((a for a in self.attempts if a.is_pending), None)

    def graded(self) -> List[AttemptSummary]:
        return [a for a in self.attempts if not a.is_pending]


class StartedQuestion(ApiModel):
    question_id: str = Field(..., alias="question_id")
    question_number: Optional[str] = Field(None, alias="question_number")


class StartAttemptResponse(ApiModel):
    success: bool = True
    message: Optional[str] = None
    attempt_id: str
    questions: List[StartedQuestion] = Field(default_factory=list)

    @property
    def question_order(self) -> List[str]:
        return [q.question_id for q in self.questions]


class SaveAnswerRequest(ApiModel):
    id_attempt: str
    id_question: str
    answer: str
    flag: bool = False


class AttemptDetail(ApiModel):
    """
    Server view of one attempt. Every per-question list is aligned to
    question_order. Used for resume, submit results and review.
    """
    id: str
    id_user: Optional[str] = None
    id_content: Optional[str] = None
    question_order: List[str] = Field(default_factory=list)
    question_name: List[Optional[str]] = Field(default_factory=list)
    question_description: List[Optional[str]] = Field(default_factory=list)
    question_text: List[Optional[str]] = Field(default_factory=list)
    options_text: List[Optional[List[str]]] = Field(default_factory=list)
    options_code: List[Optional[List[str]]] = Field(default_factory=list)
    question_type: List[Optional[QuestionType]] = Field(default_factory=list)
    question_score: List[Optional[float]] = Field(default_factory=list)
    key_answer: List[Optional[str]] = Field(default_factory=list)
    answer: List[Optional[str]] = Field(default_factory=list)
    flag: List[Optional[bool]] = Field(default_factory=list)
    raw_score: List[Optional[float]] = Field(default_factory=list)
    attempt_no: int = 0
    status: AttemptStatus = AttemptStatus.PENDING
    total_score: Optional[float] = None
    final_score: Optional[float] = None
    is_passed: Optional[bool] = None
    quiz_start: Optional[datetime] = None
    quiz_end: Optional[datetime] = None

    @field_validator(
        "question_order", "question_name", "question_description", "question_text",
        "options_text", "options_code", "question_type", "question_score",
        "key_answer", "answer", "flag", "raw_score",
        mode="before",
    )
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    @field_validator("quiz_start", "quiz_end")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)

    def answer_at(self, index: int) -> str:
        if index < len(self.answer):
            return self.answer[index] or ""
        return ""

    def flag_at(self, index: int) -> Optional[bool]:
        if index < len(self.flag) and isinstance(self.flag[index], bool):
            return self.flag[index]
        return None

    def first_unanswered_index(self) -> int:
        for index in range(len(self.question_order)):
            if not self.answer_at(index):
                return index
        return 0


# Review endpoint returns the same shape, including key answers
AttemptRecord = AttemptDetail
