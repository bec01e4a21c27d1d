from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from models.base import ApiModel, as_utc


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"
    ESSAY = "ESSAY"

    @property
    def is_free_text(self) -> bool:
        return self in (QuestionType.SHORT_ANSWER, QuestionType.ESSAY)


class ContentInfo(ApiModel):
    """Display data and schedule window of the quiz content."""
    name: str = ""
    description: Optional[str] = ""
    content_start: Optional[datetime] = None
    content_end: Optional[datetime] = None

    @field_validator("content_start", "content_end")
    @classmethod
    def _utc(cls, value):
        return as_utc(value)


class QuizDefinition(ApiModel):
    """Static parameters of a quiz. Read-only for the whole session."""
    id_content: str = Field(..., description="Quiz content id")
    content: ContentInfo = Field(default_factory=ContentInfo)
    duration_limit: Optional[int] = Field(None, description="Duration limit in minutes, empty or 0 when untimed")
    total_questions: int = 0
    max_point: Optional[float] = None
    passing_score: Optional[float] = None
    attempt_limit: int = 0
    shuffle_questions: bool = False

    @property
    def duration_limit_minutes(self) -> Optional[int]:
        return self.duration_limit or None

    @property
    def name(self) -> str:
        return self.content.name

    @property
    def schedule_window(self):
        return self.content.content_start, self.content.content_end


class QuestionAnswerKey(ApiModel):
    id: Optional[str] = None
    answer: Optional[str] = None
    code_answer: Optional[str] = None


class QuestionDetail(ApiModel):
    """A single question as shown during an attempt."""
    id: str
    id_content: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    question_type: QuestionType
    question_text: str = ""
    max_score: Optional[float] = None
    options_text: List[str] = Field(default_factory=list)
    options_code: List[str] = Field(default_factory=list)
    answers: Optional[QuestionAnswerKey] = None

    @field_validator("options_text", "options_code", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    def option_code(self, index: int) -> str:
        """Code sent to the API for an option; falls back to the option text."""
        if index < len(self.options_code) and self.options_code[index]:
            return self.options_code[index]
        return self.options_text[index]
