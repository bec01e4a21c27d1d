"""
Read-only reconstruction of a submitted attempt for self review.

Correctness here is a display heuristic. The score that counts is the one
the API computed; free-text answers in particular are graded server side.
"""
from enum import Enum
from html import escape
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from constants.messages import Messages
from models.attempt import AttemptRecord
from models.quiz import QuestionType
from utils.formatting import format_score


class ReviewStatus(str, Enum):
    UNANSWERED = "unanswered"
    CORRECT = "correct"
    INCORRECT = "incorrect"
    UNGRADED = "ungraded"  # answered, but no key answer to compare with


def _same_code(answer: str, key: str) -> bool:
    return answer == key


def _same_text(answer: str, key: str) -> bool:
    return answer.strip().lower() == key.strip().lower()


_COMPARATORS: Dict[QuestionType, Callable[[str, str], bool]] = {
    QuestionType.MULTIPLE_CHOICE: _same_code,
    QuestionType.TRUE_FALSE: _same_code,
    QuestionType.SHORT_ANSWER: _same_text,
    QuestionType.ESSAY: _same_text,
}

_missing = set(QuestionType) - set(_COMPARATORS)
if _missing:
    raise RuntimeError(f"No answer comparator for question types: {sorted(t.value for t in _missing)}")


def is_answer_correct(question_type: QuestionType, answer: str, key: str) -> bool:
    return _COMPARATORS[question_type](answer, key)


class ReviewOption(BaseModel):
    text: str
    code: str
    is_selected: bool = False
    is_correct: bool = False


class ReviewItem(BaseModel):
    index: int
    question_id: str
    question_type: Optional[QuestionType] = None
    question_text: str = ""
    answer: str = ""
    key_answer: str = ""
    status: ReviewStatus = ReviewStatus.UNANSWERED
    flagged: bool = False
    score: Optional[float] = None
    max_score: Optional[float] = None
    options: List[ReviewOption] = Field(default_factory=list)
    correct_option_text: Optional[str] = None

    @property
    def is_correct(self) -> Optional[bool]:
        if self.status == ReviewStatus.CORRECT:
            return True
        if self.status == ReviewStatus.INCORRECT:
            return False
        return None


class ReviewSheet(BaseModel):
    attempt_id: str
    attempt_no: int = 0
    total_score: Optional[float] = None
    is_passed: Optional[bool] = None
    items: List[ReviewItem] = Field(default_factory=list)

    @property
    def answered_count(self) -> int:
        return sum(1 for item in self.items if item.answer)

    @property
    def correct_count(self) -> int:
        return sum(1 for item in self.items if item.status == ReviewStatus.CORRECT)

    @property
    def flagged_count(self) -> int:
        return sum(1 for item in self.items if item.flagged)


def _at(values: list, index: int, default=None):
    if index < len(values) and values[index] is not None:
        return values[index]
    return default


def _review_status(question_type: Optional[QuestionType], answer: str, key: str) -> ReviewStatus:
    if not answer:
        return ReviewStatus.UNANSWERED
    if not key or question_type is None:
        return ReviewStatus.UNGRADED
    if is_answer_correct(question_type, answer, key):
        return ReviewStatus.CORRECT
    return ReviewStatus.INCORRECT


def build_review_item(record: AttemptRecord, index: int) -> ReviewItem:
    question_type = _at(record.question_type, index)
    answer = _at(record.answer, index, "")
    key = _at(record.key_answer, index, "")

    options = []
    correct_option_text = None
    if question_type is not None and not question_type.is_free_text:
        texts = _at(record.options_text, index, [])
        codes = _at(record.options_code, index, [])
        for i, text in enumerate(texts):
            code = _at(codes, i) or text
            options.append(ReviewOption(
                text=text,
                code=code,
                is_selected=answer == code,
                is_correct=bool(key) and key == code,
            ))
        if key:
            correct_option_text = next((o.text for o in options if o.code == key), key)

    return ReviewItem(
        index=index,
        question_id=record.question_order[index],
        question_type=question_type,
        question_text=_at(record.question_text, index, ""),
        answer=answer,
        key_answer=key,
        status=_review_status(question_type, answer, key),
        flagged=bool(_at(record.flag, index, False)),
        score=_at(record.raw_score, index),
        max_score=_at(record.question_score, index),
        options=options,
        correct_option_text=correct_option_text,
    )


def build_review(record: AttemptRecord) -> ReviewSheet:
    return ReviewSheet(
        attempt_id=record.id,
        attempt_no=record.attempt_no,
        total_score=record.final_score if record.final_score is not None else record.total_score,
        is_passed=record.is_passed,
        items=[build_review_item(record, i) for i in range(len(record.question_order))],
    )


_STATUS_KEYS = {
    ReviewStatus.CORRECT: "REVIEW_CORRECT",
    ReviewStatus.INCORRECT: "REVIEW_INCORRECT",
    ReviewStatus.UNANSWERED: "REVIEW_UNANSWERED",
    ReviewStatus.UNGRADED: "REVIEW_UNGRADED",
}


def format_review_item(item: ReviewItem, total: int, lang: str = None) -> str:
    lines = [
        Messages.get("REVIEW_HEADER", lang).format(number=item.index + 1, total=total),
        "",
        escape(item.question_text),
        "",
        f"<b>{Messages.get(_STATUS_KEYS[item.status], lang)}</b>",
    ]

    if item.options:
        for option in item.options:
            if option.is_correct:
                mark = "✅"
            elif option.is_selected:
                mark = "❌"
            else:
                mark = "▫️"
            selected = " ◀️" if option.is_selected else ""
            lines.append(f"{mark} {escape(option.text)}{selected}")
        if item.correct_option_text and item.question_type == QuestionType.MULTIPLE_CHOICE:
            lines.append(Messages.get("REVIEW_CORRECT_ANSWER", lang).format(answer=escape(item.correct_option_text)))
    else:
        if item.answer:
            lines.append(Messages.get("REVIEW_YOUR_ANSWER", lang).format(answer=escape(item.answer)))
        else:
            lines.append(Messages.get("REVIEW_NO_ANSWER", lang))
        if item.key_answer:
            lines.append(Messages.get("REVIEW_CORRECT_ANSWER", lang).format(answer=escape(item.key_answer)))

    if item.score is not None:
        lines.append(f"{format_score(item.score)} / {format_score(item.max_score)}")

    return "\n".join(lines)
