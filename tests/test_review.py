import pytest

from factories import attempt_detail
from models.quiz import QuestionType
from services.review import (
    _COMPARATORS,
    ReviewStatus,
    build_review,
    format_review_item,
    is_answer_correct,
)


def test_every_question_type_has_a_comparator():
    assert set(_COMPARATORS) == set(QuestionType)


@pytest.mark.parametrize("question_type, answer, key, expected", [
    (QuestionType.MULTIPLE_CHOICE, "b", "b", True),
    (QuestionType.MULTIPLE_CHOICE, "B", "b", False),
    (QuestionType.TRUE_FALSE, "T", "F", False),
    (QuestionType.SHORT_ANSWER, "  JAKARTA ", "jakarta", True),
    (QuestionType.ESSAY, "Fotosintesis", "fotosintesis ", True),
    (QuestionType.SHORT_ANSWER, "Bandung", "Jakarta", False),
])
def test_is_answer_correct(question_type, answer, key, expected):
    assert is_answer_correct(question_type, answer, key) is expected


def test_review_statuses(graded_record):
    sheet = build_review(graded_record)

    assert [item.status for item in sheet.items] == [
        ReviewStatus.CORRECT,
        ReviewStatus.INCORRECT,
        ReviewStatus.UNANSWERED,
    ]
    assert [item.is_correct for item in sheet.items] == [True, False, None]
    assert sheet.answered_count == 2
    assert sheet.correct_count == 1
    assert sheet.flagged_count == 1
    assert sheet.total_score == 33.3


def test_multiple_choice_shows_correct_option_text(graded_record):
    item = build_review(graded_record).items[0]

    assert item.correct_option_text == "4"
    assert [(o.code, o.is_selected, o.is_correct) for o in item.options] == [
        ("a", False, False),
        ("b", True, True),
        ("c", False, False),
    ]


def test_free_text_has_no_options(graded_record):
    item = build_review(graded_record).items[1]

    assert item.options == []
    assert item.correct_option_text is None
    assert item.key_answer == "Jakarta"
    assert item.flagged is True


def test_answer_without_key_is_ungraded():
    record = attempt_detail(
        question_order=["q1"],
        question_type=["ESSAY"],
        question_text=["Jelaskan fotosintesis"],
        answer=["Proses pembuatan makanan"],
        key_answer=[None],
    )
    item = build_review(record).items[0]
    assert item.status == ReviewStatus.UNGRADED
    assert item.is_correct is None


def test_short_lists_do_not_break_the_review():
    record = attempt_detail(question_order=["q1", "q2"], answer=["b"])
    items = build_review(record).items
    assert len(items) == 2
    assert items[1].answer == ""
    assert items[1].status == ReviewStatus.UNANSWERED


def test_format_escapes_question_and_answer():
    record = attempt_detail(
        question_order=["q1"],
        question_type=["SHORT_ANSWER"],
        question_text=["Apa arti <b>?"],
        answer=["<script>"],
        key_answer=["tag"],
    )
    item = build_review(record).items[0]
    text = format_review_item(item, total=1, lang="EN")

    assert "Apa arti &lt;b&gt;?" in text
    assert "&lt;script&gt;" in text
    assert "<script>" not in text
    assert "Question 1 of 1" in text
    assert "Correct answer: tag" in text


def test_format_marks_selected_and_correct_options(graded_record):
    item = build_review(graded_record).items[0]
    text = format_review_item(item, total=3, lang="ID")

    assert "Jawaban Anda benar" in text
    assert "✅ 4 ◀️" in text
    assert "Jawaban benar: 4" in text
    assert "10 / 10" in text
