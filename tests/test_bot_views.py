from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.config import settings
from factories import attempt_row, question, quiz_definition, T0
from handlers.common import (
    format_question,
    format_summary,
    get_question_keyboard,
    get_summary_keyboard,
)
from models.session import AttemptSession
from services.attempt_controller import AttemptState, QuizSummary
from services.controller_registry import ControllerRegistry
from utils.middleware import LanguageMiddleware


def callback_data(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


@pytest.fixture
def registry():
    registry = ControllerRegistry()
    yield registry
    registry.clear()


def test_registry_is_a_singleton():
    assert ControllerRegistry() is ControllerRegistry()


def test_registry_reuses_controller_for_same_quiz(registry):
    controller = MagicMock(content_id="Q1")
    factory = MagicMock(return_value=controller)

    assert registry.open(7, "Q1", factory) is controller
    assert registry.open(7, "Q1", factory) is controller
    factory.assert_called_once()


def test_registry_tears_down_replaced_controller(registry):
    old = MagicMock(content_id="Q1")
    new = MagicMock(content_id="Q2")
    registry.register(7, old)

    assert registry.open(7, "Q2", lambda: new) is new
    old.teardown.assert_called_once()
    assert registry.get(7) is new

    registry.remove(7)
    new.teardown.assert_called_once()
    assert registry.get(7) is None


def test_registry_evicts_idle_controllers_first(registry, monkeypatch):
    monkeypatch.setattr(settings, "MAX_OPEN_QUIZ_VIEWS", 2)
    running = MagicMock(content_id="Q1", state=AttemptState.IN_PROGRESS)
    idle = MagicMock(content_id="Q2", state=AttemptState.NOT_STARTED)
    newest = MagicMock(content_id="Q3", state=AttemptState.NOT_STARTED)

    registry.register(1, running)
    registry.register(2, idle)
    registry.register(3, newest)

    assert len(registry) == 2
    assert registry.get(2) is None
    idle.teardown.assert_called_once()
    running.teardown.assert_not_called()
    assert registry.get(1) is running


def test_registry_evicts_least_recently_used_when_all_running(registry, monkeypatch):
    monkeypatch.setattr(settings, "MAX_OPEN_QUIZ_VIEWS", 2)
    first = MagicMock(content_id="Q1", state=AttemptState.IN_PROGRESS)
    second = MagicMock(content_id="Q2", state=AttemptState.IN_PROGRESS)
    third = MagicMock(content_id="Q3", state=AttemptState.IN_PROGRESS)

    registry.register(1, first)
    registry.register(2, second)
    assert registry.get(1) is first
    registry.open(3, "Q3", lambda: third)

    assert registry.get(2) is None
    second.teardown.assert_called_once()
    assert registry.get(1) is first
    assert registry.get(3) is third


def test_summary_offers_resume_and_new_attempt():
    summary = QuizSummary(
        quiz=quiz_definition(),
        attempts=[attempt_row("A0", 1), attempt_row("A9", 2, finished=False)],
        attempts_remaining=1,
        pending_attempt=attempt_row("A9", 2, finished=False),
    )

    assert callback_data(get_summary_keyboard(summary, "ID")) == [
        "quiz:resume",
        "quiz:new",
        "quiz:review:A0",
    ]
    text = format_summary(summary, "ID")
    assert "Kuis Aljabar" in text
    assert "Percobaan 2 belum selesai" in text
    assert "Percobaan 1" in text


def test_summary_offers_start_when_allowed():
    summary = QuizSummary(quiz=quiz_definition(), attempts_remaining=3, can_start=True)
    assert callback_data(get_summary_keyboard(summary, "EN")) == ["quiz:start"]

    summary = QuizSummary(quiz=quiz_definition(), attempts_remaining=0, can_start=False)
    assert callback_data(get_summary_keyboard(summary, "EN")) == []


def test_summary_shows_schedule_window():
    quiz = quiz_definition()
    quiz.content.content_start = T0
    quiz.content.content_end = T0 + timedelta(days=7)

    text = format_summary(QuizSummary(quiz=quiz, attempts_remaining=3, can_start=True), "EN")
    assert "Schedule: 10 Jan 2026 08:00 - 17 Jan 2026 08:00" in text

    quiz.content.content_end = None
    text = format_summary(QuizSummary(quiz=quiz, attempts_remaining=3, can_start=True), "ID")
    assert "Jadwal: 10 Jan 2026 08:00 - Tidak ditentukan" in text

    text = format_summary(QuizSummary(quiz=quiz_definition(), attempts_remaining=3), "EN")
    assert "Schedule" not in text


def make_session(**fields):
    data = {"attempt_id": "A1", "content_id": "Q1", "question_order": ["q1", "q2", "q3"], "start_time": T0}
    data.update(fields)
    return AttemptSession(**data)


def test_question_view_marks_selected_option():
    session = make_session(answer_map={"q1": "b"}, answered_flags={"q1": True})
    text = format_question(question("q1"), session, 125, "EN")

    assert "Question 1 / 3" in text
    assert "02:05" in text
    assert "B. 4 ◀️" in text

    data = callback_data(get_question_keyboard(question("q1"), session, "EN"))
    assert data[:3] == ["quiz:opt:0", "quiz:opt:1", "quiz:opt:2"]
    assert "quiz:flag" in data
    assert ["quiz:go:0", "quiz:go:1", "quiz:go:2"] == [d for d in data if d.startswith("quiz:go:")]
    assert "quiz:next" in data
    assert "quiz:prev" not in data
    assert data[-1] == "quiz:submit"


def test_free_text_question_asks_for_a_message():
    session = make_session(current_index=1, answer_map={"q2": "Jakarta"})
    text = format_question(question("q2", "SHORT_ANSWER"), session, None, "ID")

    assert "Jawaban Anda: Jakarta" in text
    assert "Tulis jawaban Anda sebagai pesan." in text
    assert "Sisa waktu" not in text
    data = callback_data(get_question_keyboard(question("q2", "SHORT_ANSWER"), session, "ID"))
    assert not any(d.startswith("quiz:opt:") for d in data)


def test_missing_question_renders_loading_state():
    text = format_question(None, make_session(), 60, "ID")
    assert "Memuat soal..." in text


@pytest.mark.asyncio
@pytest.mark.parametrize("code, expected", [("en-US", "EN"), ("id", "ID"), (None, "ID")])
async def test_language_middleware(code, expected):
    handler = AsyncMock()
    data = {"event_from_user": MagicMock(language_code=code)}

    await LanguageMiddleware()(handler, MagicMock(), data)

    assert data["lang"] == expected
    handler.assert_awaited_once()
