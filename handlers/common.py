from html import escape
from typing import Optional

from aiogram.fsm.state import State, StatesGroup
from aiogram.types import InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from constants.messages import Messages
from models.quiz import QuestionDetail
from models.session import AttemptSession
from services.attempt_controller import QuizSummary
from utils.formatting import format_date, format_duration, format_score, format_time

OPTION_LETTERS = "ABCDEFGHIJ"
GRID_WIDTH = 5


class QuizStates(StatesGroup):
    WAITING_FOR_TEXT_ANSWER = State()


def _short(text: str, limit: int = 40) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit - 1] + "…"


def _passed_label(is_passed: Optional[bool], lang: str) -> str:
    if is_passed is None:
        return ""
    return Messages.get("PASSED" if is_passed else "FAILED", lang)


def format_summary(summary: QuizSummary, lang: str) -> str:
    quiz = summary.quiz
    if quiz is None:
        return Messages.get("LOAD_FAILED", lang)

    lines = [
        Messages.get("QUIZ_SUMMARY", lang).format(
            name=escape(quiz.name),
            duration=format_duration(quiz.duration_limit_minutes, lang),
            questions=quiz.total_questions,
            passing=format_score(quiz.passing_score),
            limit=quiz.attempt_limit,
        ),
    ]
    if quiz.content.description:
        lines.extend(["", escape(quiz.content.description)])

    start, end = quiz.schedule_window
    if start or end:
        lines.append("")
        lines.append(Messages.get("SCHEDULE", lang).format(
            start=format_date(start, lang),
            end=format_date(end, lang),
        ))

    lines.append("")
    lines.append(Messages.get("ATTEMPTS_REMAINING", lang).format(count=summary.attempts_remaining))

    if summary.last_result is not None:
        score = summary.last_result.final_score
        if score is None:
            score = summary.last_result.total_score
        lines.append(Messages.get("LAST_RESULT", lang).format(
            score=format_score(score),
            status=_passed_label(summary.last_result.is_passed, lang),
        ))

    finished = [a for a in summary.attempts if not a.is_pending]
    if finished:
        lines.append("")
        for attempt in finished:
            lines.append(Messages.get("HISTORY_ROW", lang).format(
                number=attempt.attempt_no,
                ended=format_date(attempt.quiz_end, lang),
                score=format_score(attempt.total_score),
                status=_passed_label(attempt.is_passed, lang),
            ))

    if summary.pending_attempt is not None:
        lines.append("")
        lines.append(Messages.get("PENDING_ATTEMPT", lang).format(
            number=summary.pending_attempt.attempt_no,
            started=format_date(summary.pending_attempt.quiz_start, lang),
        ))

    return "\n".join(lines)


def get_summary_keyboard(summary: QuizSummary, lang: str):
    builder = InlineKeyboardBuilder()
    if summary.pending_attempt is not None:
        builder.button(text=Messages.get("RESUME_BTN", lang), callback_data="quiz:resume")
        if summary.attempts_remaining > 0:
            builder.button(
                text=Messages.get("NEW_ATTEMPT_BTN", lang).format(count=summary.attempts_remaining),
                callback_data="quiz:new",
            )
    elif summary.can_start:
        builder.button(text=Messages.get("START_BTN", lang), callback_data="quiz:start")

    for attempt in summary.attempts:
        if not attempt.is_pending:
            builder.button(
                text=Messages.get("REVIEW_BTN", lang).format(number=attempt.attempt_no),
                callback_data=f"quiz:review:{attempt.id}",
            )
    builder.adjust(1)
    return builder.as_markup()


def format_question(question: Optional[QuestionDetail], session: AttemptSession,
                    time_left: Optional[int], lang: str) -> str:
    header = Messages.get("QUESTION_HEADER", lang).format(
        number=session.current_index + 1, total=session.total_questions,
    )
    if time_left is not None:
        header += "   " + Messages.get("TIME_LEFT", lang).format(time=format_time(time_left))
    lines = [f"<b>{header}</b>"]

    if question is None:
        lines.extend(["", Messages.get("QUESTION_LOADING", lang)])
        return "\n".join(lines)

    if session.is_unsure(question.id):
        lines.append(Messages.get("UNFLAG_BTN", lang))
    lines.extend(["", escape(question.question_text)])

    answer = session.answer_map.get(question.id)
    if question.question_type.is_free_text:
        lines.append("")
        if answer:
            lines.append(Messages.get("CURRENT_ANSWER", lang).format(answer=escape(answer)))
        lines.append(f"<i>{Messages.get('TEXT_ANSWER_PROMPT', lang)}</i>")
    else:
        lines.append("")
        for i, text in enumerate(question.options_text):
            selected = " ◀️" if answer and question.option_code(i) == answer else ""
            lines.append(f"{OPTION_LETTERS[i % len(OPTION_LETTERS)]}. {escape(text)}{selected}")

    return "\n".join(lines)


def _grid_label(session: AttemptSession, index: int) -> str:
    question_id = session.question_order[index]
    label = str(index + 1)
    if session.is_unsure(question_id):
        label = f"🚩{label}"
    elif session.is_answered(question_id):
        label = f"✅{label}"
    elif session.answer_map.get(question_id):
        label = f"⏳{label}"
    if index == session.current_index:
        label = f"[{label}]"
    return label


def get_question_keyboard(question: Optional[QuestionDetail], session: AttemptSession, lang: str):
    builder = InlineKeyboardBuilder()

    if question is not None and not question.question_type.is_free_text:
        answer = session.answer_map.get(question.id)
        for i, text in enumerate(question.options_text):
            mark = "🔘" if answer and question.option_code(i) == answer else "⚪️"
            builder.row(InlineKeyboardButton(
                text=f"{mark} {OPTION_LETTERS[i % len(OPTION_LETTERS)]}. {_short(text)}",
                callback_data=f"quiz:opt:{i}",
            ))

    if question is not None:
        flag_key = "UNFLAG_BTN" if session.is_unsure(question.id) else "FLAG_BTN"
        builder.row(InlineKeyboardButton(text=Messages.get(flag_key, lang), callback_data="quiz:flag"))

    grid = [
        InlineKeyboardButton(text=_grid_label(session, i), callback_data=f"quiz:go:{i}")
        for i in range(session.total_questions)
    ]
    builder.row(*grid, width=GRID_WIDTH)

    nav = []
    if session.current_index > 0:
        nav.append(InlineKeyboardButton(text=Messages.get("PREV_BTN", lang), callback_data="quiz:prev"))
    if session.current_index < session.total_questions - 1:
        nav.append(InlineKeyboardButton(text=Messages.get("NEXT_BTN", lang), callback_data="quiz:next"))
    if nav:
        builder.row(*nav)

    builder.row(InlineKeyboardButton(text=Messages.get("SUBMIT_BTN", lang), callback_data="quiz:submit"))
    return builder.as_markup()


def get_confirm_keyboard(confirm_data: str, cancel_data: str, lang: str):
    builder = InlineKeyboardBuilder()
    builder.button(text=Messages.get("CONFIRM_BTN", lang), callback_data=confirm_data)
    builder.button(text=Messages.get("CANCEL_BTN", lang), callback_data=cancel_data)
    builder.adjust(2)
    return builder.as_markup()


def get_review_keyboard(index: int, total: int, lang: str):
    builder = InlineKeyboardBuilder()
    nav = []
    if index > 0:
        nav.append(InlineKeyboardButton(text=Messages.get("PREV_BTN", lang), callback_data="quiz:prev"))
    if index < total - 1:
        nav.append(InlineKeyboardButton(text=Messages.get("NEXT_BTN", lang), callback_data="quiz:next"))
    if nav:
        builder.row(*nav)
    builder.row(InlineKeyboardButton(text=Messages.get("BACK_BTN", lang), callback_data="quiz:back"))
    return builder.as_markup()
