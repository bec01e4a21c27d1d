from typing import Optional, Union

from aiogram import Bot, F, Router, types
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext

from constants.messages import Messages
from core.config import settings
from core.exceptions import InvalidTransition
from core.logger import logger
from handlers.common import (
    QuizStates,
    format_question,
    format_summary,
    get_confirm_keyboard,
    get_question_keyboard,
    get_review_keyboard,
    get_summary_keyboard,
)
from models.notification import Notification
from services.attempt_controller import AttemptController, AttemptState, MountResult
from services.controller_registry import ControllerRegistry
from services.quiz_api import QuizApiClient
from services.review import format_review_item
from services.session_store import KeyValueStorage, SessionStore

router = Router()
router.message.filter(F.chat.type == "private")

# Shown by re-rendering the question instead of as a separate message
QUIET_NOTIFICATIONS = {"ANSWER_SAVED"}


def learner_id(telegram_id: int) -> str:
    return settings.QUIZ_USER_ID or str(telegram_id)


def make_notifier(bot: Bot, chat_id: int):
    async def notify(notification: Notification):
        if notification.key in QUIET_NOTIFICATIONS:
            logger.debug("Quiet quiz notification", chat_id=chat_id, key=notification.key)
            return
        await bot.send_message(chat_id, notification.text, parse_mode="HTML")
    return notify


def build_controller(bot: Bot, chat_id: int, telegram_id: int, content_id: str, lang: str,
                     quiz_api: QuizApiClient, session_storage: KeyValueStorage) -> AttemptController:
    return AttemptController(
        api=quiz_api,
        store=SessionStore(session_storage, namespace=str(telegram_id)),
        user_id=learner_id(telegram_id),
        content_id=content_id,
        notifier=make_notifier(bot, chat_id),
        lang=lang,
    )


async def _render(target: Union[types.Message, types.CallbackQuery], text: str, reply_markup=None):
    """Edit the message behind a callback, or answer a plain message."""
    if isinstance(target, types.Message):
        await target.answer(text, reply_markup=reply_markup, parse_mode="HTML")
        return
    try:
        await target.message.edit_text(text, reply_markup=reply_markup, parse_mode="HTML")
    except TelegramBadRequest as e:
        if "message is not modified" in str(e):
            return
        logger.warning("Could not edit quiz message, sending a new one", error=str(e))
        await target.message.answer(text, reply_markup=reply_markup, parse_mode="HTML")


async def show_summary(target, controller: AttemptController, state: FSMContext, lang: str):
    await state.clear()
    summary = controller.summary()
    await _render(target, format_summary(summary, lang), get_summary_keyboard(summary, lang))


async def show_question(target, controller: AttemptController, state: FSMContext, lang: str):
    if controller.state != AttemptState.IN_PROGRESS:
        await show_summary(target, controller, state, lang)
        return

    question = await controller.current_question()
    session = controller.session
    if question is not None and question.question_type.is_free_text:
        await state.set_state(QuizStates.WAITING_FOR_TEXT_ANSWER)
    else:
        await state.clear()

    await _render(
        target,
        format_question(question, session, controller.time_left, lang),
        get_question_keyboard(question, session, lang),
    )


async def show_review(target, controller: AttemptController, lang: str):
    item = controller.current_review_item()
    if item is None:
        return
    total = len(controller.review.items)
    await _render(target, format_review_item(item, total, lang), get_review_keyboard(item.index, total, lang))


async def open_quiz(message: types.Message, bot: Bot, state: FSMContext, content_id: str, lang: str,
                    registry: ControllerRegistry, quiz_api: QuizApiClient, session_storage: KeyValueStorage):
    telegram_id = message.from_user.id
    controller = registry.open(
        telegram_id, content_id,
        lambda: build_controller(bot, message.chat.id, telegram_id, content_id, lang, quiz_api, session_storage),
    )
    logger.info("Opening quiz", telegram_id=telegram_id, content_id=content_id)

    result = await controller.mount()
    if result == MountResult.FAILED:
        return
    if result == MountResult.RESUMED_LOCAL and await controller.reconcile():
        await show_question(message, controller, state, lang)
        return
    await show_summary(message, controller, state, lang)


@router.message(Command("quiz"))
async def cmd_quiz(message: types.Message, command: CommandObject, bot: Bot, state: FSMContext, lang: str,
                   registry: ControllerRegistry, quiz_api: QuizApiClient, session_storage: KeyValueStorage):
    content_id = (command.args or "").strip()
    if not content_id:
        await message.answer(Messages.get("QUIZ_ID_REQUIRED", lang))
        return
    await open_quiz(message, bot, state, content_id, lang, registry, quiz_api, session_storage)


@router.message(CommandStart(deep_link=True, magic=F.args.startswith("quiz_")))
async def cmd_start_quiz(message: types.Message, command: CommandObject, bot: Bot, state: FSMContext, lang: str,
                         registry: ControllerRegistry, quiz_api: QuizApiClient, session_storage: KeyValueStorage):
    content_id = command.args[len("quiz_"):]
    if not content_id:
        await message.answer(Messages.get("QUIZ_ID_REQUIRED", lang))
        return
    await open_quiz(message, bot, state, content_id, lang, registry, quiz_api, session_storage)


@router.message(CommandStart())
async def cmd_start(message: types.Message, lang: str):
    await message.answer(Messages.get("QUIZ_ID_REQUIRED", lang))


async def _controller(callback: types.CallbackQuery, registry: ControllerRegistry,
                      lang: str) -> Optional[AttemptController]:
    controller = registry.get(callback.from_user.id)
    if controller is None:
        await callback.answer(Messages.get("QUIZ_NOT_OPEN", lang), show_alert=True)
    return controller


@router.callback_query(F.data.in_({"quiz:start", "quiz:new_ok"}))
async def cb_start(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()

    if controller.state == AttemptState.IN_PROGRESS:
        await show_question(callback, controller, state, lang)
        return
    if controller.state == AttemptState.REVIEWING:
        controller.close_review()

    started = await controller.start(confirm_discard_pending=callback.data == "quiz:new_ok")
    if started:
        await show_question(callback, controller, state, lang)
    else:
        await show_summary(callback, controller, state, lang)


@router.callback_query(F.data == "quiz:new")
async def cb_new_attempt(callback: types.CallbackQuery, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()
    await _render(
        callback,
        Messages.get("CONFIRM_NEW_ATTEMPT", lang),
        get_confirm_keyboard("quiz:new_ok", "quiz:back", lang),
    )


@router.callback_query(F.data == "quiz:resume")
async def cb_resume(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()

    if controller.state == AttemptState.NOT_STARTED or controller.state == AttemptState.SUBMITTED:
        await controller.resume_pending()
    await show_question(callback, controller, state, lang)


@router.callback_query(F.data.startswith("quiz:opt:"))
async def cb_option(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()
    if controller.state != AttemptState.IN_PROGRESS:
        await show_summary(callback, controller, state, lang)
        return

    question = await controller.current_question()
    try:
        index = int(callback.data.split(":")[2])
        code = question.option_code(index) if question else None
    except (ValueError, IndexError):
        logger.warning("Bad option callback", data=callback.data)
        return
    if code is None:
        return

    await controller.answer(question.id, code)
    await show_question(callback, controller, state, lang)


@router.message(QuizStates.WAITING_FOR_TEXT_ANSWER, F.text, ~F.text.startswith("/"))
async def handle_text_answer(message: types.Message, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = registry.get(message.from_user.id)
    if controller is None or controller.state != AttemptState.IN_PROGRESS:
        await state.clear()
        await message.answer(Messages.get("QUIZ_NOT_OPEN", lang))
        return

    answer = message.text.strip()
    if not answer:
        return
    await controller.answer_current(answer)
    await show_question(message, controller, state, lang)


@router.callback_query(F.data == "quiz:flag")
async def cb_flag(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()
    if controller.state != AttemptState.IN_PROGRESS:
        await show_summary(callback, controller, state, lang)
        return

    await controller.toggle_flag(controller.session.current_question_id)
    await show_question(callback, controller, state, lang)


@router.callback_query(F.data.in_({"quiz:prev", "quiz:next"}) | F.data.startswith("quiz:go:"))
async def cb_navigate(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()

    try:
        if callback.data == "quiz:prev":
            moved = await controller.previous()
        elif callback.data == "quiz:next":
            moved = await controller.next()
        else:
            moved = await controller.go_to(int(callback.data.split(":")[2]))
    except InvalidTransition as e:
        logger.info("Stale quiz navigation", telegram_id=callback.from_user.id, error=str(e))
        await show_summary(callback, controller, state, lang)
        return
    except ValueError:
        logger.warning("Bad navigation callback", data=callback.data)
        return

    if not moved:
        return
    if controller.state == AttemptState.REVIEWING:
        await show_review(callback, controller, lang)
    else:
        await show_question(callback, controller, state, lang)


@router.callback_query(F.data == "quiz:submit")
async def cb_submit(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()
    if controller.state != AttemptState.IN_PROGRESS:
        await show_summary(callback, controller, state, lang)
        return

    controller.request_submit()
    await _render(
        callback,
        Messages.get("CONFIRM_SUBMIT", lang),
        get_confirm_keyboard("quiz:submit_ok", "quiz:submit_no", lang),
    )


@router.callback_query(F.data == "quiz:submit_ok")
async def cb_submit_confirm(callback: types.CallbackQuery, state: FSMContext, lang: str,
                            registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()

    if controller.state == AttemptState.IN_PROGRESS:
        submitted = await controller.confirm_submit()
        if not submitted and controller.state == AttemptState.IN_PROGRESS:
            await show_question(callback, controller, state, lang)
            return
    await show_summary(callback, controller, state, lang)


@router.callback_query(F.data == "quiz:submit_no")
async def cb_submit_cancel(callback: types.CallbackQuery, state: FSMContext, lang: str,
                           registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()
    controller.cancel_submit()
    await show_question(callback, controller, state, lang)


@router.callback_query(F.data.startswith("quiz:review:"))
async def cb_review(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()

    if controller.state == AttemptState.IN_PROGRESS:
        await show_question(callback, controller, state, lang)
        return
    if controller.state == AttemptState.REVIEWING:
        controller.close_review()

    attempt_id = callback.data[len("quiz:review:"):]
    if await controller.open_review(attempt_id):
        await state.clear()
        await show_review(callback, controller, lang)


@router.callback_query(F.data == "quiz:back")
async def cb_back(callback: types.CallbackQuery, state: FSMContext, lang: str, registry: ControllerRegistry):
    controller = await _controller(callback, registry, lang)
    if controller is None:
        return
    await callback.answer()

    if controller.state == AttemptState.REVIEWING:
        controller.close_review()
    if controller.state == AttemptState.IN_PROGRESS:
        controller.cancel_submit()
        await show_question(callback, controller, state, lang)
        return
    await show_summary(callback, controller, state, lang)


@router.errors()
async def on_quiz_error(event: types.ErrorEvent):
    logger.error("Quiz handler failed", error=str(event.exception), exc_info=event.exception)
    return True
