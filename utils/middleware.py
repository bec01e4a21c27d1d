from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, User

from core.config import settings
from core.logger import logger
from services.controller_registry import ControllerRegistry
from services.quiz_api import QuizApiClient
from services.session_store import KeyValueStorage


class QuizServicesMiddleware(BaseMiddleware):
    """Injects the shared quiz API client, session storage and controller registry."""

    def __init__(self, quiz_api: QuizApiClient, session_storage: KeyValueStorage, registry: ControllerRegistry):
        self.quiz_api = quiz_api
        self.session_storage = session_storage
        self.registry = registry

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        if hasattr(event, "event"):
            logger.debug("Update received", type=type(event.event).__name__)

        data["quiz_api"] = self.quiz_api
        data["session_storage"] = self.session_storage
        data["registry"] = self.registry
        return await handler(event, data)


class LanguageMiddleware(BaseMiddleware):
    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user: User = data.get("event_from_user")
        code = (user.language_code or "").lower() if user else ""
        if code.startswith("en"):
            data["lang"] = "EN"
        elif code.startswith("id"):
            data["lang"] = "ID"
        else:
            data["lang"] = settings.DEFAULT_LANGUAGE
        return await handler(event, data)
