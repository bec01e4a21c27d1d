import asyncio

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage as FSMMemoryStorage
from aiogram.fsm.storage.redis import RedisStorage as FSMRedisStorage
from aiogram.types import BotCommand, BotCommandScopeDefault

from core.config import settings
from core.logger import logger, setup_logging
from db.redis import create_redis
from handlers import quiz
from services.controller_registry import registry
from services.quiz_api import QuizApiClient
from services.session_store import MemoryStorage, RedisStorage
from utils.middleware import LanguageMiddleware, QuizServicesMiddleware


async def main():
    setup_logging()

    redis = None
    if settings.USE_REDIS_SESSION_STORE:
        redis = create_redis()
        session_storage = RedisStorage(redis)
        fsm_storage = FSMRedisStorage(redis=redis)
    else:
        logger.warning("Redis disabled, quiz sessions will not survive a restart")
        session_storage = MemoryStorage()
        fsm_storage = FSMMemoryStorage()

    quiz_api = QuizApiClient()
    bot = Bot(token=settings.BOT_TOKEN)
    dp = Dispatcher(storage=fsm_storage)

    dp.update.outer_middleware(QuizServicesMiddleware(quiz_api, session_storage, registry))
    dp.message.middleware(LanguageMiddleware())
    dp.callback_query.middleware(LanguageMiddleware())

    dp.include_router(quiz.router)

    try:
        await bot.set_my_commands([
            BotCommand(command="quiz", description="Buka kuis / Open a quiz"),
        ], scope=BotCommandScopeDefault())
    except Exception as e:
        logger.error("Failed to set bot commands", error=str(e))

    logger.info("Starting quiz player bot", env=settings.ENV, api=settings.QUIZ_API_BASE_URL)
    try:
        await dp.start_polling(bot)
    finally:
        registry.clear()
        await quiz_api.close()
        if redis is not None:
            await redis.aclose()
        await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Application stopped.")
