from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    BOT_TOKEN: str = Field("", description="Telegram bot token for the quiz player")

    # Redis
    REDIS_URL: str = Field("redis://localhost:6379/0")

    # Remote quiz API
    QUIZ_API_BASE_URL: str = Field("http://localhost:8080/api", description="Base URL of the quiz/attempt REST API")
    QUIZ_API_TIMEOUT_SECONDS: float = 15.0
    QUIZ_USER_ID: str = Field("", description="Fallback learner id when the bot user is not mapped")

    # Session store
    SESSION_KEY_PREFIX: str = "quiz_session_"
    SESSION_TTL_SECONDS: int = 86400  # 24 hours
    USE_REDIS_SESSION_STORE: bool = True

    # Quiz player
    TIMER_TICK_SECONDS: float = 1.0
    EXPIRED_SUBMIT_RETRY_SECONDS: float = 15.0  # retry of a failed submit once time is up
    MAX_OPEN_QUIZ_VIEWS: int = 1000  # live controllers kept by the registry
    QUESTION_CACHE_SECONDS: int = 600  # 10 minutes
    DEFAULT_LANGUAGE: str = "ID"  # ID, EN

    # Environment
    ENV: str = "production"  # development, staging, production
    DEBUG: bool = False

settings = Settings()
