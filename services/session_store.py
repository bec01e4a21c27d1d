from typing import Dict, Optional, Protocol

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from core.config import settings
from core.logger import logger
from models.session import AttemptSession


class KeyValueStorage(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class RedisStorage:
    def __init__(self, redis: Redis, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.SESSION_TTL_SECONDS

    async def get(self, key: str) -> Optional[str]:
        return await self.redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.redis.set(key, value, ex=self.ttl_seconds or None)

    async def delete(self, key: str) -> None:
        await self.redis.delete(key)


class MemoryStorage:
    """Process-local storage, used when Redis is disabled and in tests."""

    def __init__(self):
        self.data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


class SessionStore:
    """
    Persists the in-progress attempt of one content id.

    Writes are best effort: a storage failure only costs the ability to
    resume after a restart, so it is logged and swallowed. Reads that fail
    or return a corrupt document behave as "no session".
    """

    def __init__(self, storage: KeyValueStorage, namespace: str = ""):
        self.storage = storage
        self.namespace = namespace

    def key(self, content_id: str) -> str:
        key = f"{settings.SESSION_KEY_PREFIX}{content_id}"
        if self.namespace:
            return f"{self.namespace}:{key}"
        return key

    async def save(self, session: AttemptSession) -> bool:
        session.touch()
        try:
            await self.storage.set(self.key(session.content_id), session.model_dump_json(by_alias=True))
            return True
        except (RedisError, OSError) as e:
            logger.error("Failed to save quiz session", content_id=session.content_id,
                         attempt_id=session.attempt_id, error=str(e))
            return False

    async def load(self, content_id: str) -> Optional[AttemptSession]:
        try:
            raw = await self.storage.get(self.key(content_id))
        except (RedisError, OSError) as e:
            logger.error("Failed to load quiz session", content_id=content_id, error=str(e))
            return None

        if not raw:
            return None

        try:
            return AttemptSession.model_validate_json(raw)
        except (ValidationError, ValueError) as e:
            logger.warning("Discarding corrupt quiz session", content_id=content_id, error=str(e))
            return None

    async def clear(self, content_id: str):
        try:
            await self.storage.delete(self.key(content_id))
        except (RedisError, OSError) as e:
            logger.error("Failed to clear quiz session", content_id=content_id, error=str(e))
