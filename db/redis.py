from redis.asyncio import Redis

from core.config import settings


def create_redis(url: str = None) -> Redis:
    return Redis.from_url(url or settings.REDIS_URL, decode_responses=True)
