from functools import lru_cache

from redis import ConnectionPool, Redis
from redis.exceptions import RedisError

from schoolfee.config import settings

# Activation locks are short; a slow Redis must not stall a billing request.
REDIS_TIMEOUT_SECONDS = 1


@lru_cache(maxsize=1)
def _connection_pool(redis_url: str) -> ConnectionPool:
    return ConnectionPool.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=REDIS_TIMEOUT_SECONDS,
        socket_timeout=REDIS_TIMEOUT_SECONDS,
    )


def get_redis_client() -> Redis:
    return Redis(connection_pool=_connection_pool(settings.redis_url))


def redis_is_available(client: Redis) -> bool:
    try:
        return bool(client.ping())
    except RedisError:
        return False
