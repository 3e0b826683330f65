import uuid

from redis.exceptions import RedisError

from schoolfee.infrastructure.cache.redis_client import get_redis_client
from schoolfee.infrastructure.logging import get_logger

logger = get_logger(__name__)

RELEASE_LOCK_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


def acquire_lock(lock_key: str, ttl_seconds: int) -> str | None:
    """Return a lock token, or None when another holder owns the key.

    An unreachable Redis does not block the caller; the database row locks
    still serialize the write.
    """
    token = str(uuid.uuid4())
    try:
        acquired = bool(get_redis_client().set(lock_key, token, nx=True, ex=ttl_seconds))
    except RedisError:
        logger.warning("lock_backend_unavailable", lock_key=lock_key)
        return token
    return token if acquired else None


def release_lock(lock_key: str, token: str) -> None:
    try:
        get_redis_client().eval(RELEASE_LOCK_SCRIPT, 1, lock_key, token)
    except RedisError:
        # The key expires on its own after the ttl.
        logger.warning("lock_release_failed", lock_key=lock_key)
