import time
from contextlib import contextmanager
from collections.abc import Iterator

from schoolfee.application.errors import ConflictError
from schoolfee.config import settings
from schoolfee.infrastructure.cache.cache_service import acquire_lock, release_lock
from schoolfee.infrastructure.logging import get_logger

logger = get_logger(__name__)

LOCK_RETRY_INTERVAL_SECONDS = 0.1


def school_activation_lock_key(*, school_id: int) -> str:
    return f"subscription_activation_lock:{school_id}"


@contextmanager
def school_activation_lock(*, school_id: int, wait_seconds: float = 0.0, required: bool = True) -> Iterator[None]:
    """Serialize subscription changes of one school.

    Contention raises ``ConflictError`` when ``required``. Otherwise the block
    runs after ``wait_seconds`` without the Redis lock, relying on the school
    row lock, so the last commit wins.
    """
    lock_key = school_activation_lock_key(school_id=school_id)
    deadline = time.monotonic() + wait_seconds
    lock_token = acquire_lock(lock_key, settings.billing_lock_ttl_seconds)
    while lock_token is None and time.monotonic() < deadline:
        time.sleep(LOCK_RETRY_INTERVAL_SECONDS)
        lock_token = acquire_lock(lock_key, settings.billing_lock_ttl_seconds)

    if lock_token is None:
        if required:
            raise ConflictError("A subscription change is already being processed for this school")
        logger.warning("activation_lock_contended", school_id=school_id, waited_seconds=wait_seconds)
        yield
        return

    try:
        yield
    finally:
        release_lock(lock_key, lock_token)
