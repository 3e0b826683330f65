from datetime import datetime, timedelta
from typing import Any, cast

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from schoolfee.config import settings
from schoolfee.domain.clock import resolve_now
from schoolfee.infrastructure.db.models import User
from schoolfee.infrastructure.logging import get_logger

logger = get_logger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"


def hash_password(password: str) -> str:
    return cast(str, pwd_context.hash(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return cast(bool, pwd_context.verify(plain_password, hashed_password))


def create_access_token(user_id: int, expires_minutes: int | None = None, *, now: datetime | None = None) -> str:
    """Issue the bearer token that stands in for the auth provider session."""
    issued_at = resolve_now(now)
    lifetime = expires_minutes if expires_minutes is not None else settings.jwt_access_token_expire_minutes
    payload = {
        "sub": str(user_id),
        "typ": ACCESS_TOKEN_TYPE,
        "iss": settings.app_name,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=lifetime),
    }
    return cast(str, jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm))


def decode_access_token(token: str) -> int | None:
    try:
        payload = cast(
            dict[str, Any],
            jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
                issuer=settings.app_name,
            ),
        )
    except JWTError:
        return None
    if payload.get("typ") != ACCESS_TOKEN_TYPE:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def authenticate_user(db: Session, email: str, password: str) -> User | None:
    normalized = normalize_email(email)
    user = db.execute(select(User).where(func.lower(User.email) == normalized)).scalar_one_or_none()
    if user is None:
        logger.info("login_rejected", reason="unknown_email")
        return None
    if not user.is_active:
        logger.info("login_rejected", reason="inactive", user_id=user.id)
        return None
    if not verify_password(password, user.hashed_password):
        logger.info("login_rejected", reason="bad_password", user_id=user.id)
        return None
    return user
