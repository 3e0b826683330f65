from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from schoolfee.application.errors import ForbiddenError, NoTenantError, SubscriptionExpiredError
from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.identity_service import build_principal
from schoolfee.application.services.security_service import decode_access_token
from schoolfee.application.services.subscription_service import refresh_subscription_status
from schoolfee.domain.subscription import SubscriptionStatus
from schoolfee.infrastructure.db.models import School, User
from schoolfee.infrastructure.db.session import get_db
from schoolfee.infrastructure.logging import bind_request_context

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    user_id = decode_access_token(token)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication token")
    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


def get_current_principal(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Principal:
    principal = build_principal(db, current_user.id)
    bind_request_context(user_id=principal.user_id, school_id=principal.school_id)
    return principal


def require_tenant(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.school_id is None:
        raise NoTenantError()
    return principal


def get_current_school_id(principal: Principal = Depends(require_tenant)) -> int:
    return principal.school_id  # type: ignore[return-value]


def require_super_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_super_admin:
        raise ForbiddenError()
    return principal


def require_active_subscription(
    principal: Principal = Depends(require_tenant),
    db: Session = Depends(get_db),
) -> Principal:
    """Gate tenant mutations on a non-expired subscription."""
    school = db.get(School, principal.school_id)
    if school is None:
        raise NoTenantError()
    if refresh_subscription_status(db, school) == SubscriptionStatus.expired:
        raise SubscriptionExpiredError()
    return principal
