from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfee.application.errors import NoTenantError
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
)
from schoolfee.application.services.subscription_service import refresh_subscription_status
from schoolfee.domain.roles import AppRole
from schoolfee.domain.subscription import SubscriptionStatus
from schoolfee.infrastructure.db.models import AdminProfile, School, UserRole
from schoolfee.infrastructure.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SCHOOL_NAME = "My School"


class SessionEvent(str, Enum):
    signed_up = "signed_up"
    signed_in = "signed_in"
    token_refreshed = "token_refreshed"
    signed_out = "signed_out"


@dataclass(frozen=True)
class SessionResolution:
    user_id: int
    school_id: int | None
    is_super_admin: bool
    needs_onboarding: bool
    subscription_status: SubscriptionStatus | None


def resolve_tenant(db: Session, principal_id: int) -> int:
    school_id = db.execute(select(AdminProfile.school_id).where(AdminProfile.id == principal_id)).scalar_one_or_none()
    if school_id is None:
        raise NoTenantError()
    return school_id


def has_role(db: Session, principal_id: int, role: AppRole | str) -> bool:
    role_value = role.value if isinstance(role, AppRole) else str(role)
    granted = db.execute(
        select(UserRole.id).where(UserRole.user_id == principal_id, UserRole.role == role_value)
    ).first()
    return granted is not None


def get_role_grants(db: Session, principal_id: int) -> frozenset[AppRole]:
    values = db.execute(select(UserRole.role).where(UserRole.user_id == principal_id)).scalars().all()
    known = {role.value for role in AppRole}
    return frozenset(AppRole(value) for value in values if value in known)


def build_principal(db: Session, principal_id: int) -> Principal:
    try:
        school_id: int | None = resolve_tenant(db, principal_id)
    except NoTenantError:
        school_id = None
    return Principal(user_id=principal_id, school_id=school_id, roles=get_role_grants(db, principal_id))


def list_own_roles(db: Session, principal: Principal) -> list[UserRole]:
    grants = list(
        db.execute(select(UserRole).where(UserRole.user_id == principal.user_id).order_by(UserRole.id)).scalars().all()
    )
    for grant in grants:
        ensure_allowed(principal, Operation.read, ProtectedEntity.user_role, owner_user_id=grant.user_id)
    return grants


def needs_onboarding(school: School | None) -> bool:
    return school is None or school.name.strip() == DEFAULT_SCHOOL_NAME


def resolve_session(db: Session, principal_id: int, *, now: datetime | None = None) -> SessionResolution:
    principal = build_principal(db, principal_id)
    school = db.get(School, principal.school_id) if principal.school_id is not None else None
    status = refresh_subscription_status(db, school, now=now) if school is not None else None
    return SessionResolution(
        user_id=principal.user_id,
        school_id=principal.school_id,
        is_super_admin=principal.is_super_admin,
        needs_onboarding=needs_onboarding(school),
        subscription_status=status,
    )


def handle_session_event(
    db: Session,
    event: SessionEvent,
    principal_id: int,
    *,
    now: datetime | None = None,
) -> SessionResolution | None:
    """Callback for the identity provider's session lifecycle.

    Sign-in style events resolve the tenant and onboarding need; sign-out
    carries nothing forward.
    """
    if SessionEvent(event) == SessionEvent.signed_out:
        logger.info("session_closed", user_id=principal_id)
        return None
    resolution = resolve_session(db, principal_id, now=now)
    logger.info(
        "session_resolved",
        event=SessionEvent(event).value,
        user_id=principal_id,
        school_id=resolution.school_id,
        needs_onboarding=resolution.needs_onboarding,
        is_super_admin=resolution.is_super_admin,
    )
    return resolution
