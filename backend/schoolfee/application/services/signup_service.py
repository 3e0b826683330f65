from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolfee.application.errors import ConflictError
from schoolfee.application.services.identity_service import DEFAULT_SCHOOL_NAME
from schoolfee.application.services.security_service import hash_password, normalize_email
from schoolfee.domain.clock import resolve_now
from schoolfee.domain.roles import AppRole
from schoolfee.domain.subscription import TRIAL_DURATION, PlanType, SubscriptionStatus, max_students_for
from schoolfee.infrastructure.db.models import AdminProfile, School, User, UserRole
from schoolfee.infrastructure.logging import get_logger
from schoolfee.interfaces.api.v1.schemas.auth import SignupRequest

logger = get_logger(__name__)


@dataclass(frozen=True)
class SignupResult:
    user: User
    school: School


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def register_admin(db: Session, payload: SignupRequest, *, now: datetime | None = None) -> SignupResult:
    """Create the user, its school, its admin profile and the admin grant.

    Everything lands in a single commit; a failure leaves no partial rows.
    """
    email = normalize_email(payload.email)
    existing = db.execute(select(User.id).where(func.lower(User.email) == email)).first()
    if existing is not None:
        logger.warning("signup_rejected_duplicate_email", email=email)
        raise ConflictError("Email already registered")

    current_time = resolve_now(now)
    user = User(email=email, hashed_password=hash_password(payload.password), is_active=True)
    school = School(
        name=_clean(payload.school_name) or DEFAULT_SCHOOL_NAME,
        email=email,
        address=_clean(payload.school_address),
        phone=_clean(payload.school_phone),
        subscription_status=SubscriptionStatus.trial,
        plan_type=PlanType.small,
        max_students=max_students_for(PlanType.small),
        trial_start=current_time,
        trial_end=current_time + TRIAL_DURATION,
    )
    db.add_all([user, school])
    try:
        db.flush()
        db.add(AdminProfile(id=user.id, email=email, full_name=payload.full_name.strip(), school_id=school.id))
        db.add(UserRole(user_id=user.id, role=AppRole.admin.value))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("signup_rejected_integrity", email=email)
        raise ConflictError("Email already registered") from exc

    db.refresh(user)
    db.refresh(school)
    logger.info("admin_registered", user_id=user.id, school_id=school.id, trial_end=str(school.trial_end))
    return SignupResult(user=user, school=school)
