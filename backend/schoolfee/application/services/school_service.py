from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from schoolfee.application.errors import NoTenantError, NotFoundError, ValidationError
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
    ensure_super_admin,
    is_allowed,
)
from schoolfee.application.services.pagination_service import paginate_scalars
from schoolfee.application.services.subscription_service import (
    count_students,
    effective_status,
    refresh_subscription_status,
)
from schoolfee.domain.clock import ensure_utc, resolve_now
from schoolfee.domain.roles import AppRole
from schoolfee.domain.subscription import SubscriptionStatus
from schoolfee.infrastructure.db.models import AdminProfile, FeeStructure, Payment, School, Student, UserRole
from schoolfee.infrastructure.logging import get_logger
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta
from schoolfee.interfaces.api.v1.schemas.school import OnboardingRequest, SchoolUpdate

logger = get_logger(__name__)

ZERO = Decimal("0.00")
CONTACT_FIELDS = ("email", "phone", "address", "logo_url")


def serialize_school_response(school: School, *, status: SubscriptionStatus | None = None) -> dict:
    return {
        "id": school.id,
        "name": school.name,
        "email": school.email,
        "phone": school.phone,
        "address": school.address,
        "logo_url": school.logo_url,
        "subscription_status": status if status is not None else school.subscription_status,
        "plan_type": school.plan_type,
        "max_students": school.max_students,
        "trial_start": ensure_utc(school.trial_start),
        "trial_end": ensure_utc(school.trial_end),
        "next_payment_date": ensure_utc(school.next_payment_date),
        "last_payment_date": ensure_utc(school.last_payment_date),
        "monthly_target": school.monthly_target,
        "created_at": ensure_utc(school.created_at),
        "updated_at": ensure_utc(school.updated_at),
    }


def _require_school_id(principal: Principal) -> int:
    if principal.school_id is None:
        raise NoTenantError()
    return principal.school_id


def get_visible_school(db: Session, principal: Principal, school_id: int) -> School:
    if not is_allowed(principal, Operation.read, ProtectedEntity.school, school_id=school_id):
        raise NotFoundError("School not found")
    school = db.get(School, school_id)
    if school is None:
        raise NotFoundError("School not found")
    return school


def get_own_school(db: Session, principal: Principal, *, now: datetime | None = None) -> School:
    school = get_visible_school(db, principal, _require_school_id(principal))
    refresh_subscription_status(db, school, now=now)
    return school


def _clean_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("School name is required")
    return cleaned


def update_school(db: Session, principal: Principal, *, school_id: int, payload: SchoolUpdate) -> School:
    school = db.get(School, school_id)
    if school is None:
        raise NotFoundError("School not found")
    ensure_allowed(principal, Operation.update, ProtectedEntity.school, school_id=school_id)

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name") is not None:
        school.name = _clean_name(changes["name"])
    for field_name in CONTACT_FIELDS:
        if field_name in changes:
            setattr(school, field_name, changes[field_name])
    if changes.get("monthly_target") is not None:
        school.monthly_target = changes["monthly_target"]
    db.commit()
    db.refresh(school)
    logger.info("school_updated", school_id=school_id, fields=sorted(changes), updated_by=principal.user_id)
    return school


def complete_onboarding(db: Session, principal: Principal, payload: OnboardingRequest) -> School:
    school_id = _require_school_id(principal)
    school = db.get(School, school_id)
    if school is None:
        raise NotFoundError("School not found")
    ensure_allowed(principal, Operation.update, ProtectedEntity.school, school_id=school_id)

    school.name = _clean_name(payload.school_name)
    if payload.school_address is not None:
        school.address = payload.school_address.strip() or None
    if payload.school_phone is not None:
        school.phone = payload.school_phone.strip() or None
    db.commit()
    db.refresh(school)
    logger.info("school_onboarding_completed", school_id=school_id, user_id=principal.user_id)
    return school


def set_monthly_target(db: Session, principal: Principal, *, school_id: int, monthly_target: Decimal) -> School:
    if monthly_target < ZERO:
        raise ValidationError("Monthly target cannot be negative")
    school = db.get(School, school_id)
    if school is None:
        raise NotFoundError("School not found")
    ensure_allowed(principal, Operation.update, ProtectedEntity.school, school_id=school_id)
    school.monthly_target = monthly_target
    db.commit()
    db.refresh(school)
    logger.info("school_monthly_target_set", school_id=school_id, monthly_target=str(monthly_target))
    return school


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _sum(db: Session, column, *conditions) -> Decimal:
    value = db.execute(select(func.coalesce(func.sum(column), 0)).where(*conditions)).scalar_one()
    return Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def get_dashboard_summary(db: Session, principal: Principal, *, now: datetime | None = None) -> dict:
    school = get_visible_school(db, principal, _require_school_id(principal))
    current_time = resolve_now(now)
    month_start = _month_start(current_time)

    expected = _sum(db, Student.total_fee, Student.school_id == school.id)
    collected = _sum(db, Payment.amount, Payment.school_id == school.id)
    collected_this_month = _sum(
        db,
        Payment.amount,
        Payment.school_id == school.id,
        Payment.payment_date >= month_start,
    )
    payments_this_month = db.execute(
        select(func.count(Payment.id)).where(Payment.school_id == school.id, Payment.payment_date >= month_start)
    ).scalar_one()
    fee_structure_count = db.execute(
        select(func.count(FeeStructure.id)).where(FeeStructure.school_id == school.id)
    ).scalar_one()

    target = Decimal(school.monthly_target or ZERO)
    progress = ZERO
    if target > ZERO:
        progress = (collected_this_month / target * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return {
        "school_id": school.id,
        "student_count": count_students(db, school.id),
        "fee_structure_count": int(fee_structure_count),
        "total_expected_amount": expected,
        "total_collected_amount": collected,
        "total_outstanding_amount": max(expected - collected, ZERO),
        "collected_this_month": collected_this_month,
        "monthly_target": target,
        "monthly_target_progress": progress,
        "payments_this_month": int(payments_this_month),
    }


def list_all_schools(
    db: Session,
    principal: Principal,
    *,
    offset: int,
    limit: int,
    search: str | None = None,
    now: datetime | None = None,
) -> tuple[list[dict], PaginationMeta]:
    ensure_super_admin(principal)
    current_time = resolve_now(now)
    schools, meta = paginate_scalars(
        db,
        select(School).order_by(School.created_at.desc(), School.id.desc()),
        offset=offset,
        limit=limit,
        search=search,
        search_columns=[School.name, School.email],
    )
    items = [serialize_school_response(school, status=effective_status(school, current_time)) for school in schools]
    return items, meta


def get_platform_stats(db: Session, principal: Principal, *, now: datetime | None = None) -> dict:
    ensure_super_admin(principal)
    current_time = resolve_now(now)
    counts = {status: 0 for status in SubscriptionStatus}
    for school in db.execute(select(School)).scalars():
        counts[effective_status(school, current_time)] += 1
    return {
        "total_schools": sum(counts.values()),
        "active_schools": counts[SubscriptionStatus.active],
        "trial_schools": counts[SubscriptionStatus.trial],
        "expired_schools": counts[SubscriptionStatus.expired],
    }


def list_admin_profiles(db: Session, principal: Principal) -> list[dict]:
    ensure_super_admin(principal)
    profiles = db.execute(select(AdminProfile).order_by(AdminProfile.created_at.desc(), AdminProfile.id)).scalars()
    return [
        {
            "id": profile.id,
            "email": profile.email,
            "full_name": profile.full_name,
            "school_id": profile.school_id,
            "school_name": profile.school.name if profile.school is not None else None,
            "created_at": ensure_utc(profile.created_at),
        }
        for profile in profiles
    ]


def delete_school(db: Session, principal: Principal, *, school_id: int) -> None:
    """Remove a tenant and everything it owns.

    The admin grants of the school's principals are revoked in the same
    transaction; their user rows are kept.
    """
    school = db.get(School, school_id)
    if school is None:
        raise NotFoundError("School not found")
    ensure_allowed(principal, Operation.delete, ProtectedEntity.school, school_id=school_id)

    member_ids = list(db.execute(select(AdminProfile.id).where(AdminProfile.school_id == school_id)).scalars().all())
    if member_ids:
        db.execute(
            delete(UserRole).where(UserRole.user_id.in_(member_ids), UserRole.role == AppRole.admin.value)
        )
    db.delete(school)
    db.commit()
    logger.info(
        "school_deleted",
        school_id=school_id,
        revoked_admins=len(member_ids),
        deleted_by=principal.user_id,
    )
