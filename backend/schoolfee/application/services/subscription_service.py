from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from schoolfee.application.errors import NoTenantError, NotFoundError, ValidationError
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
    ensure_super_admin,
)
from schoolfee.application.services.billing_lock_service import school_activation_lock
from schoolfee.domain.clock import ensure_utc, resolve_now
from schoolfee.domain.subscription import (
    EXPIRY_WARNING_DAYS,
    PlanType,
    SubscriptionStatus,
    add_months,
    derive_effective_status,
    max_students_for,
    relevant_date_for,
    whole_days_until,
)
from schoolfee.infrastructure.db.models import School, Student
from schoolfee.infrastructure.logging import get_logger

logger = get_logger(__name__)


def get_school_for_update(db: Session, school_id: int) -> School:
    school = db.execute(
        select(School).where(School.id == school_id).with_for_update().execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if school is None:
        raise NotFoundError("School not found")
    return school


def count_students(db: Session, school_id: int) -> int:
    return int(db.execute(select(func.count(Student.id)).where(Student.school_id == school_id)).scalar_one())


def effective_status(school: School, now: datetime | None = None) -> SubscriptionStatus:
    current_time = resolve_now(now)
    deadline = relevant_date_for(
        school.subscription_status,
        trial_end=school.trial_end,
        next_payment_date=school.next_payment_date,
    )
    return derive_effective_status(school.subscription_status, deadline, current_time)


def refresh_subscription_status(db: Session, school: School, *, now: datetime | None = None) -> SubscriptionStatus:
    """Persist a lapsed trial or subscription detected at read time."""
    status = effective_status(school, now)
    if status != school.subscription_status:
        previous_status = school.subscription_status
        school.subscription_status = status
        db.commit()
        db.refresh(school)
        logger.info(
            "subscription_lapsed",
            school_id=school.id,
            previous_status=SubscriptionStatus(previous_status).value,
            status=status.value,
        )
    return status


def apply_activation(school: School, *, plan_type: PlanType, expires_at: datetime, now: datetime) -> None:
    school.subscription_status = SubscriptionStatus.active
    school.plan_type = PlanType(plan_type)
    school.max_students = max_students_for(plan_type)
    school.next_payment_date = expires_at
    school.last_payment_date = now


def serialize_subscription_summary(
    school: School,
    *,
    status: SubscriptionStatus,
    student_count: int,
    now: datetime,
) -> dict:
    days_until_expiry = 0
    show_expiry_warning = False
    if status == SubscriptionStatus.active and school.next_payment_date is not None:
        days_until_expiry = whole_days_until(school.next_payment_date, now, round_up=True)
        show_expiry_warning = 0 < days_until_expiry <= EXPIRY_WARNING_DAYS
    return {
        "school_id": school.id,
        "status": status,
        "plan_type": school.plan_type,
        "max_students": school.max_students,
        "student_count": student_count,
        "trial_start": ensure_utc(school.trial_start),
        "trial_end": ensure_utc(school.trial_end),
        "trial_days_remaining": whole_days_until(school.trial_end, now),
        "next_payment_date": ensure_utc(school.next_payment_date),
        "last_payment_date": ensure_utc(school.last_payment_date),
        "expiry_date": ensure_utc(school.next_payment_date or school.trial_end),
        "days_until_expiry": days_until_expiry,
        "show_expiry_warning": show_expiry_warning,
        "requires_billing": status == SubscriptionStatus.expired,
    }


def get_subscription_summary(
    db: Session,
    principal: Principal,
    *,
    school_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    target_school_id = school_id if school_id is not None else principal.school_id
    if target_school_id is None:
        raise NoTenantError()
    ensure_allowed(principal, Operation.read, ProtectedEntity.school, school_id=target_school_id)
    school = db.get(School, target_school_id)
    if school is None:
        raise NotFoundError("School not found")
    current_time = resolve_now(now)
    status = refresh_subscription_status(db, school, now=current_time)
    return serialize_subscription_summary(
        school,
        status=status,
        student_count=count_students(db, school.id),
        now=current_time,
    )


def activate_school_manually(
    db: Session,
    principal: Principal,
    *,
    school_id: int,
    plan_type: PlanType,
    duration_months: int = 1,
    custom_expiry: datetime | None = None,
    now: datetime | None = None,
) -> School:
    ensure_super_admin(principal)
    current_time = resolve_now(now)
    if custom_expiry is not None:
        expires_at = ensure_utc(custom_expiry)
        if expires_at <= current_time:
            raise ValidationError("Custom expiry must be in the future")
    else:
        if duration_months < 1:
            raise ValidationError("Duration must be at least one month")
        expires_at = add_months(current_time, duration_months)

    with school_activation_lock(school_id=school_id):
        school = get_school_for_update(db, school_id)
        apply_activation(school, plan_type=plan_type, expires_at=expires_at, now=current_time)
        db.commit()
    db.refresh(school)
    logger.info(
        "subscription_activated_manually",
        school_id=school_id,
        plan_type=PlanType(plan_type).value,
        next_payment_date=str(expires_at),
        activated_by=principal.user_id,
    )
    return school


def deactivate_school(db: Session, principal: Principal, *, school_id: int) -> School:
    ensure_super_admin(principal)
    school = get_school_for_update(db, school_id)
    school.subscription_status = SubscriptionStatus.expired
    school.next_payment_date = None
    db.commit()
    db.refresh(school)
    logger.info("subscription_deactivated", school_id=school_id, deactivated_by=principal.user_id)
    return school


def update_school_plan(db: Session, principal: Principal, *, school_id: int, plan_type: PlanType) -> School:
    ensure_super_admin(principal)
    school = get_school_for_update(db, school_id)
    school.plan_type = PlanType(plan_type)
    school.max_students = max_students_for(plan_type)
    db.commit()
    db.refresh(school)
    logger.info(
        "school_plan_updated",
        school_id=school_id,
        plan_type=school.plan_type.value,
        max_students=school.max_students,
    )
    return school


def override_school_subscription(
    db: Session,
    principal: Principal,
    *,
    school_id: int,
    plan_type: PlanType,
    status: SubscriptionStatus,
    max_students: int,
    subscription_days: int,
    now: datetime | None = None,
) -> School:
    """Super-admin tooling: write subscription fields verbatim.

    `max_students` is taken as given and not checked against the plan.
    """
    ensure_super_admin(principal)
    if max_students < 0:
        raise ValidationError("max_students cannot be negative")
    if SubscriptionStatus(status) == SubscriptionStatus.active and subscription_days < 1:
        raise ValidationError("Active subscriptions need at least one day")
    current_time = resolve_now(now)
    school = get_school_for_update(db, school_id)
    school.plan_type = PlanType(plan_type)
    school.subscription_status = SubscriptionStatus(status)
    school.max_students = max_students
    if school.subscription_status == SubscriptionStatus.active:
        school.next_payment_date = current_time + timedelta(days=subscription_days)
        school.last_payment_date = current_time
    else:
        school.next_payment_date = None
    db.commit()
    db.refresh(school)
    logger.info(
        "subscription_overridden",
        school_id=school_id,
        status=school.subscription_status.value,
        plan_type=school.plan_type.value,
        max_students=max_students,
    )
    return school
