"""Subscription billing: manual requests and reviews, and mobile money.

Every path that activates a subscription goes through
``subscription_service.apply_activation`` under a row lock on the school.
Reviews also require the per-school activation lock; provider
confirmations wait for it briefly and never fail on contention.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolfee.application.errors import (
    DuplicateTransactionError,
    InvalidTransitionError,
    NoTenantError,
    NotFoundError,
    ValidationError,
)
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
    ensure_super_admin,
    scope_query,
)
from schoolfee.application.services.billing_lock_service import school_activation_lock
from schoolfee.application.services.pagination_service import paginate_scalars
from schoolfee.application.services.subscription_service import apply_activation, get_school_for_update
from schoolfee.config import settings
from schoolfee.domain.billing_status import BillingMethod, BillingStatus
from schoolfee.domain.clock import ensure_utc, resolve_now
from schoolfee.domain.subscription import (
    PLAN_CAPACITY,
    BillingPeriod,
    BillingPlan,
    PlanType,
    add_months,
    parse_billing_plan,
    period_expiry,
    plan_price,
)
from schoolfee.infrastructure.db.models import BillingRecord, School
from schoolfee.infrastructure.logging import get_logger
from schoolfee.infrastructure.payments.mpesa_client import MpesaClient
from schoolfee.interfaces.api.v1.schemas.billing import MobileMoneyCallbackPayload
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta

logger = get_logger(__name__)


def serialize_billing_record_response(record: BillingRecord) -> dict:
    return {
        "id": record.id,
        "school_id": record.school_id,
        "school_name": record.school.name if record.school is not None else None,
        "amount": record.amount,
        "plan_type": record.plan_type,
        "payment_method": record.payment_method,
        "transaction_id": record.transaction_id,
        "expiry_date": ensure_utc(record.expiry_date),
        "status": record.status,
        "reviewed_at": ensure_utc(record.reviewed_at),
        "created_at": ensure_utc(record.created_at),
    }


def list_plan_options() -> list[dict]:
    return [
        {
            "plan_type": plan_type,
            "max_students": PLAN_CAPACITY[plan_type],
            "monthly_price": plan_price(plan_type, BillingPeriod.monthly),
            "yearly_price": plan_price(plan_type, BillingPeriod.yearly),
        }
        for plan_type in PlanType
    ]


def list_billing_records(
    db: Session,
    principal: Principal,
    *,
    offset: int,
    limit: int,
    status: BillingStatus | None = None,
    school_id: int | None = None,
) -> tuple[list[BillingRecord], PaginationMeta]:
    query = scope_query(select(BillingRecord), principal, ProtectedEntity.billing_record, BillingRecord.school_id)
    if status is not None:
        query = query.where(BillingRecord.status == status)
    if school_id is not None:
        query = query.where(BillingRecord.school_id == school_id)
    return paginate_scalars(
        db,
        query.order_by(BillingRecord.created_at.desc(), BillingRecord.id.desc()),
        offset=offset,
        limit=limit,
    )


def request_subscription(
    db: Session,
    principal: Principal,
    *,
    plan_type: PlanType,
    period: BillingPeriod,
) -> BillingRecord:
    if principal.school_id is None:
        raise NoTenantError()
    school_id = principal.school_id
    ensure_allowed(principal, Operation.insert, ProtectedEntity.billing_record, school_id=school_id)

    plan = BillingPlan(plan_type=PlanType(plan_type), period=BillingPeriod(period))
    record = BillingRecord(
        school_id=school_id,
        amount=plan_price(plan_type, period),
        plan_type=plan.key,
        payment_method=BillingMethod.manual.value,
        status=BillingStatus.pending,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info(
        "billing_record_requested",
        school_id=school_id,
        billing_record_id=record.id,
        plan=plan.key,
        amount=str(record.amount),
    )
    return record


def _get_billing_record_for_update(db: Session, record_id: int) -> BillingRecord:
    record = db.execute(
        select(BillingRecord)
        .where(BillingRecord.id == record_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if record is None:
        raise NotFoundError("Billing record not found")
    return record


def _ensure_pending(record: BillingRecord) -> None:
    if record.status != BillingStatus.pending:
        logger.warning(
            "billing_record_transition_rejected",
            billing_record_id=record.id,
            status=BillingStatus(record.status).value,
        )
        raise InvalidTransitionError(f"Billing record is already {BillingStatus(record.status).value}")


def _parse_plan(record: BillingRecord) -> BillingPlan:
    try:
        return parse_billing_plan(record.plan_type)
    except ValueError as exc:
        raise ValidationError(f"Unknown billing plan '{record.plan_type}'") from exc


def approve_billing_record(
    db: Session,
    principal: Principal,
    *,
    record_id: int,
    now: datetime | None = None,
) -> BillingRecord:
    """Approve a pending request and activate the school.

    The plan key decides the activated plan and the period length (30 or 365
    days from now). Legacy keys without a size keep the school's plan.
    """
    ensure_super_admin(principal)
    current_time = resolve_now(now)
    record = db.get(BillingRecord, record_id)
    if record is None:
        raise NotFoundError("Billing record not found")
    ensure_allowed(principal, Operation.update, ProtectedEntity.billing_record, school_id=record.school_id)
    school_id = record.school_id

    with school_activation_lock(school_id=school_id):
        record = _get_billing_record_for_update(db, record_id)
        _ensure_pending(record)
        plan = _parse_plan(record)
        school = get_school_for_update(db, school_id)
        expires_at = period_expiry(plan.period, current_time)
        record.status = BillingStatus.approved
        record.reviewed_at = current_time
        record.reviewed_by_user_id = principal.user_id
        record.expiry_date = expires_at
        apply_activation(
            school,
            plan_type=plan.plan_type or school.plan_type,
            expires_at=expires_at,
            now=current_time,
        )
        db.commit()

    db.refresh(record)
    logger.info(
        "billing_record_approved",
        billing_record_id=record.id,
        school_id=school_id,
        plan=record.plan_type,
        expiry_date=str(expires_at),
        approved_by=principal.user_id,
    )
    return record


def reject_billing_record(
    db: Session,
    principal: Principal,
    *,
    record_id: int,
    now: datetime | None = None,
) -> BillingRecord:
    ensure_super_admin(principal)
    record = _get_billing_record_for_update(db, record_id)
    ensure_allowed(principal, Operation.update, ProtectedEntity.billing_record, school_id=record.school_id)
    _ensure_pending(record)
    record.status = BillingStatus.rejected
    record.reviewed_at = resolve_now(now)
    record.reviewed_by_user_id = principal.user_id
    db.commit()
    db.refresh(record)
    logger.info(
        "billing_record_rejected",
        billing_record_id=record.id,
        school_id=record.school_id,
        rejected_by=principal.user_id,
    )
    return record


def _normalize_phone(phone: str) -> str:
    return phone.strip().replace(" ", "").lstrip("+")


def initiate_mobile_money_payment(
    db: Session,
    principal: Principal,
    *,
    phone: str,
    client: MpesaClient,
    now: datetime | None = None,
) -> dict:
    """Start an STK push for one month of the school's current plan.

    Nothing is stored here; the billing record is written when the provider
    confirms the payment through the callback.
    """
    if principal.school_id is None:
        raise NoTenantError()
    school_id = principal.school_id
    ensure_allowed(principal, Operation.insert, ProtectedEntity.billing_record, school_id=school_id)
    school = db.get(School, school_id)
    if school is None:
        raise NotFoundError("School not found")

    plan = BillingPlan(plan_type=PlanType(school.plan_type), period=BillingPeriod.monthly)
    amount = plan_price(plan.plan_type, plan.period)
    normalized_phone = _normalize_phone(phone)
    logger.info(
        "mpesa_payment_initiation_started",
        school_id=school_id,
        plan=plan.key,
        amount=str(amount),
        phone=normalized_phone,
    )
    result = client.stk_push(
        phone=normalized_phone,
        amount=amount,
        account_reference=str(school_id),
        description=f"School fee system {plan.key} subscription",
        now=resolve_now(now),
    )
    logger.info(
        "mpesa_payment_initiated",
        school_id=school_id,
        checkout_request_id=result.checkout_request_id,
    )
    return {
        "school_id": school_id,
        "amount": amount,
        "plan_type": plan.key,
        "merchant_request_id": result.merchant_request_id,
        "checkout_request_id": result.checkout_request_id,
        "customer_message": result.customer_message,
    }


def _parse_school_reference(value) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ValidationError("Callback account reference is not a school id") from exc


def _parse_amount(value) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError("Callback amount is not a number") from exc


def process_payment_callback(
    db: Session,
    payload: MobileMoneyCallbackPayload,
    *,
    now: datetime | None = None,
) -> BillingRecord | None:
    """Apply a provider confirmation.

    A failed payment is logged and ignored. A successful one records an
    approved billing record and activates the school for one calendar month
    on its current plan. Redelivered confirmations raise
    ``DuplicateTransactionError``.
    """
    callback = payload.Body.stkCallback
    if callback.ResultCode != 0:
        logger.warning(
            "mpesa_callback_failed",
            result_code=callback.ResultCode,
            result_desc=callback.ResultDesc,
            checkout_request_id=callback.CheckoutRequestID,
        )
        return None

    transaction_id = callback.metadata_value("MpesaReceiptNumber")
    if not transaction_id:
        raise ValidationError("Callback is missing the transaction id")
    transaction_id = str(transaction_id)
    school_id = _parse_school_reference(callback.metadata_value("AccountReference"))
    amount = _parse_amount(callback.metadata_value("Amount"))

    existing = db.execute(select(BillingRecord.id).where(BillingRecord.transaction_id == transaction_id)).first()
    if existing is not None:
        logger.info("mpesa_callback_duplicate", transaction_id=transaction_id, school_id=school_id)
        raise DuplicateTransactionError(transaction_id)

    current_time = resolve_now(now)
    expires_at = add_months(current_time, 1)
    # A confirmed payment is never refused; contention falls back to the row lock.
    with school_activation_lock(
        school_id=school_id,
        wait_seconds=settings.billing_lock_wait_seconds,
        required=False,
    ):
        school = get_school_for_update(db, school_id)
        plan = BillingPlan(plan_type=PlanType(school.plan_type), period=BillingPeriod.monthly)
        record = BillingRecord(
            school_id=school_id,
            amount=amount,
            plan_type=plan.key,
            payment_method=BillingMethod.mpesa.value,
            transaction_id=transaction_id,
            expiry_date=expires_at,
            status=BillingStatus.approved,
            reviewed_at=current_time,
        )
        db.add(record)
        apply_activation(school, plan_type=school.plan_type, expires_at=expires_at, now=current_time)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            logger.info("mpesa_callback_duplicate", transaction_id=transaction_id, school_id=school_id)
            raise DuplicateTransactionError(transaction_id) from exc

    db.refresh(record)
    logger.info(
        "mpesa_payment_processed",
        transaction_id=transaction_id,
        school_id=school_id,
        amount=str(amount),
        expiry_date=str(expires_at),
    )
    return record
