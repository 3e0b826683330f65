from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolfee.application.errors import NotFoundError, ValidationError
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
    scope_query,
)
from schoolfee.application.services.pagination_service import paginate_scalars
from schoolfee.application.services.receipt_service import next_receipt_number
from schoolfee.domain.clock import ensure_utc, resolve_now
from schoolfee.infrastructure.db.models import Payment, Student
from schoolfee.infrastructure.logging import get_logger
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta
from schoolfee.interfaces.api.v1.schemas.payment import PaymentCreate, PaymentUpdate

logger = get_logger(__name__)

EDITABLE_FIELDS = ("amount", "payment_method", "notes", "payment_date")


def serialize_payment_response(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "school_id": payment.school_id,
        "student_id": payment.student_id,
        "amount": payment.amount,
        "payment_date": ensure_utc(payment.payment_date),
        "payment_method": payment.payment_method,
        "receipt_number": payment.receipt_number,
        "notes": payment.notes,
        "created_at": ensure_utc(payment.created_at),
        "updated_at": ensure_utc(payment.updated_at),
        "student": {
            "id": payment.student.id,
            "admission_no": payment.student.admission_no,
            "full_name": payment.student.full_name,
        },
    }


def list_payments(
    db: Session,
    principal: Principal,
    *,
    offset: int,
    limit: int,
    search: str | None = None,
    student_id: int | None = None,
) -> tuple[list[Payment], PaginationMeta]:
    query = scope_query(
        select(Payment).join(Student, Student.id == Payment.student_id),
        principal,
        ProtectedEntity.payment,
        Payment.school_id,
    )
    if student_id is not None:
        query = query.where(Payment.student_id == student_id)
    return paginate_scalars(
        db,
        query.order_by(Payment.payment_date.desc(), Payment.id.desc()),
        offset=offset,
        limit=limit,
        search=search,
        search_columns=[Payment.receipt_number, Student.full_name, Student.admission_no],
    )


def get_payment(db: Session, principal: Principal, payment_id: int) -> Payment:
    query = scope_query(
        select(Payment).where(Payment.id == payment_id),
        principal,
        ProtectedEntity.payment,
        Payment.school_id,
    )
    payment = db.execute(query).scalar_one_or_none()
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


def _get_payment_for_write(db: Session, principal: Principal, payment_id: int, operation: Operation) -> Payment:
    payment = db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    ensure_allowed(principal, operation, ProtectedEntity.payment, school_id=payment.school_id)
    return payment


def _get_student_in_school(db: Session, *, student_id: int, school_id: int) -> Student:
    student = db.execute(
        select(Student).where(Student.id == student_id, Student.school_id == school_id)
    ).scalar_one_or_none()
    if student is None:
        raise NotFoundError("Student not found")
    return student


def _normalize_payment_date(value: datetime | None, now: datetime) -> datetime:
    return ensure_utc(value) if value is not None else now


def create_payment(
    db: Session,
    principal: Principal,
    *,
    school_id: int,
    payload: PaymentCreate,
    now: datetime | None = None,
) -> Payment:
    ensure_allowed(principal, Operation.insert, ProtectedEntity.payment, school_id=school_id)
    if payload.amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")
    logger.info(
        "payment_creation_started",
        school_id=school_id,
        student_id=payload.student_id,
        amount=str(payload.amount),
    )
    _get_student_in_school(db, student_id=payload.student_id, school_id=school_id)

    current_time = resolve_now(now)
    payment = Payment(
        school_id=school_id,
        student_id=payload.student_id,
        amount=payload.amount,
        payment_date=_normalize_payment_date(payload.payment_date, current_time),
        payment_method=(payload.payment_method or "Cash").strip() or "Cash",
        receipt_number=next_receipt_number(db, now=current_time),
        notes=payload.notes,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    logger.info(
        "payment_creation_completed",
        school_id=school_id,
        student_id=payment.student_id,
        payment_id=payment.id,
        receipt_number=payment.receipt_number,
        amount=str(payment.amount),
    )
    return payment


def update_payment(db: Session, principal: Principal, *, payment_id: int, payload: PaymentUpdate) -> Payment:
    """Edit a recorded payment.

    Only amount, method, notes and date can change; the student and the
    receipt number are fixed once issued.
    """
    payment = _get_payment_for_write(db, principal, payment_id, Operation.update)
    changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if key in EDITABLE_FIELDS}
    if "amount" in changes:
        if changes["amount"] is None or changes["amount"] <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        payment.amount = changes["amount"]
    if changes.get("payment_method") is not None:
        payment.payment_method = changes["payment_method"].strip() or payment.payment_method
    if "notes" in changes:
        payment.notes = changes["notes"]
    if changes.get("payment_date") is not None:
        payment.payment_date = ensure_utc(changes["payment_date"])
    db.commit()
    db.refresh(payment)
    logger.info("payment_updated", payment_id=payment.id, school_id=payment.school_id, fields=sorted(changes))
    return payment


def delete_payment(db: Session, principal: Principal, *, payment_id: int) -> None:
    payment = _get_payment_for_write(db, principal, payment_id, Operation.delete)
    school_id = payment.school_id
    db.delete(payment)
    db.commit()
    logger.info("payment_deleted", school_id=school_id, payment_id=payment_id)
