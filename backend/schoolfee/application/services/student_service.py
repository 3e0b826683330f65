from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolfee.application.errors import CapacityExceededError, ConflictError, NotFoundError
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
    scope_query,
)
from schoolfee.application.services.pagination_service import paginate_scalars
from schoolfee.application.services.subscription_service import count_students, get_school_for_update
from schoolfee.domain.clock import ensure_utc
from schoolfee.infrastructure.db.models import FeeStructure, Payment, Student
from schoolfee.infrastructure.logging import get_logger
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta
from schoolfee.interfaces.api.v1.schemas.student import StudentCreate, StudentUpdate

logger = get_logger(__name__)

ZERO = Decimal("0.00")


def get_paid_totals(db: Session, student_ids: list[int]) -> dict[int, Decimal]:
    if not student_ids:
        return {}
    rows = db.execute(
        select(Payment.student_id, func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.student_id.in_(student_ids))
        .group_by(Payment.student_id)
    ).all()
    return {student_id: Decimal(total) for student_id, total in rows}


def serialize_student_response(student: Student, *, total_paid: Decimal = ZERO) -> dict:
    total_fee = Decimal(student.total_fee or ZERO)
    fee_class = None
    if student.fee_structure is not None:
        fee_class = {
            "id": student.fee_structure.id,
            "class_name": student.fee_structure.class_name,
            "fee_amount": student.fee_structure.fee_amount,
        }
    return {
        "id": student.id,
        "school_id": student.school_id,
        "admission_no": student.admission_no,
        "full_name": student.full_name,
        "parent_name": student.parent_name,
        "parent_contact": student.parent_contact,
        "class_id": student.class_id,
        "total_fee": total_fee,
        "total_paid": total_paid,
        "balance": total_fee - total_paid,
        "fee_class": fee_class,
        "created_at": ensure_utc(student.created_at),
        "updated_at": ensure_utc(student.updated_at),
    }


def serialize_students(db: Session, students: list[Student]) -> list[dict]:
    paid = get_paid_totals(db, [student.id for student in students])
    return [serialize_student_response(student, total_paid=paid.get(student.id, ZERO)) for student in students]


def list_students(
    db: Session,
    principal: Principal,
    *,
    offset: int,
    limit: int,
    search: str | None = None,
    class_id: int | None = None,
) -> tuple[list[Student], PaginationMeta]:
    query = scope_query(select(Student), principal, ProtectedEntity.student, Student.school_id)
    if class_id is not None:
        query = query.where(Student.class_id == class_id)
    return paginate_scalars(
        db,
        query.order_by(Student.created_at.desc(), Student.id.desc()),
        offset=offset,
        limit=limit,
        search=search,
        search_columns=[Student.full_name, Student.admission_no],
    )


def get_student(db: Session, principal: Principal, student_id: int) -> Student:
    query = scope_query(
        select(Student).where(Student.id == student_id), principal, ProtectedEntity.student, Student.school_id
    )
    student = db.execute(query).scalar_one_or_none()
    if student is None:
        raise NotFoundError("Student not found")
    return student


def _get_student_for_write(db: Session, principal: Principal, student_id: int, operation: Operation) -> Student:
    student = db.get(Student, student_id)
    if student is None:
        raise NotFoundError("Student not found")
    ensure_allowed(principal, operation, ProtectedEntity.student, school_id=student.school_id)
    return student


def _get_fee_structure_in_school(db: Session, *, class_id: int, school_id: int) -> FeeStructure:
    fee_structure = db.execute(
        select(FeeStructure).where(FeeStructure.id == class_id, FeeStructure.school_id == school_id)
    ).scalar_one_or_none()
    if fee_structure is None:
        raise NotFoundError("Class not found")
    return fee_structure


def _ensure_admission_no_available(
    db: Session, *, school_id: int, admission_no: str, exclude_student_id: int | None = None
) -> None:
    query = select(Student.id).where(Student.school_id == school_id, Student.admission_no == admission_no)
    if exclude_student_id is not None:
        query = query.where(Student.id != exclude_student_id)
    if db.execute(query).first() is not None:
        raise ConflictError("Admission number already exists in this school")


def create_student(db: Session, principal: Principal, *, school_id: int, payload: StudentCreate) -> Student:
    ensure_allowed(principal, Operation.insert, ProtectedEntity.student, school_id=school_id)
    admission_no = payload.admission_no.strip()
    logger.info("student_creation_started", school_id=school_id, admission_no=admission_no)

    # Count and insert share the school row lock.
    school = get_school_for_update(db, school_id)
    current = count_students(db, school_id)
    if current >= school.max_students:
        db.rollback()
        logger.warning(
            "student_creation_rejected_capacity",
            school_id=school_id,
            current=current,
            maximum=school.max_students,
        )
        raise CapacityExceededError(current=current, maximum=school.max_students)

    _ensure_admission_no_available(db, school_id=school_id, admission_no=admission_no)
    total_fee = ZERO
    if payload.class_id is not None:
        total_fee = _get_fee_structure_in_school(db, class_id=payload.class_id, school_id=school_id).fee_amount

    student = Student(
        school_id=school_id,
        admission_no=admission_no,
        full_name=payload.full_name.strip(),
        parent_name=payload.parent_name,
        parent_contact=payload.parent_contact,
        class_id=payload.class_id,
        total_fee=total_fee,
    )
    db.add(student)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Admission number already exists in this school") from exc
    db.refresh(student)
    logger.info("student_created", school_id=school_id, student_id=student.id, total_fee=str(student.total_fee))
    return student


def update_student(db: Session, principal: Principal, *, student_id: int, payload: StudentUpdate) -> Student:
    """Apply a partial update.

    `total_fee` is a snapshot taken from the class when it is assigned; it is
    only recomputed when `class_id` changes to another class.
    """
    student = _get_student_for_write(db, principal, student_id, Operation.update)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("admission_no") is not None:
        admission_no = changes["admission_no"].strip()
        if admission_no != student.admission_no:
            _ensure_admission_no_available(
                db, school_id=student.school_id, admission_no=admission_no, exclude_student_id=student.id
            )
            student.admission_no = admission_no
    if changes.get("full_name") is not None:
        student.full_name = changes["full_name"].strip()
    for field_name in ("parent_name", "parent_contact"):
        if field_name in changes:
            setattr(student, field_name, changes[field_name])

    if "class_id" in changes and changes["class_id"] != student.class_id:
        new_class_id = changes["class_id"]
        if new_class_id is not None:
            fee_structure = _get_fee_structure_in_school(db, class_id=new_class_id, school_id=student.school_id)
            student.total_fee = fee_structure.fee_amount
        student.class_id = new_class_id

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Admission number already exists in this school") from exc
    db.refresh(student)
    logger.info("student_updated", school_id=student.school_id, student_id=student.id, fields=sorted(changes))
    return student


def delete_student(db: Session, principal: Principal, *, student_id: int) -> None:
    student = _get_student_for_write(db, principal, student_id, Operation.delete)
    school_id = student.school_id
    db.delete(student)
    db.commit()
    logger.info("student_deleted", school_id=school_id, student_id=student_id)
