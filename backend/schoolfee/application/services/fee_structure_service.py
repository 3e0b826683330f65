from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from schoolfee.application.errors import ConflictError, NotFoundError
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
    scope_query,
)
from schoolfee.application.services.pagination_service import paginate_scalars
from schoolfee.domain.clock import ensure_utc
from schoolfee.infrastructure.db.models import FeeStructure, Student
from schoolfee.infrastructure.logging import get_logger
from schoolfee.interfaces.api.v1.schemas.fee_structure import FeeStructureCreate, FeeStructureUpdate
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta

logger = get_logger(__name__)


def get_student_counts(db: Session, class_ids: list[int]) -> dict[int, int]:
    if not class_ids:
        return {}
    rows = db.execute(
        select(Student.class_id, func.count(Student.id))
        .where(Student.class_id.in_(class_ids))
        .group_by(Student.class_id)
    ).all()
    return {class_id: int(count) for class_id, count in rows}


def serialize_fee_structure_response(fee_structure: FeeStructure, *, student_count: int = 0) -> dict:
    return {
        "id": fee_structure.id,
        "school_id": fee_structure.school_id,
        "class_name": fee_structure.class_name,
        "fee_amount": fee_structure.fee_amount,
        "description": fee_structure.description,
        "student_count": student_count,
        "created_at": ensure_utc(fee_structure.created_at),
        "updated_at": ensure_utc(fee_structure.updated_at),
    }


def serialize_fee_structures(db: Session, fee_structures: list[FeeStructure]) -> list[dict]:
    counts = get_student_counts(db, [item.id for item in fee_structures])
    return [serialize_fee_structure_response(item, student_count=counts.get(item.id, 0)) for item in fee_structures]


def list_fee_structures(
    db: Session,
    principal: Principal,
    *,
    offset: int,
    limit: int,
    search: str | None = None,
) -> tuple[list[FeeStructure], PaginationMeta]:
    query = scope_query(select(FeeStructure), principal, ProtectedEntity.fee_structure, FeeStructure.school_id)
    return paginate_scalars(
        db,
        query.order_by(FeeStructure.class_name, FeeStructure.id),
        offset=offset,
        limit=limit,
        search=search,
        search_columns=[FeeStructure.class_name],
    )


def get_fee_structure(db: Session, principal: Principal, fee_structure_id: int) -> FeeStructure:
    query = scope_query(
        select(FeeStructure).where(FeeStructure.id == fee_structure_id),
        principal,
        ProtectedEntity.fee_structure,
        FeeStructure.school_id,
    )
    fee_structure = db.execute(query).scalar_one_or_none()
    if fee_structure is None:
        raise NotFoundError("Class not found")
    return fee_structure


def _get_fee_structure_for_write(
    db: Session, principal: Principal, fee_structure_id: int, operation: Operation
) -> FeeStructure:
    fee_structure = db.get(FeeStructure, fee_structure_id)
    if fee_structure is None:
        raise NotFoundError("Class not found")
    ensure_allowed(principal, operation, ProtectedEntity.fee_structure, school_id=fee_structure.school_id)
    return fee_structure


def _ensure_class_name_available(
    db: Session, *, school_id: int, class_name: str, exclude_id: int | None = None
) -> None:
    query = select(FeeStructure.id).where(FeeStructure.school_id == school_id, FeeStructure.class_name == class_name)
    if exclude_id is not None:
        query = query.where(FeeStructure.id != exclude_id)
    if db.execute(query).first() is not None:
        raise ConflictError("A class with this name already exists")


def create_fee_structure(
    db: Session, principal: Principal, *, school_id: int, payload: FeeStructureCreate
) -> FeeStructure:
    ensure_allowed(principal, Operation.insert, ProtectedEntity.fee_structure, school_id=school_id)
    class_name = payload.class_name.strip()
    _ensure_class_name_available(db, school_id=school_id, class_name=class_name)
    fee_structure = FeeStructure(
        school_id=school_id,
        class_name=class_name,
        fee_amount=payload.fee_amount,
        description=payload.description,
    )
    db.add(fee_structure)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("A class with this name already exists") from exc
    db.refresh(fee_structure)
    logger.info(
        "fee_structure_created",
        school_id=school_id,
        fee_structure_id=fee_structure.id,
        fee_amount=str(fee_structure.fee_amount),
    )
    return fee_structure


def update_fee_structure(
    db: Session, principal: Principal, *, fee_structure_id: int, payload: FeeStructureUpdate
) -> FeeStructure:
    """Update a class.

    Students keep the fee they were enrolled with; changing `fee_amount` does
    not touch existing `total_fee` snapshots.
    """
    fee_structure = _get_fee_structure_for_write(db, principal, fee_structure_id, Operation.update)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("class_name") is not None:
        class_name = changes["class_name"].strip()
        if class_name != fee_structure.class_name:
            _ensure_class_name_available(
                db, school_id=fee_structure.school_id, class_name=class_name, exclude_id=fee_structure.id
            )
            fee_structure.class_name = class_name
    if changes.get("fee_amount") is not None:
        fee_structure.fee_amount = changes["fee_amount"]
    if "description" in changes:
        fee_structure.description = changes["description"]
    db.commit()
    db.refresh(fee_structure)
    logger.info("fee_structure_updated", fee_structure_id=fee_structure.id, fields=sorted(changes))
    return fee_structure


def delete_fee_structure(db: Session, principal: Principal, *, fee_structure_id: int) -> None:
    fee_structure = _get_fee_structure_for_write(db, principal, fee_structure_id, Operation.delete)
    school_id = fee_structure.school_id
    db.delete(fee_structure)
    db.commit()
    logger.info("fee_structure_deleted", school_id=school_id, fee_structure_id=fee_structure_id)
