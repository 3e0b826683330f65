from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.fee_structure_service import (
    create_fee_structure,
    delete_fee_structure,
    get_fee_structure,
    list_fee_structures,
    serialize_fee_structures,
    update_fee_structure,
)
from schoolfee.infrastructure.db.session import get_db
from schoolfee.interfaces.api.v1.dependencies.auth import (
    get_current_school_id,
    require_active_subscription,
    require_tenant,
)
from schoolfee.interfaces.api.v1.dependencies.pagination import get_pagination_params
from schoolfee.interfaces.api.v1.schemas.fee_structure import (
    FeeStructureCreate,
    FeeStructureListResponse,
    FeeStructureResponse,
    FeeStructureUpdate,
)
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationParams

router = APIRouter(prefix="/fee-structures", tags=["fee-structures"])


@router.get("", response_model=FeeStructureListResponse, summary="List classes and their fees")
def get_fee_structures(
    principal: Principal = Depends(require_tenant),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: Session = Depends(get_db),
):
    items, meta = list_fee_structures(
        db=db,
        principal=principal,
        offset=pagination.offset,
        limit=pagination.limit,
        search=pagination.search,
    )
    return {"items": serialize_fee_structures(db, items), "pagination": meta}


@router.post(
    "",
    response_model=FeeStructureResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create class",
    responses={402: {"description": "Subscription expired"}, 409: {"description": "Class name already exists"}},
)
def create_fee_structure_endpoint(
    payload: FeeStructureCreate,
    principal: Principal = Depends(require_active_subscription),
    school_id: int = Depends(get_current_school_id),
    db: Session = Depends(get_db),
):
    fee_structure = create_fee_structure(db=db, principal=principal, school_id=school_id, payload=payload)
    return serialize_fee_structures(db, [fee_structure])[0]


@router.get("/{fee_structure_id}", response_model=FeeStructureResponse, summary="Get class")
def get_fee_structure_endpoint(
    fee_structure_id: int,
    principal: Principal = Depends(require_tenant),
    db: Session = Depends(get_db),
):
    fee_structure = get_fee_structure(db=db, principal=principal, fee_structure_id=fee_structure_id)
    return serialize_fee_structures(db, [fee_structure])[0]


@router.put(
    "/{fee_structure_id}",
    response_model=FeeStructureResponse,
    summary="Update class",
    description="Changing the fee does not alter the fee already recorded on enrolled students.",
)
def update_fee_structure_endpoint(
    fee_structure_id: int,
    payload: FeeStructureUpdate,
    principal: Principal = Depends(require_active_subscription),
    db: Session = Depends(get_db),
):
    fee_structure = update_fee_structure(db=db, principal=principal, fee_structure_id=fee_structure_id, payload=payload)
    return serialize_fee_structures(db, [fee_structure])[0]


@router.delete("/{fee_structure_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete class")
def delete_fee_structure_endpoint(
    fee_structure_id: int,
    principal: Principal = Depends(require_active_subscription),
    db: Session = Depends(get_db),
):
    delete_fee_structure(db=db, principal=principal, fee_structure_id=fee_structure_id)
