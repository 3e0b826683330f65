from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.payment_service import (
    create_payment,
    delete_payment,
    get_payment,
    list_payments,
    serialize_payment_response,
    update_payment,
)
from schoolfee.infrastructure.db.session import get_db
from schoolfee.interfaces.api.v1.dependencies.auth import (
    get_current_school_id,
    require_active_subscription,
    require_tenant,
)
from schoolfee.interfaces.api.v1.dependencies.pagination import get_pagination_params
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationParams
from schoolfee.interfaces.api.v1.schemas.payment import (
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentUpdate,
)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.get(
    "",
    response_model=PaymentListResponse,
    summary="List payments",
    description="Newest first. `search` matches receipt number, student name or admission number.",
)
def get_payments(
    student_id: int | None = Query(default=None),
    principal: Principal = Depends(require_tenant),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: Session = Depends(get_db),
):
    payments, meta = list_payments(
        db=db,
        principal=principal,
        offset=pagination.offset,
        limit=pagination.limit,
        search=pagination.search,
        student_id=student_id,
    )
    return {"items": [serialize_payment_response(payment) for payment in payments], "pagination": meta}


@router.post(
    "",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record payment",
    description="Records a fee payment and issues the next `RCP-<year>-<sequence>` receipt number.",
    responses={402: {"description": "Subscription expired"}, 404: {"description": "Student not found"}},
)
def create_payment_endpoint(
    payload: PaymentCreate,
    principal: Principal = Depends(require_active_subscription),
    school_id: int = Depends(get_current_school_id),
    db: Session = Depends(get_db),
):
    payment = create_payment(db=db, principal=principal, school_id=school_id, payload=payload)
    return serialize_payment_response(payment)


@router.get("/{payment_id}", response_model=PaymentResponse, summary="Get payment")
def get_payment_endpoint(
    payment_id: int,
    principal: Principal = Depends(require_tenant),
    db: Session = Depends(get_db),
):
    return serialize_payment_response(get_payment(db=db, principal=principal, payment_id=payment_id))


@router.patch(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Edit payment",
    description="Only amount, method, notes and date are editable; the receipt number never changes.",
)
def update_payment_endpoint(
    payment_id: int,
    payload: PaymentUpdate,
    principal: Principal = Depends(require_active_subscription),
    db: Session = Depends(get_db),
):
    payment = update_payment(db=db, principal=principal, payment_id=payment_id, payload=payload)
    return serialize_payment_response(payment)


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete payment")
def delete_payment_endpoint(
    payment_id: int,
    principal: Principal = Depends(require_active_subscription),
    db: Session = Depends(get_db),
):
    delete_payment(db=db, principal=principal, payment_id=payment_id)
