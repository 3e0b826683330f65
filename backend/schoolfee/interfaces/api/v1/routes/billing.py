from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from schoolfee.application.errors import DuplicateTransactionError
from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.billing_service import (
    initiate_mobile_money_payment,
    list_billing_records,
    list_plan_options,
    process_payment_callback,
    request_subscription,
    serialize_billing_record_response,
)
from schoolfee.domain.billing_status import BillingStatus
from schoolfee.infrastructure.db.session import get_db
from schoolfee.infrastructure.payments.mpesa_client import MpesaClient, get_mpesa_client
from schoolfee.interfaces.api.v1.dependencies.auth import get_current_school_id, require_tenant
from schoolfee.interfaces.api.v1.dependencies.pagination import get_pagination_params
from schoolfee.interfaces.api.v1.schemas.billing import (
    BillingRecordListResponse,
    BillingRecordResponse,
    CallbackAcknowledgement,
    MobileMoneyCallbackPayload,
    MobileMoneyPaymentRequest,
    MobileMoneyPaymentResponse,
    PlanOptionResponse,
    SubscriptionRequestCreate,
)
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationParams

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/plans", response_model=list[PlanOptionResponse], summary="Plan catalogue")
def get_plans():
    return list_plan_options()


@router.get("", response_model=BillingRecordListResponse, summary="Own billing history")
def get_billing_records(
    status_filter: BillingStatus | None = Query(default=None, alias="status"),
    principal: Principal = Depends(require_tenant),
    school_id: int = Depends(get_current_school_id),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: Session = Depends(get_db),
):
    records, meta = list_billing_records(
        db=db,
        principal=principal,
        offset=pagination.offset,
        limit=pagination.limit,
        status=status_filter,
        school_id=school_id,
    )
    return {"items": [serialize_billing_record_response(record) for record in records], "pagination": meta}


@router.post(
    "/requests",
    response_model=BillingRecordResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request subscription",
    description="Create a pending manual payment request priced from the plan table, for super-admin review.",
)
def create_subscription_request(
    payload: SubscriptionRequestCreate,
    principal: Principal = Depends(require_tenant),
    db: Session = Depends(get_db),
):
    record = request_subscription(db=db, principal=principal, plan_type=payload.plan_type, period=payload.period)
    return serialize_billing_record_response(record)


@router.post(
    "/mpesa/stk-push",
    response_model=MobileMoneyPaymentResponse,
    summary="Pay with M-PESA",
    description="Send an STK push for one month of the school's current plan.",
    responses={502: {"description": "Payment provider failure"}},
)
def start_mobile_money_payment(
    payload: MobileMoneyPaymentRequest,
    principal: Principal = Depends(require_tenant),
    client: MpesaClient = Depends(get_mpesa_client),
    db: Session = Depends(get_db),
):
    return initiate_mobile_money_payment(db=db, principal=principal, phone=payload.phone, client=client)


@router.post(
    "/mpesa/callback",
    response_model=CallbackAcknowledgement,
    summary="M-PESA confirmation webhook",
    description="Provider callback. Failed payments are logged; redelivered confirmations are acknowledged.",
)
def mpesa_callback(payload: MobileMoneyCallbackPayload, db: Session = Depends(get_db)):
    try:
        process_payment_callback(db=db, payload=payload)
    except DuplicateTransactionError:
        return CallbackAcknowledgement(ResultDesc="Already processed")
    return CallbackAcknowledgement()
