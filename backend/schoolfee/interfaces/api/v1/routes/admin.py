from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.billing_service import (
    approve_billing_record,
    list_billing_records,
    reject_billing_record,
    serialize_billing_record_response,
)
from schoolfee.application.services.notification_service import send_notification, serialize_notification_response
from schoolfee.application.services.school_service import (
    delete_school,
    get_platform_stats,
    list_admin_profiles,
    list_all_schools,
    serialize_school_response,
    set_monthly_target,
)
from schoolfee.application.services.subscription_service import (
    activate_school_manually,
    deactivate_school,
    get_subscription_summary,
    override_school_subscription,
    update_school_plan,
)
from schoolfee.domain.billing_status import BillingStatus
from schoolfee.infrastructure.db.session import get_db
from schoolfee.interfaces.api.v1.dependencies.auth import require_super_admin
from schoolfee.interfaces.api.v1.dependencies.pagination import get_pagination_params
from schoolfee.interfaces.api.v1.schemas.billing import BillingRecordListResponse, BillingRecordResponse
from schoolfee.interfaces.api.v1.schemas.notification import NotificationCreate, NotificationResponse
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationParams
from schoolfee.interfaces.api.v1.schemas.school import (
    AdminProfileResponse,
    ManualActivationRequest,
    MonthlyTargetUpdate,
    PlanUpdateRequest,
    PlatformStatsResponse,
    SchoolListResponse,
    SchoolResponse,
    SubscriptionOverrideRequest,
    SubscriptionSummaryResponse,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/schools",
    response_model=SchoolListResponse,
    summary="List all schools",
    description="Every tenant with its effective subscription status.",
)
def get_all_schools(
    principal: Principal = Depends(require_super_admin),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: Session = Depends(get_db),
):
    items, meta = list_all_schools(
        db=db,
        principal=principal,
        offset=pagination.offset,
        limit=pagination.limit,
        search=pagination.search,
    )
    return {"items": items, "pagination": meta}


@router.get("/stats", response_model=PlatformStatsResponse, summary="Platform statistics")
def get_stats(principal: Principal = Depends(require_super_admin), db: Session = Depends(get_db)):
    return get_platform_stats(db=db, principal=principal)


@router.get("/admins", response_model=list[AdminProfileResponse], summary="List school admins")
def get_admin_profiles(principal: Principal = Depends(require_super_admin), db: Session = Depends(get_db)):
    return list_admin_profiles(db=db, principal=principal)


@router.get(
    "/schools/{school_id}/subscription",
    response_model=SubscriptionSummaryResponse,
    summary="School subscription summary",
)
def get_school_subscription(
    school_id: int,
    principal: Principal = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    return get_subscription_summary(db=db, principal=principal, school_id=school_id)


@router.post(
    "/schools/{school_id}/activate",
    response_model=SchoolResponse,
    summary="Activate school manually",
    description="Activate for a number of calendar months, or until `custom_expiry` when given.",
    responses={409: {"description": "Another activation is in progress"}},
)
def activate_school(
    school_id: int,
    payload: ManualActivationRequest,
    principal: Principal = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    school = activate_school_manually(
        db=db,
        principal=principal,
        school_id=school_id,
        plan_type=payload.plan_type,
        duration_months=payload.duration_months,
        custom_expiry=payload.custom_expiry,
    )
    return serialize_school_response(school)


@router.post("/schools/{school_id}/deactivate", response_model=SchoolResponse, summary="Deactivate school")
def deactivate(school_id: int, principal: Principal = Depends(require_super_admin), db: Session = Depends(get_db)):
    return serialize_school_response(deactivate_school(db=db, principal=principal, school_id=school_id))


@router.put("/schools/{school_id}/plan", response_model=SchoolResponse, summary="Change school plan")
def change_plan(
    school_id: int,
    payload: PlanUpdateRequest,
    principal: Principal = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    school = update_school_plan(db=db, principal=principal, school_id=school_id, plan_type=payload.plan_type)
    return serialize_school_response(school)


@router.put(
    "/schools/{school_id}/subscription",
    response_model=SchoolResponse,
    summary="Override subscription",
    description="Write plan, status, student limit and duration directly. The limit is not checked against the plan.",
)
def override_subscription(
    school_id: int,
    payload: SubscriptionOverrideRequest,
    principal: Principal = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    school = override_school_subscription(
        db=db,
        principal=principal,
        school_id=school_id,
        plan_type=payload.plan_type,
        status=payload.subscription_status,
        max_students=payload.max_students,
        subscription_days=payload.subscription_days,
    )
    return serialize_school_response(school)


@router.put("/schools/{school_id}/monthly-target", response_model=SchoolResponse, summary="Set monthly target")
def update_monthly_target(
    school_id: int,
    payload: MonthlyTargetUpdate,
    principal: Principal = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    school = set_monthly_target(db=db, principal=principal, school_id=school_id, monthly_target=payload.monthly_target)
    return serialize_school_response(school)


@router.delete(
    "/schools/{school_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete school",
    description="Deletes the school with all of its data and revokes its admins' access.",
)
def remove_school(school_id: int, principal: Principal = Depends(require_super_admin), db: Session = Depends(get_db)):
    delete_school(db=db, principal=principal, school_id=school_id)


@router.get("/billing", response_model=BillingRecordListResponse, summary="List billing records")
def get_all_billing_records(
    status_filter: BillingStatus | None = Query(default=None, alias="status"),
    school_id: int | None = Query(default=None),
    principal: Principal = Depends(require_super_admin),
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
    "/billing/{record_id}/approve",
    response_model=BillingRecordResponse,
    summary="Approve billing request",
    responses={409: {"description": "Record is not pending"}},
)
def approve(record_id: int, principal: Principal = Depends(require_super_admin), db: Session = Depends(get_db)):
    return serialize_billing_record_response(approve_billing_record(db=db, principal=principal, record_id=record_id))


@router.post(
    "/billing/{record_id}/reject",
    response_model=BillingRecordResponse,
    summary="Reject billing request",
    responses={409: {"description": "Record is not pending"}},
)
def reject(record_id: int, principal: Principal = Depends(require_super_admin), db: Session = Depends(get_db)):
    return serialize_billing_record_response(reject_billing_record(db=db, principal=principal, record_id=record_id))


@router.post(
    "/notifications",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Notify a school",
)
def notify_school(
    payload: NotificationCreate,
    principal: Principal = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    return serialize_notification_response(send_notification(db=db, principal=principal, payload=payload))
