from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.school_service import (
    complete_onboarding,
    get_dashboard_summary,
    get_own_school,
    serialize_school_response,
    update_school,
)
from schoolfee.application.services.subscription_service import get_subscription_summary
from schoolfee.infrastructure.db.session import get_db
from schoolfee.interfaces.api.v1.dependencies.auth import get_current_school_id, require_tenant
from schoolfee.interfaces.api.v1.schemas.school import (
    OnboardingRequest,
    SchoolDashboardResponse,
    SchoolResponse,
    SchoolUpdate,
    SubscriptionSummaryResponse,
)

router = APIRouter(prefix="/schools", tags=["schools"])


@router.get("/me", response_model=SchoolResponse, summary="Get own school")
def get_my_school(principal: Principal = Depends(require_tenant), db: Session = Depends(get_db)):
    return serialize_school_response(get_own_school(db=db, principal=principal))


@router.patch(
    "/me",
    response_model=SchoolResponse,
    summary="Update own school",
    description="Update the school's name, contact fields and monthly collection target.",
)
def update_my_school(
    payload: SchoolUpdate,
    principal: Principal = Depends(require_tenant),
    school_id: int = Depends(get_current_school_id),
    db: Session = Depends(get_db),
):
    school = update_school(db=db, principal=principal, school_id=school_id, payload=payload)
    return serialize_school_response(school)


@router.post(
    "/me/onboarding",
    response_model=SchoolResponse,
    summary="Complete onboarding",
    description="Replace the default school name and record the address and phone.",
    responses={400: {"description": "School name is blank"}},
)
def onboard_school(
    payload: OnboardingRequest,
    principal: Principal = Depends(require_tenant),
    db: Session = Depends(get_db),
):
    return serialize_school_response(complete_onboarding(db=db, principal=principal, payload=payload))


@router.get(
    "/me/subscription",
    response_model=SubscriptionSummaryResponse,
    summary="Subscription summary",
    description="Effective subscription status with trial and expiry countdowns. A lapsed status is persisted.",
)
def get_my_subscription(principal: Principal = Depends(require_tenant), db: Session = Depends(get_db)):
    return get_subscription_summary(db=db, principal=principal)


@router.get("/me/dashboard", response_model=SchoolDashboardResponse, summary="Collection dashboard")
def get_my_dashboard(principal: Principal = Depends(require_tenant), db: Session = Depends(get_db)):
    return get_dashboard_summary(db=db, principal=principal)
