from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from schoolfee.domain.subscription import PlanType, SubscriptionStatus
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta


class SchoolUpdate(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    logo_url: str | None = None
    monthly_target: Decimal | None = Field(default=None, ge=0)


class OnboardingRequest(BaseModel):
    school_name: str
    school_address: str | None = None
    school_phone: str | None = None


class SchoolResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str | None
    phone: str | None
    address: str | None
    logo_url: str | None
    subscription_status: SubscriptionStatus
    plan_type: PlanType
    max_students: int
    trial_start: datetime | None
    trial_end: datetime | None
    next_payment_date: datetime | None
    last_payment_date: datetime | None
    monthly_target: Decimal
    created_at: datetime
    updated_at: datetime


class SchoolListResponse(BaseModel):
    items: list[SchoolResponse]
    pagination: PaginationMeta


class SubscriptionSummaryResponse(BaseModel):
    school_id: int
    status: SubscriptionStatus
    plan_type: PlanType
    max_students: int
    student_count: int
    trial_start: datetime | None
    trial_end: datetime | None
    trial_days_remaining: int
    next_payment_date: datetime | None
    last_payment_date: datetime | None
    expiry_date: datetime | None
    days_until_expiry: int
    show_expiry_warning: bool
    requires_billing: bool


class SchoolDashboardResponse(BaseModel):
    school_id: int
    student_count: int
    fee_structure_count: int
    total_expected_amount: Decimal
    total_collected_amount: Decimal
    total_outstanding_amount: Decimal
    collected_this_month: Decimal
    monthly_target: Decimal
    monthly_target_progress: Decimal
    payments_this_month: int


class PlatformStatsResponse(BaseModel):
    total_schools: int
    active_schools: int
    trial_schools: int
    expired_schools: int


class AdminProfileResponse(BaseModel):
    id: int
    email: str
    full_name: str
    school_id: int | None
    school_name: str | None
    created_at: datetime


class ManualActivationRequest(BaseModel):
    plan_type: PlanType = PlanType.small
    duration_months: int = Field(default=1, ge=1, le=36)
    custom_expiry: datetime | None = None


class PlanUpdateRequest(BaseModel):
    plan_type: PlanType


class SubscriptionOverrideRequest(BaseModel):
    plan_type: PlanType
    subscription_status: SubscriptionStatus
    max_students: int = Field(ge=0)
    subscription_days: int = Field(default=30, ge=0)


class MonthlyTargetUpdate(BaseModel):
    monthly_target: Decimal = Field(ge=0)
