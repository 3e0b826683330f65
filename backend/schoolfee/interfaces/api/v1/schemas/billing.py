from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from schoolfee.domain.billing_status import BillingStatus
from schoolfee.domain.subscription import BillingPeriod, PlanType
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta


class SubscriptionRequestCreate(BaseModel):
    plan_type: PlanType
    period: BillingPeriod = BillingPeriod.monthly


class BillingRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    school_name: str | None = None
    amount: Decimal
    plan_type: str
    payment_method: str
    transaction_id: str | None
    expiry_date: datetime | None
    status: BillingStatus
    reviewed_at: datetime | None
    created_at: datetime


class BillingRecordListResponse(BaseModel):
    items: list[BillingRecordResponse]
    pagination: PaginationMeta


class PlanOptionResponse(BaseModel):
    plan_type: PlanType
    max_students: int
    monthly_price: Decimal
    yearly_price: Decimal


class MobileMoneyPaymentRequest(BaseModel):
    phone: str = Field(min_length=9, max_length=15)


class MobileMoneyPaymentResponse(BaseModel):
    school_id: int
    amount: Decimal
    plan_type: str
    merchant_request_id: str | None = None
    checkout_request_id: str | None = None
    customer_message: str | None = None


class CallbackMetadataItem(BaseModel):
    Name: str
    Value: Any = None


class StkCallbackMetadata(BaseModel):
    Item: list[CallbackMetadataItem] = Field(default_factory=list)


class StkCallback(BaseModel):
    MerchantRequestID: str | None = None
    CheckoutRequestID: str | None = None
    ResultCode: int
    ResultDesc: str | None = None
    CallbackMetadata: StkCallbackMetadata | None = None

    def metadata_value(self, name: str) -> Any:
        if self.CallbackMetadata is None:
            return None
        for item in self.CallbackMetadata.Item:
            if item.Name == name:
                return item.Value
        return None


class StkCallbackBody(BaseModel):
    stkCallback: StkCallback


class MobileMoneyCallbackPayload(BaseModel):
    Body: StkCallbackBody


class CallbackAcknowledgement(BaseModel):
    ResultCode: int = 0
    ResultDesc: str = "Accepted"
