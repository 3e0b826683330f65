from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta


class PaymentCreate(BaseModel):
    student_id: int
    amount: Decimal = Field(gt=0)
    payment_date: datetime | None = None
    payment_method: str = "Cash"
    notes: str | None = None


class PaymentUpdate(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    payment_date: datetime | None = None
    payment_method: str | None = None
    notes: str | None = None


class PaymentStudentRef(BaseModel):
    id: int
    admission_no: str
    full_name: str


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    student_id: int
    amount: Decimal
    payment_date: datetime
    payment_method: str
    receipt_number: str
    notes: str | None
    created_at: datetime
    updated_at: datetime
    student: PaymentStudentRef


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]
    pagination: PaginationMeta
