from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta


class StudentBase(BaseModel):
    admission_no: str = Field(min_length=1, max_length=50)
    full_name: str = Field(min_length=1)
    parent_name: str | None = None
    parent_contact: str | None = None
    class_id: int | None = None


class StudentCreate(StudentBase):
    pass


class StudentUpdate(BaseModel):
    admission_no: str | None = Field(default=None, min_length=1, max_length=50)
    full_name: str | None = Field(default=None, min_length=1)
    parent_name: str | None = None
    parent_contact: str | None = None
    class_id: int | None = None


class StudentClassRef(BaseModel):
    id: int
    class_name: str
    fee_amount: Decimal


class StudentResponse(StudentBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    total_fee: Decimal
    total_paid: Decimal
    balance: Decimal
    fee_class: StudentClassRef | None = None
    created_at: datetime
    updated_at: datetime


class StudentListResponse(BaseModel):
    items: list[StudentResponse]
    pagination: PaginationMeta
