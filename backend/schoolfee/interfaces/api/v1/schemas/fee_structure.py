from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta


class FeeStructureBase(BaseModel):
    class_name: str = Field(min_length=1)
    fee_amount: Decimal = Field(ge=0)
    description: str | None = None


class FeeStructureCreate(FeeStructureBase):
    pass


class FeeStructureUpdate(BaseModel):
    class_name: str | None = Field(default=None, min_length=1)
    fee_amount: Decimal | None = Field(default=None, ge=0)
    description: str | None = None


class FeeStructureResponse(FeeStructureBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    student_count: int = 0
    created_at: datetime
    updated_at: datetime


class FeeStructureListResponse(BaseModel):
    items: list[FeeStructureResponse]
    pagination: PaginationMeta
