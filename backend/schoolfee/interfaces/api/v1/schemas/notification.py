from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta


class NotificationCreate(BaseModel):
    school_id: int
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    title: str
    message: str
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    unread_count: int
    pagination: PaginationMeta


class NotificationReadAllResponse(BaseModel):
    updated: int
