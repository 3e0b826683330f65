from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from schoolfee.application.services.access_policy_service import Principal
from schoolfee.application.services.notification_service import (
    count_unread,
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
    serialize_notification_response,
)
from schoolfee.infrastructure.db.session import get_db
from schoolfee.interfaces.api.v1.dependencies.auth import require_tenant
from schoolfee.interfaces.api.v1.dependencies.pagination import get_pagination_params
from schoolfee.interfaces.api.v1.schemas.notification import (
    NotificationListResponse,
    NotificationReadAllResponse,
    NotificationResponse,
)
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationParams

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse, summary="List own notifications")
def get_notifications(
    unread_only: bool = Query(default=False),
    principal: Principal = Depends(require_tenant),
    pagination: PaginationParams = Depends(get_pagination_params),
    db: Session = Depends(get_db),
):
    notifications, meta = list_notifications(
        db=db,
        principal=principal,
        offset=pagination.offset,
        limit=pagination.limit,
        unread_only=unread_only,
    )
    return {
        "items": [serialize_notification_response(item) for item in notifications],
        "unread_count": count_unread(db=db, principal=principal),
        "pagination": meta,
    }


@router.post("/read-all", response_model=NotificationReadAllResponse, summary="Mark all notifications read")
def read_all_notifications(principal: Principal = Depends(require_tenant), db: Session = Depends(get_db)):
    return {"updated": mark_all_notifications_read(db=db, principal=principal)}


@router.post("/{notification_id}/read", response_model=NotificationResponse, summary="Mark notification read")
def read_notification(
    notification_id: int,
    principal: Principal = Depends(require_tenant),
    db: Session = Depends(get_db),
):
    notification = mark_notification_read(db=db, principal=principal, notification_id=notification_id)
    return serialize_notification_response(notification)
