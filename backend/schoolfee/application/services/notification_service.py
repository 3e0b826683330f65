from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from schoolfee.application.errors import NoTenantError, NotFoundError
from schoolfee.application.services.access_policy_service import (
    Operation,
    Principal,
    ProtectedEntity,
    ensure_allowed,
    scope_query,
)
from schoolfee.application.services.pagination_service import paginate_scalars
from schoolfee.domain.clock import ensure_utc
from schoolfee.infrastructure.db.models import Notification, School
from schoolfee.infrastructure.logging import get_logger
from schoolfee.interfaces.api.v1.schemas.notification import NotificationCreate
from schoolfee.interfaces.api.v1.schemas.pagination import PaginationMeta

logger = get_logger(__name__)


def serialize_notification_response(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "school_id": notification.school_id,
        "title": notification.title,
        "message": notification.message,
        "is_read": notification.is_read,
        "created_at": ensure_utc(notification.created_at),
    }


def send_notification(db: Session, principal: Principal, payload: NotificationCreate) -> Notification:
    ensure_allowed(principal, Operation.insert, ProtectedEntity.notification, school_id=payload.school_id)
    if db.get(School, payload.school_id) is None:
        raise NotFoundError("School not found")
    notification = Notification(
        school_id=payload.school_id,
        title=payload.title.strip(),
        message=payload.message.strip(),
        is_read=False,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    logger.info(
        "notification_sent",
        notification_id=notification.id,
        school_id=notification.school_id,
        sent_by=principal.user_id,
    )
    return notification


def list_notifications(
    db: Session,
    principal: Principal,
    *,
    offset: int,
    limit: int,
    unread_only: bool = False,
) -> tuple[list[Notification], PaginationMeta]:
    query = scope_query(select(Notification), principal, ProtectedEntity.notification, Notification.school_id)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    return paginate_scalars(
        db,
        query.order_by(Notification.created_at.desc(), Notification.id.desc()),
        offset=offset,
        limit=limit,
    )


def count_unread(db: Session, principal: Principal) -> int:
    query = scope_query(
        select(func.count(Notification.id)).where(Notification.is_read.is_(False)),
        principal,
        ProtectedEntity.notification,
        Notification.school_id,
    )
    return int(db.execute(query).scalar_one())


def mark_notification_read(db: Session, principal: Principal, *, notification_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    ensure_allowed(principal, Operation.update, ProtectedEntity.notification, school_id=notification.school_id)
    if not notification.is_read:
        notification.is_read = True
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_notifications_read(db: Session, principal: Principal) -> int:
    if principal.school_id is None:
        raise NoTenantError()
    ensure_allowed(principal, Operation.update, ProtectedEntity.notification, school_id=principal.school_id)
    result = db.execute(
        update(Notification)
        .where(Notification.school_id == principal.school_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.commit()
    logger.info("notifications_marked_read", school_id=principal.school_id, updated=result.rowcount)
    return int(result.rowcount)
