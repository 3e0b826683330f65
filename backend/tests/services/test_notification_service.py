import pytest

from schoolfee.application.errors import ForbiddenError, NoTenantError, NotFoundError
from schoolfee.application.services.notification_service import (
    count_unread,
    list_notifications,
    mark_all_notifications_read,
    mark_notification_read,
    send_notification,
)
from schoolfee.infrastructure.db.models import Notification
from schoolfee.interfaces.api.v1.schemas.notification import NotificationCreate
from tests.helpers.factories import count_rows, create_notification, principal_for, reload


def test_super_admin_sends_to_one_school(db_session, seeded_tenants):
    """
    Validate notifications are addressed to a single tenant.

    1. Send a notification to the north school as super admin.
    2. List notifications as the north admin.
    3. List notifications as the south admin.
    4. Validate only north sees it, unread.
    """
    root = principal_for(db_session, seeded_tenants["super_admin"])
    sent = send_notification(
        db_session,
        root,
        NotificationCreate(school_id=seeded_tenants["north_school"].id, title=" Renewal ", message="Pay soon"),
    )
    assert sent.title == "Renewal"

    north = principal_for(db_session, seeded_tenants["north_admin"])
    south = principal_for(db_session, seeded_tenants["south_admin"])
    north_items, _ = list_notifications(db_session, north, offset=0, limit=10)
    south_items, _ = list_notifications(db_session, south, offset=0, limit=10)
    assert [item.id for item in north_items] == [sent.id]
    assert north_items[0].is_read is False
    assert south_items == []


def test_send_notification_guards(db_session, seeded_tenants):
    """
    Validate sending requires super admin and an existing school.

    1. Send as the north admin.
    2. Send as super admin to a missing school.
    3. Capture both errors.
    4. Validate ForbiddenError, NotFoundError and no rows.
    """
    admin = principal_for(db_session, seeded_tenants["north_admin"])
    root = principal_for(db_session, seeded_tenants["super_admin"])
    with pytest.raises(ForbiddenError):
        send_notification(
            db_session, admin, NotificationCreate(school_id=seeded_tenants["north_school"].id, title="x", message="y")
        )
    with pytest.raises(NotFoundError):
        send_notification(db_session, root, NotificationCreate(school_id=999999, title="x", message="y"))
    assert count_rows(db_session, Notification) == 0


def test_mark_read_is_tenant_only(db_session, seeded_tenants):
    """
    Validate only the addressed tenant flips the read flag.

    1. Create an unread notification for the north school.
    2. Mark it read as the south admin and as super admin.
    3. Mark it read as the north admin.
    4. Validate both foreign attempts fail and the owner succeeds.
    """
    notification = create_notification(db_session, seeded_tenants["north_school"].id)
    south = principal_for(db_session, seeded_tenants["south_admin"])
    root = principal_for(db_session, seeded_tenants["super_admin"])
    north = principal_for(db_session, seeded_tenants["north_admin"])

    with pytest.raises(ForbiddenError):
        mark_notification_read(db_session, south, notification_id=notification.id)
    with pytest.raises(ForbiddenError):
        mark_notification_read(db_session, root, notification_id=notification.id)
    assert mark_notification_read(db_session, north, notification_id=notification.id).is_read is True


def test_unread_count_and_mark_all(db_session, seeded_tenants):
    """
    Validate bulk read marking and the unread counter.

    1. Create two unread and one read north notification plus one south.
    2. Count unread and list unread only as the north admin.
    3. Mark all read as the north admin.
    4. Validate counts before and after and the untouched south row.
    """
    north_id = seeded_tenants["north_school"].id
    create_notification(db_session, north_id, title="One")
    create_notification(db_session, north_id, title="Two")
    create_notification(db_session, north_id, title="Old", is_read=True)
    south_row = create_notification(db_session, seeded_tenants["south_school"].id)
    north = principal_for(db_session, seeded_tenants["north_admin"])

    assert count_unread(db_session, north) == 2
    unread, meta = list_notifications(db_session, north, offset=0, limit=10, unread_only=True)
    assert {item.title for item in unread} == {"One", "Two"}
    assert meta.total == 2

    assert mark_all_notifications_read(db_session, north) == 2
    assert count_unread(db_session, north) == 0
    assert reload(db_session, Notification, south_row.id).is_read is False


def test_super_admin_has_no_inbox(db_session, seeded_tenants):
    """
    Validate super admin neither reads nor bulk-marks tenant notifications.

    1. Create a north notification.
    2. List notifications as super admin.
    3. Mark all read as super admin.
    4. Validate an empty list and NoTenantError.
    """
    create_notification(db_session, seeded_tenants["north_school"].id)
    root = principal_for(db_session, seeded_tenants["super_admin"])
    items, meta = list_notifications(db_session, root, offset=0, limit=10)
    assert items == []
    assert meta.total == 0
    with pytest.raises(NoTenantError):
        mark_all_notifications_read(db_session, root)
