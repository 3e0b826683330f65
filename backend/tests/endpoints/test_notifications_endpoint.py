from tests.helpers.auth import auth_header, login


def test_notification_flow(client, seeded_tenants):
    """
    Validate sending, listing and reading notifications.

    1. Send a notification to north as super admin.
    2. List notifications as the north admin.
    3. Mark the notification read, then mark all read.
    4. Validate unread counts at each step.
    """
    root = auth_header(login(client, "root@example.com", "root1234"))
    sent = client.post(
        "/api/v1/admin/notifications",
        json={"school_id": seeded_tenants["north_school"].id, "title": "Renewal", "message": "Due next week"},
        headers=root,
    )
    assert sent.status_code == 201

    north = auth_header(login(client, "north@example.com", "north123"))
    inbox = client.get("/api/v1/notifications", headers=north).json()
    assert inbox["unread_count"] == 1
    assert inbox["items"][0]["title"] == "Renewal"

    read = client.post(f"/api/v1/notifications/{sent.json()['id']}/read", headers=north)
    assert read.status_code == 200
    assert read.json()["is_read"] is True
    assert client.get("/api/v1/notifications?unread_only=true", headers=north).json()["items"] == []
    assert client.post("/api/v1/notifications/read-all", headers=north).json() == {"updated": 0}


def test_tenant_admin_cannot_send_notifications(client, seeded_tenants):
    """
    Validate notification sending is super-admin only.

    1. Log in as the north admin.
    2. Post a notification for the south school.
    3. Read the response.
    4. Validate 403.
    """
    north = auth_header(login(client, "north@example.com", "north123"))
    response = client.post(
        "/api/v1/admin/notifications",
        json={"school_id": seeded_tenants["south_school"].id, "title": "Hi", "message": "Spam"},
        headers=north,
    )
    assert response.status_code == 403
