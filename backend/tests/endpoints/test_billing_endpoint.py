from decimal import Decimal

import httpx

from schoolfee.application.services.billing_lock_service import school_activation_lock_key
from schoolfee.config import settings
from schoolfee.infrastructure.db.models import BillingRecord
from schoolfee.infrastructure.payments.mpesa_client import MpesaClient, get_mpesa_client
from schoolfee.main import app
from tests.helpers.auth import auth_header, login
from tests.helpers.factories import count_rows, create_billing_record


def success_callback(school_id: int, receipt: str = "QK99XYZ001") -> dict:
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-1",
                "CheckoutRequestID": "ws_CO_1",
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": 999.99},
                        {"Name": "MpesaReceiptNumber", "Value": receipt},
                        {"Name": "AccountReference", "Value": str(school_id)},
                    ]
                },
            }
        }
    }


def test_plans_catalogue_is_public(client):
    """
    Validate the plan catalogue endpoint.

    1. Call the plans endpoint without a token.
    2. Parse the list payload.
    3. Index the plans by type.
    4. Validate three plans with the small plan figures.
    """
    response = client.get("/api/v1/billing/plans")
    assert response.status_code == 200
    plans = {plan["plan_type"]: plan for plan in response.json()}
    assert set(plans) == {"small", "medium", "large"}
    assert plans["small"]["max_students"] == 200
    assert Decimal(plans["small"]["monthly_price"]) == Decimal("999.99")


def test_request_then_list_own_billing(client, seeded_tenants):
    """
    Validate manual subscription requests.

    1. Request a medium yearly plan as the north admin.
    2. List own billing records.
    3. List as the south admin.
    4. Validate the pending record is visible only to north.
    """
    north = auth_header(login(client, "north@example.com", "north123"))
    created = client.post(
        "/api/v1/billing/requests", json={"plan_type": "medium", "period": "yearly"}, headers=north
    )
    assert created.status_code == 201
    assert created.json()["plan_type"] == "medium-yearly"
    assert created.json()["status"] == "pending"
    assert Decimal(created.json()["amount"]) == Decimal("14999.99")

    own = client.get("/api/v1/billing?status=pending", headers=north).json()
    assert [item["id"] for item in own["items"]] == [created.json()["id"]]

    south = auth_header(login(client, "south@example.com", "south123"))
    assert client.get("/api/v1/billing", headers=south).json()["items"] == []


def test_callback_success_duplicate_and_failure_are_acknowledged(client, seeded_tenants):
    """
    Validate the provider webhook always acknowledges.

    1. Post a successful confirmation for the north school.
    2. Post the same confirmation again.
    3. Post a failed confirmation.
    4. Validate acknowledgements, one record and an active school.
    """
    school_id = seeded_tenants["north_school"].id
    first = client.post("/api/v1/billing/mpesa/callback", json=success_callback(school_id))
    assert first.status_code == 200
    assert first.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    again = client.post("/api/v1/billing/mpesa/callback", json=success_callback(school_id))
    assert again.status_code == 200
    assert again.json()["ResultDesc"] == "Already processed"

    failed = client.post(
        "/api/v1/billing/mpesa/callback",
        json={
            "Body": {
                "stkCallback": {
                    "MerchantRequestID": "29115-2",
                    "CheckoutRequestID": "ws_CO_2",
                    "ResultCode": 1032,
                    "ResultDesc": "Request cancelled by user",
                }
            }
        },
    )
    assert failed.status_code == 200
    assert failed.json()["ResultCode"] == 0

    north = auth_header(login(client, "north@example.com", "north123"))
    summary = client.get("/api/v1/schools/me/subscription", headers=north).json()
    assert summary["status"] == "active"


def test_callback_records_single_billing_row(client, seeded_tenants, db_session):
    """
    Validate redelivery does not duplicate billing rows.

    1. Post a successful confirmation.
    2. Post it a second time.
    3. Count billing records.
    4. Validate exactly one row.
    """
    school_id = seeded_tenants["north_school"].id
    client.post("/api/v1/billing/mpesa/callback", json=success_callback(school_id, receipt="QKDUP"))
    client.post("/api/v1/billing/mpesa/callback", json=success_callback(school_id, receipt="QKDUP"))
    assert count_rows(db_session, BillingRecord, BillingRecord.transaction_id == "QKDUP") == 1


def test_callback_is_acknowledged_while_review_holds_lock(client, seeded_tenants, fake_redis, monkeypatch, db_session):
    """
    Validate the webhook never drops a payment on activation lock contention.

    1. Hold the north activation lock and skip the wait for it.
    2. Post a successful confirmation for north.
    3. Read the subscription summary as the north admin.
    4. Validate the acknowledgement, the stored record and the active status.
    """
    school_id = seeded_tenants["north_school"].id
    fake_redis.store[school_activation_lock_key(school_id=school_id)] = "approval-in-progress"
    monkeypatch.setattr(settings, "billing_lock_wait_seconds", 0.0)

    response = client.post("/api/v1/billing/mpesa/callback", json=success_callback(school_id, receipt="QKBUSY"))
    assert response.status_code == 200
    assert response.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}
    assert count_rows(db_session, BillingRecord, BillingRecord.transaction_id == "QKBUSY") == 1

    north = auth_header(login(client, "north@example.com", "north123"))
    summary = client.get("/api/v1/schools/me/subscription", headers=north).json()
    assert summary["status"] == "active"


def test_stk_push_uses_current_plan_price(client, seeded_tenants):
    """
    Validate STK push initiation through an injected provider client.

    1. Override the provider client with a mock transport.
    2. Start a payment as the north admin.
    3. Capture the amount sent to the provider.
    4. Validate the small monthly price and checkout id.
    """
    sent = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "tok"})
        sent["body"] = request.read()
        return httpx.Response(200, json={"CheckoutRequestID": "c-9", "ResponseCode": "0", "CustomerMessage": "ok"})

    app.dependency_overrides[get_mpesa_client] = lambda: MpesaClient(
        consumer_key="k",
        consumer_secret="s",
        passkey="p",
        shortcode="174379",
        transport=httpx.MockTransport(handler),
    )
    north = auth_header(login(client, "north@example.com", "north123"))
    response = client.post("/api/v1/billing/mpesa/stk-push", json={"phone": "+254 712 345 678"}, headers=north)
    assert response.status_code == 200
    assert response.json()["checkout_request_id"] == "c-9"
    assert response.json()["plan_type"] == "small-monthly"
    assert b'"Amount":1000' in sent["body"].replace(b" ", b"")
    assert b'"PhoneNumber":"254712345678"' in sent["body"].replace(b" ", b"")


def test_admin_cannot_approve_billing(client, seeded_tenants, db_session):
    """
    Validate billing review is closed to tenant admins.

    1. Create a pending record for the north school.
    2. Approve it as the north admin.
    3. Approve it as super admin.
    4. Validate 403 then 200 with an approved record.
    """
    record = create_billing_record(db_session, school_id=seeded_tenants["north_school"].id)
    north = auth_header(login(client, "north@example.com", "north123"))
    assert client.post(f"/api/v1/admin/billing/{record.id}/approve", headers=north).status_code == 403

    root = auth_header(login(client, "root@example.com", "root1234"))
    approved = client.post(f"/api/v1/admin/billing/{record.id}/approve", headers=root)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    again = client.post(f"/api/v1/admin/billing/{record.id}/approve", headers=root)
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_transition"
