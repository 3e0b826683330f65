from decimal import Decimal

from schoolfee.domain.subscription import SubscriptionStatus
from tests.helpers.auth import auth_header, login
from tests.helpers.factories import create_admin, create_fee_structure, create_school, create_students_bulk


def _expired_admin_headers(client, db_session) -> tuple[dict[str, str], int]:
    school = create_school(db_session, "Lapsed High", status=SubscriptionStatus.expired)
    create_admin(db_session, "lapsed@example.com", school, password="lapsed123")
    return auth_header(login(client, "lapsed@example.com", "lapsed123")), school.id


def test_create_and_read_student(client, seeded_tenants, db_session):
    """
    Validate student creation and retrieval through the API.

    1. Create a class for the north school.
    2. Post a student assigned to that class.
    3. Read the student back.
    4. Validate fee snapshot, balance and class reference.
    """
    grade = create_fee_structure(db_session, seeded_tenants["north_school"].id, "Grade 5", Decimal("20000.00"))
    headers = auth_header(login(client, "north@example.com", "north123"))
    created = client.post(
        "/api/v1/students",
        json={"admission_no": "ADM-1", "full_name": "Amina Otieno", "class_id": grade.id},
        headers=headers,
    )
    assert created.status_code == 201
    student_id = created.json()["id"]

    fetched = client.get(f"/api/v1/students/{student_id}", headers=headers)
    assert fetched.status_code == 200
    body = fetched.json()
    assert Decimal(body["total_fee"]) == Decimal("20000.00")
    assert Decimal(body["balance"]) == Decimal("20000.00")
    assert body["fee_class"]["class_name"] == "Grade 5"


def test_other_tenant_student_is_not_found(client, seeded_tenants):
    """
    Validate cross-tenant reads look like missing rows.

    1. Create a student as the south admin.
    2. Read it as the north admin.
    3. Delete it as the north admin.
    4. Validate 404 on read and 403 on delete.
    """
    south = auth_header(login(client, "south@example.com", "south123"))
    student_id = client.post(
        "/api/v1/students", json={"admission_no": "S-1", "full_name": "South Kid"}, headers=south
    ).json()["id"]

    north = auth_header(login(client, "north@example.com", "north123"))
    assert client.get(f"/api/v1/students/{student_id}", headers=north).status_code == 404
    assert client.delete(f"/api/v1/students/{student_id}", headers=north).status_code == 403


def test_duplicate_admission_number_conflicts(client, seeded_tenants):
    """
    Validate duplicate admission numbers return 409.

    1. Create a student as the north admin.
    2. Create another with the same admission number.
    3. Read the response.
    4. Validate 409 and the conflict message.
    """
    headers = auth_header(login(client, "north@example.com", "north123"))
    client.post("/api/v1/students", json={"admission_no": "ADM-7", "full_name": "One"}, headers=headers)
    duplicate = client.post("/api/v1/students", json={"admission_no": "ADM-7", "full_name": "Two"}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "Admission number already exists in this school"


def test_capacity_limit_returns_structured_conflict(client, seeded_tenants, db_session):
    """
    Validate the student limit error body.

    1. Fill the north school to its 200 student limit.
    2. Post one more student.
    3. Parse the error body.
    4. Validate 409 with code, current and maximum.
    """
    create_students_bulk(db_session, seeded_tenants["north_school"].id, 200)
    headers = auth_header(login(client, "north@example.com", "north123"))
    response = client.post("/api/v1/students", json={"admission_no": "ADM-X", "full_name": "Late"}, headers=headers)
    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "capacity_exceeded"
    assert body["current"] == 200
    assert body["maximum"] == 200


def test_expired_school_can_read_but_not_write(client, db_session):
    """
    Validate the subscription gate on mutations.

    1. Create an expired school and its admin.
    2. List students as that admin.
    3. Create a student as that admin.
    4. Validate 200 for the read and 402 with the billing hint for the write.
    """
    headers, _ = _expired_admin_headers(client, db_session)
    assert client.get("/api/v1/students", headers=headers).status_code == 200

    response = client.post("/api/v1/students", json={"admission_no": "A", "full_name": "B"}, headers=headers)
    assert response.status_code == 402
    assert response.json()["code"] == "subscription_expired"
    assert response.json()["billing_url"] == "/api/v1/billing"


def test_list_students_paginates_and_searches(client, seeded_tenants, db_session):
    """
    Validate student list pagination metadata and search.

    1. Bulk create five north students.
    2. List with a limit of two.
    3. Search for one admission number.
    4. Validate page metadata and the single match.
    """
    create_students_bulk(db_session, seeded_tenants["north_school"].id, 5)
    headers = auth_header(login(client, "north@example.com", "north123"))

    page = client.get("/api/v1/students?offset=0&limit=2", headers=headers).json()
    assert len(page["items"]) == 2
    assert page["pagination"]["total"] == 5
    assert page["pagination"]["has_next"] is True

    searched = client.get("/api/v1/students?search=BULK-0003", headers=headers).json()
    assert [item["admission_no"] for item in searched["items"]] == ["BULK-0003"]
