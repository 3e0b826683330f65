from datetime import timedelta

import pytest

from schoolfee.application.errors import ConflictError
from schoolfee.application.services.signup_service import register_admin
from schoolfee.domain.clock import ensure_utc
from schoolfee.domain.subscription import PlanType, SubscriptionStatus
from schoolfee.infrastructure.db.models import AdminProfile, School, User, UserRole
from schoolfee.interfaces.api.v1.schemas.auth import SignupRequest
from tests.helpers.factories import count_rows, roles_of, utc

NOW = utc(2026, 2, 1)


def test_register_admin_creates_tenant_on_trial(db_session):
    """
    Validate self sign-up provisions a school on a seven day trial.

    1. Build a sign-up payload with a school name.
    2. Register the admin at a fixed instant.
    3. Read the created user, school and roles.
    4. Validate trial window, plan defaults and admin grant.
    """
    payload = SignupRequest(
        email="Owner@Example.com",
        password="secret1",
        full_name="Grace Wanjiru",
        school_name="  Hill View  ",
        school_phone="0712345678",
    )
    result = register_admin(db_session, payload, now=NOW)

    assert result.user.email == "owner@example.com"
    assert result.school.name == "Hill View"
    assert result.school.email == "owner@example.com"
    assert result.school.phone == "0712345678"
    assert result.school.subscription_status == SubscriptionStatus.trial
    assert result.school.plan_type == PlanType.small
    assert result.school.max_students == 200
    assert ensure_utc(result.school.trial_end) == NOW + timedelta(days=7)
    assert roles_of(db_session, result.user.id) == {"admin"}
    assert count_rows(db_session, AdminProfile, AdminProfile.school_id == result.school.id) == 1


def test_register_admin_defaults_school_name(db_session):
    """
    Validate a missing school name falls back to the placeholder.

    1. Build a sign-up payload without school details.
    2. Register the admin.
    3. Read the created school.
    4. Validate the placeholder name.
    """
    result = register_admin(db_session, SignupRequest(email="a@example.com", password="secret1"), now=NOW)
    assert result.school.name == "My School"


def test_register_admin_rejects_duplicate_email(db_session):
    """
    Validate emails are unique regardless of case.

    1. Register one admin.
    2. Register again with the same email in another case.
    3. Capture the raised error.
    4. Validate ConflictError and one user and school.
    """
    register_admin(db_session, SignupRequest(email="dup@example.com", password="secret1"), now=NOW)
    with pytest.raises(ConflictError) as exc:
        register_admin(db_session, SignupRequest(email="DUP@example.com", password="secret1"), now=NOW)
    assert str(exc.value) == "Email already registered"
    assert count_rows(db_session, User) == 1
    assert count_rows(db_session, School) == 1


def test_register_admin_leaves_nothing_when_role_grant_fails(db_session, monkeypatch):
    """
    Validate the tenant, principal and role grant are written together or not at all.

    1. Make the admin grant violate its not-null role column.
    2. Register an admin so the failure happens after the school is flushed.
    3. Capture the raised error.
    4. Validate no school, user, profile or role rows remain.
    """
    monkeypatch.setattr(
        "schoolfee.application.services.signup_service.UserRole",
        lambda **values: UserRole(user_id=values["user_id"], role=None),
    )
    with pytest.raises(ConflictError):
        register_admin(db_session, SignupRequest(email="partial@example.com", password="secret1"), now=NOW)

    assert count_rows(db_session, School) == 0
    assert count_rows(db_session, User) == 0
    assert count_rows(db_session, AdminProfile) == 0
    assert count_rows(db_session, UserRole) == 0
