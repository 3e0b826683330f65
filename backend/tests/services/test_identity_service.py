import pytest

from schoolfee.application.errors import NoTenantError
from schoolfee.application.services.identity_service import (
    SessionEvent,
    build_principal,
    get_role_grants,
    handle_session_event,
    has_role,
    list_own_roles,
    needs_onboarding,
    resolve_tenant,
)
from schoolfee.domain.roles import AppRole
from schoolfee.domain.subscription import SubscriptionStatus
from tests.helpers.factories import create_admin, create_school, create_user, grant_role


def test_resolve_tenant_for_admin_and_orphan(db_session, seeded_tenants):
    """
    Validate tenant resolution from the admin profile.

    1. Resolve the tenant of the north admin.
    2. Resolve the tenant of the super admin with no school.
    3. Resolve the tenant of a user without a profile.
    4. Validate the school id then NoTenantError twice.
    """
    assert resolve_tenant(db_session, seeded_tenants["north_admin"].id) == seeded_tenants["north_school"].id
    with pytest.raises(NoTenantError):
        resolve_tenant(db_session, seeded_tenants["super_admin"].id)
    loner = create_user(db_session, "loner@example.com")
    with pytest.raises(NoTenantError):
        resolve_tenant(db_session, loner.id)


def test_role_checks_and_grants(db_session, seeded_tenants):
    """
    Validate role lookups.

    1. Check admin and super_admin roles of the north admin.
    2. Check an unknown role name.
    3. Read the super admin's grants.
    4. Validate only real grants are reported.
    """
    north_id = seeded_tenants["north_admin"].id
    assert has_role(db_session, north_id, AppRole.admin) is True
    assert has_role(db_session, north_id, AppRole.super_admin) is False
    assert has_role(db_session, north_id, "owner") is False
    assert get_role_grants(db_session, seeded_tenants["super_admin"].id) == frozenset({AppRole.super_admin})


def test_build_principal_and_own_roles(db_session, seeded_tenants):
    """
    Validate principals carry tenant and roles.

    1. Give the north admin an extra super admin grant.
    2. Build its principal.
    3. List its own role rows.
    4. Validate school id, both roles and both rows.
    """
    user = seeded_tenants["north_admin"]
    grant_role(db_session, user.id, AppRole.super_admin)
    principal = build_principal(db_session, user.id)
    assert principal.school_id == seeded_tenants["north_school"].id
    assert principal.roles == frozenset({AppRole.admin, AppRole.super_admin})
    assert {grant.role for grant in list_own_roles(db_session, principal)} == {"admin", "super_admin"}


def test_needs_onboarding_on_placeholder_name(db_session):
    """
    Validate onboarding is needed until the school gets a real name.

    1. Create a school with the placeholder name.
    2. Create a school with a real name.
    3. Check both plus a missing school.
    4. Validate placeholder and missing need onboarding.
    """
    placeholder = create_school(db_session, "My School")
    named = create_school(db_session, "Riverside Academy")
    assert needs_onboarding(placeholder) is True
    assert needs_onboarding(named) is False
    assert needs_onboarding(None) is True


def test_session_events_resolve_or_close(db_session):
    """
    Validate the session lifecycle callback.

    1. Create an admin of a placeholder-named school.
    2. Handle a sign-in event.
    3. Handle a sign-out event.
    4. Validate the resolution then None.
    """
    school = create_school(db_session, "My School")
    user = create_admin(db_session, "fresh@example.com", school)
    resolution = handle_session_event(db_session, SessionEvent.signed_in, user.id)
    assert resolution is not None
    assert resolution.school_id == school.id
    assert resolution.needs_onboarding is True
    assert resolution.is_super_admin is False
    assert resolution.subscription_status == SubscriptionStatus.trial

    assert handle_session_event(db_session, SessionEvent.signed_out, user.id) is None
