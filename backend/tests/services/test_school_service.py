from datetime import timedelta
from decimal import Decimal

import pytest

from schoolfee.application.errors import ForbiddenError, NoTenantError, NotFoundError, ValidationError
from schoolfee.application.services.school_service import (
    complete_onboarding,
    delete_school,
    get_dashboard_summary,
    get_own_school,
    get_platform_stats,
    get_visible_school,
    list_admin_profiles,
    list_all_schools,
    set_monthly_target,
    update_school,
)
from schoolfee.domain.clock import utc_now
from schoolfee.domain.subscription import SubscriptionStatus
from schoolfee.infrastructure.db.models import AdminProfile, FeeStructure, Payment, School, Student, User
from schoolfee.interfaces.api.v1.schemas.school import OnboardingRequest, SchoolUpdate
from tests.helpers.factories import (
    count_rows,
    create_admin,
    create_fee_structure,
    create_payment,
    create_school,
    create_student,
    create_user,
    principal_for,
    reload,
    roles_of,
    utc,
)

NOW = utc(2026, 5, 20)


def test_get_own_school_requires_tenant(db_session, seeded_tenants):
    """
    Validate own-school lookups.

    1. Read the own school as the north admin.
    2. Read the own school as a user without a school.
    3. Capture the raised error.
    4. Validate the north school then NoTenantError.
    """
    north = principal_for(db_session, seeded_tenants["north_admin"])
    assert get_own_school(db_session, north).id == seeded_tenants["north_school"].id
    loner = principal_for(db_session, create_user(db_session, "loner@example.com"))
    with pytest.raises(NoTenantError):
        get_own_school(db_session, loner)


def test_other_school_is_hidden_from_admin(db_session, seeded_tenants):
    """
    Validate admins cannot see other tenants' schools.

    1. Resolve the north admin principal.
    2. Read the south school.
    3. Read the south school as super admin.
    4. Validate NotFoundError for the admin and success for super admin.
    """
    north = principal_for(db_session, seeded_tenants["north_admin"])
    root = principal_for(db_session, seeded_tenants["super_admin"])
    south_id = seeded_tenants["south_school"].id
    with pytest.raises(NotFoundError):
        get_visible_school(db_session, north, south_id)
    assert get_visible_school(db_session, root, south_id).id == south_id


def test_onboarding_sets_name_and_contacts(db_session):
    """
    Validate onboarding completes the placeholder school.

    1. Create an admin of a placeholder school.
    2. Complete onboarding with name, address and phone.
    3. Try onboarding with a blank name.
    4. Validate stored fields and the blank-name ValidationError.
    """
    school = create_school(db_session, "My School")
    principal = principal_for(db_session, create_admin(db_session, "new@example.com", school))
    updated = complete_onboarding(
        db_session,
        principal,
        OnboardingRequest(school_name=" Lakeside ", school_address="Kisumu", school_phone="0700000000"),
    )
    assert updated.name == "Lakeside"
    assert updated.address == "Kisumu"
    assert updated.phone == "0700000000"
    with pytest.raises(ValidationError):
        complete_onboarding(db_session, principal, OnboardingRequest(school_name="   "))


def test_update_school_only_for_owner(db_session, seeded_tenants):
    """
    Validate school profile edits.

    1. Update the north school's phone and target as its admin.
    2. Update the south school as the north admin.
    3. Reload the north school.
    4. Validate stored changes and ForbiddenError for the foreign edit.
    """
    north = principal_for(db_session, seeded_tenants["north_admin"])
    north_id = seeded_tenants["north_school"].id
    update_school(
        db_session,
        north,
        school_id=north_id,
        payload=SchoolUpdate(phone="0711111111", monthly_target=Decimal("50000.00")),
    )
    with pytest.raises(ForbiddenError):
        update_school(db_session, north, school_id=seeded_tenants["south_school"].id, payload=SchoolUpdate(phone="1"))
    stored = reload(db_session, School, north_id)
    assert stored.phone == "0711111111"
    assert stored.monthly_target == Decimal("50000.00")


def test_set_monthly_target_rejects_negative(db_session, seeded_tenants):
    """
    Validate monthly targets cannot be negative.

    1. Resolve the super admin principal.
    2. Set a negative target on the north school.
    3. Set a positive target.
    4. Validate ValidationError then the stored value.
    """
    root = principal_for(db_session, seeded_tenants["super_admin"])
    north_id = seeded_tenants["north_school"].id
    with pytest.raises(ValidationError):
        set_monthly_target(db_session, root, school_id=north_id, monthly_target=Decimal("-1"))
    assert set_monthly_target(
        db_session, root, school_id=north_id, monthly_target=Decimal("1000.00")
    ).monthly_target == Decimal("1000.00")


def test_dashboard_summary_totals(db_session, seeded_tenants):
    """
    Validate dashboard aggregates for one tenant.

    1. Create a class, two students with fees and payments in two months.
    2. Set a monthly target on the north school.
    3. Read the dashboard at a fixed instant.
    4. Validate expected, collected, outstanding and target progress.
    """
    north_id = seeded_tenants["north_school"].id
    create_fee_structure(db_session, north_id, "Grade 1", Decimal("10000.00"))
    first = create_student(db_session, north_id, "N-1", total_fee=Decimal("10000.00"))
    create_student(db_session, north_id, "N-2", total_fee=Decimal("5000.00"))
    create_payment(
        db_session,
        school_id=north_id,
        student_id=first.id,
        amount=Decimal("3000.00"),
        receipt_number="RCP-T-1",
        payment_date=utc(2026, 4, 10),
    )
    create_payment(
        db_session,
        school_id=north_id,
        student_id=first.id,
        amount=Decimal("2000.00"),
        receipt_number="RCP-T-2",
        payment_date=utc(2026, 5, 5),
    )
    other = create_student(db_session, seeded_tenants["south_school"].id, "S-1", total_fee=Decimal("99999.00"))
    create_payment(
        db_session,
        school_id=seeded_tenants["south_school"].id,
        student_id=other.id,
        amount=Decimal("99999.00"),
        receipt_number="RCP-T-3",
        payment_date=utc(2026, 5, 6),
    )
    north = principal_for(db_session, seeded_tenants["north_admin"])
    set_monthly_target(db_session, north, school_id=north_id, monthly_target=Decimal("8000.00"))

    summary = get_dashboard_summary(db_session, north, now=NOW)
    assert summary["student_count"] == 2
    assert summary["fee_structure_count"] == 1
    assert summary["total_expected_amount"] == Decimal("15000.00")
    assert summary["total_collected_amount"] == Decimal("5000.00")
    assert summary["total_outstanding_amount"] == Decimal("10000.00")
    assert summary["collected_this_month"] == Decimal("2000.00")
    assert summary["payments_this_month"] == 1
    assert summary["monthly_target_progress"] == Decimal("25.00")


def test_dashboard_progress_is_zero_without_target(db_session, seeded_tenants):
    """
    Validate progress is zero when no target is set.

    1. Resolve the north admin principal.
    2. Read the dashboard of an empty school.
    3. Read the progress and outstanding amount.
    4. Validate both are zero.
    """
    north = principal_for(db_session, seeded_tenants["north_admin"])
    summary = get_dashboard_summary(db_session, north, now=NOW)
    assert summary["monthly_target_progress"] == Decimal("0.00")
    assert summary["total_outstanding_amount"] == Decimal("0.00")


def test_platform_listing_and_stats(db_session, seeded_tenants):
    """
    Validate super admin platform views.

    1. Add one active and one lapsed school to the seeded trials.
    2. Read platform stats and the school listing.
    3. Read the admin profile listing.
    4. Validate effective status counts, search and school names.
    """
    now = utc_now()
    create_school(
        db_session, "Paid Academy", status=SubscriptionStatus.active, next_payment_date=now + timedelta(days=10)
    )
    create_school(db_session, "Old Academy", trial_start=now - timedelta(days=30))
    root = principal_for(db_session, seeded_tenants["super_admin"])

    stats = get_platform_stats(db_session, root, now=now)
    assert stats["total_schools"] == 4
    assert stats["active_schools"] == 1
    assert stats["expired_schools"] == 1

    items, meta = list_all_schools(db_session, root, offset=0, limit=10, search="academy", now=now)
    assert {item["name"] for item in items} == {"Paid Academy", "Old Academy"}
    assert meta.total == 4

    profiles = {profile["email"]: profile for profile in list_admin_profiles(db_session, root)}
    assert profiles["north@example.com"]["school_name"] == "North High"
    assert profiles["root@example.com"]["school_name"] is None


def test_platform_views_are_super_admin_only(db_session, seeded_tenants):
    """
    Validate tenant admins cannot use platform views.

    1. Resolve the north admin principal.
    2. Call stats, listing and profile views.
    3. Capture each error.
    4. Validate ForbiddenError for all three.
    """
    north = principal_for(db_session, seeded_tenants["north_admin"])
    with pytest.raises(ForbiddenError):
        get_platform_stats(db_session, north)
    with pytest.raises(ForbiddenError):
        list_all_schools(db_session, north, offset=0, limit=10)
    with pytest.raises(ForbiddenError):
        list_admin_profiles(db_session, north)


def test_delete_school_cascades_and_revokes_admins(db_session, seeded_tenants):
    """
    Validate tenant deletion.

    1. Give the north school a class, a student and a payment.
    2. Delete the north school as super admin.
    3. Count remaining rows per table.
    4. Validate north data is gone, the admin keeps its user but loses its grant.
    """
    north_id = seeded_tenants["north_school"].id
    create_fee_structure(db_session, north_id)
    student = create_student(db_session, north_id, "N-1")
    create_payment(
        db_session, school_id=north_id, student_id=student.id, amount=Decimal("10.00"), receipt_number="RCP-T-1"
    )
    create_student(db_session, seeded_tenants["south_school"].id, "S-1")
    root = principal_for(db_session, seeded_tenants["super_admin"])
    admin_id = seeded_tenants["north_admin"].id

    delete_school(db_session, root, school_id=north_id)

    assert count_rows(db_session, School, School.id == north_id) == 0
    assert count_rows(db_session, Student) == 1
    assert count_rows(db_session, Payment) == 0
    assert count_rows(db_session, FeeStructure) == 0
    assert count_rows(db_session, AdminProfile, AdminProfile.id == admin_id) == 0
    assert count_rows(db_session, User, User.id == admin_id) == 1
    assert roles_of(db_session, admin_id) == set()


def test_delete_school_is_super_admin_only(db_session, seeded_tenants):
    """
    Validate tenant admins cannot delete schools.

    1. Resolve the north admin principal.
    2. Delete its own school.
    3. Capture the raised error.
    4. Validate ForbiddenError and the school still exists.
    """
    north = principal_for(db_session, seeded_tenants["north_admin"])
    north_id = seeded_tenants["north_school"].id
    with pytest.raises(ForbiddenError):
        delete_school(db_session, north, school_id=north_id)
    assert count_rows(db_session, School, School.id == north_id) == 1
