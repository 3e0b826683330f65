import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from schoolfee.domain.clock import ensure_utc

TRIAL_DURATION = timedelta(days=7)
EXPIRY_WARNING_DAYS = 7


class SubscriptionStatus(str, Enum):
    trial = "trial"
    active = "active"
    expired = "expired"


class PlanType(str, Enum):
    small = "small"
    medium = "medium"
    large = "large"


class BillingPeriod(str, Enum):
    monthly = "monthly"
    yearly = "yearly"


PLAN_CAPACITY: dict[PlanType, int] = {
    PlanType.small: 200,
    PlanType.medium: 500,
    PlanType.large: 1000,
}

PLAN_PRICES: dict[tuple[PlanType, BillingPeriod], Decimal] = {
    (PlanType.small, BillingPeriod.monthly): Decimal("999.99"),
    (PlanType.small, BillingPeriod.yearly): Decimal("9999.99"),
    (PlanType.medium, BillingPeriod.monthly): Decimal("1499.99"),
    (PlanType.medium, BillingPeriod.yearly): Decimal("14999.99"),
    (PlanType.large, BillingPeriod.monthly): Decimal("1999.99"),
    (PlanType.large, BillingPeriod.yearly): Decimal("19999.99"),
}

PERIOD_DURATION: dict[BillingPeriod, timedelta] = {
    BillingPeriod.monthly: timedelta(days=30),
    BillingPeriod.yearly: timedelta(days=365),
}


@dataclass(frozen=True)
class BillingPlan:
    """Plan size and billing period decoded from a billing record's plan key.

    Legacy records only carry the period (`monthly` / `yearly`); their
    `plan_type` is `None` and activation keeps the school's current plan.
    """

    plan_type: PlanType | None
    period: BillingPeriod

    @property
    def key(self) -> str:
        if self.plan_type is None:
            return self.period.value
        return f"{self.plan_type.value}-{self.period.value}"


def max_students_for(plan_type: PlanType) -> int:
    return PLAN_CAPACITY[PlanType(plan_type)]


def plan_price(plan_type: PlanType, period: BillingPeriod) -> Decimal:
    return PLAN_PRICES[(PlanType(plan_type), BillingPeriod(period))]


def parse_billing_plan(key: str) -> BillingPlan:
    normalized = key.strip().lower()
    if "-" not in normalized:
        return BillingPlan(plan_type=None, period=BillingPeriod(normalized))
    size, _, period = normalized.partition("-")
    return BillingPlan(plan_type=PlanType(size), period=BillingPeriod(period))


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_expiry(period: BillingPeriod, now: datetime) -> datetime:
    return now + PERIOD_DURATION[BillingPeriod(period)]


def relevant_date_for(
    stored_status: SubscriptionStatus | str,
    *,
    trial_end: datetime | None,
    next_payment_date: datetime | None,
) -> datetime | None:
    status = SubscriptionStatus(stored_status)
    if status == SubscriptionStatus.trial:
        return trial_end
    if status == SubscriptionStatus.active:
        return next_payment_date
    return None


def derive_effective_status(
    stored_status: SubscriptionStatus | str,
    relevant_date: datetime | None,
    now: datetime,
) -> SubscriptionStatus:
    """Return the status a tenant actually has at `now`.

    Trial and active subscriptions lapse once `now` passes the relevant
    deadline (trial end or next payment date). No deadline means no lapse.
    """
    status = SubscriptionStatus(stored_status)
    if status == SubscriptionStatus.expired:
        return status
    deadline = ensure_utc(relevant_date)
    if deadline is None:
        return status
    if ensure_utc(now) > deadline:
        return SubscriptionStatus.expired
    return status


def whole_days_until(deadline: datetime | None, now: datetime, *, round_up: bool = False) -> int:
    if deadline is None:
        return 0
    remaining_days = (ensure_utc(deadline) - ensure_utc(now)).total_seconds() / 86400
    rounded = math.ceil(remaining_days) if round_up else math.floor(remaining_days)
    return max(0, rounded)
