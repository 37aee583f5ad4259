"""
Pricing Engine — duration-based subscription discounts.

Revenue rules:
  1. Original price: base price per billing period × number of periods
  2. Duration discount: plateau tiers, longer commitments never pay a higher rate
  3. Discount amount is rounded to the nearest rupee (half up)
  4. Renewal reminders go out inside the last RENEWAL_NOTIFICATION_DAYS of a term
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from services.delivery_calendar import add_months
from services.errors import InvalidDuration


# ── Constants ──────────────────────────────────────────────

MIN_DURATION = 1
MAX_DURATION = 12
RENEWAL_NOTIFICATION_DAYS = 5

# (minimum duration, discount %, tier label); highest tier <= duration wins
DISCOUNT_TIERS = [
    (1, 0, "none"),
    (2, 2, "bronze"),
    (3, 5, "silver"),
    (4, 8, "gold"),
    (6, 12, "platinum"),
    (9, 16, "diamond"),
    (12, 20, "elite"),
]


# ── Data classes ───────────────────────────────────────────

@dataclass
class PricingBreakdown:
    original_price: float
    discount_percentage: int
    discount_amount: float
    final_price: float
    discount_tier: str


@dataclass
class DurationOption:
    months: int
    discount_percentage: int
    discount_tier: str


@dataclass
class ExpiryStatus:
    status: str  # active, expiring_soon, expired
    days_left: int
    message: str


# ── Core Functions ─────────────────────────────────────────

def _round_half_up(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _validate_duration(duration_months) -> None:
    if (
        isinstance(duration_months, bool)
        or not isinstance(duration_months, int)
        or not MIN_DURATION <= duration_months <= MAX_DURATION
    ):
        raise InvalidDuration(
            f"Subscription duration must be a whole number of months between "
            f"{MIN_DURATION} and {MAX_DURATION} (got {duration_months!r})."
        )


def discount_tier_for(duration_months: int) -> tuple[int, str]:
    """Return (discount %, tier label) for a duration."""
    _validate_duration(duration_months)
    percentage, label = 0, "none"
    for min_months, tier_pct, tier_label in DISCOUNT_TIERS:
        if duration_months >= min_months:
            percentage, label = tier_pct, tier_label
    return percentage, label


def calculate_subscription_pricing(base_price: float, duration_months: int) -> PricingBreakdown:
    """
    Price a subscription term.

    Args:
        base_price: Price of one billing period (must be > 0)
        duration_months: Number of billing periods, 1-12

    Returns:
        PricingBreakdown with original, discount and final price

    Raises:
        InvalidDuration: duration outside 1-12 or non-positive base price
    """
    _validate_duration(duration_months)
    if base_price is None or base_price <= 0:
        raise InvalidDuration(f"Base price must be greater than zero (got {base_price!r}).")

    percentage, label = discount_tier_for(duration_months)
    original_price = round(base_price * duration_months, 2)
    discount_amount = _round_half_up(original_price * percentage / 100)
    final_price = round(original_price - discount_amount, 2)

    return PricingBreakdown(
        original_price=original_price,
        discount_percentage=percentage,
        discount_amount=discount_amount,
        final_price=final_price,
        discount_tier=label,
    )


def calculate_subscription_end_date(start: datetime, duration_months: int) -> datetime:
    """Start + N calendar months."""
    _validate_duration(duration_months)
    return add_months(start, duration_months)


def get_duration_options() -> list[DurationOption]:
    """Every purchasable duration with its discount, for the storefront selector."""
    options = []
    for months in range(MIN_DURATION, MAX_DURATION + 1):
        percentage, label = discount_tier_for(months)
        options.append(DurationOption(months=months, discount_percentage=percentage, discount_tier=label))
    return options


def _days_left(end_date: datetime, now: datetime) -> int:
    seconds = (end_date - now).total_seconds()
    # ceil to whole days
    return int(-(-seconds // 86400))


def needs_renewal_notification(
    end_date: datetime,
    now: datetime,
    notice_days: int = RENEWAL_NOTIFICATION_DAYS,
) -> tuple[bool, int]:
    """Return (needs_notification, days_left) for a term ending at `end_date`."""
    days_left = _days_left(end_date, now)
    return 0 < days_left <= notice_days, max(days_left, 0)


def get_expiry_status(
    end_date: datetime,
    now: datetime,
    notice_days: int = RENEWAL_NOTIFICATION_DAYS,
) -> ExpiryStatus:
    days_left = _days_left(end_date, now)

    if days_left < 0:
        return ExpiryStatus(
            status="expired",
            days_left=0,
            message="Your subscription has expired. Please renew to continue receiving deliveries.",
        )
    if days_left <= notice_days:
        plural = "s" if days_left != 1 else ""
        return ExpiryStatus(
            status="expiring_soon",
            days_left=days_left,
            message=f"Your subscription expires in {days_left} day{plural}. Renew now to avoid interruption.",
        )
    return ExpiryStatus(
        status="active",
        days_left=days_left,
        message=f"Your subscription is active for {days_left} more days.",
    )
