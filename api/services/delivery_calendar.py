"""
Delivery Calendar — pure date arithmetic for subscription deliveries.

Rules:
  - Every delivery is normalized to 8:00 AM local operational time
  - No deliveries on Sunday: a Sunday candidate rolls to Monday
  - Weekly cadence = +7 days; monthly cadence = +1 calendar month (not 30 days)
  - 6 PM cutoff: actions for tomorrow are refused once the local hour is >= 18

All functions expect datetimes already expressed in local operational time
(use `to_local` at the edges). Nothing here reads configuration or does I/O.
"""

from __future__ import annotations
import calendar
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

DELIVERY_HOUR = 8
CUTOFF_HOUR = 18
SUNDAY = 6  # datetime.weekday()

WEEKLY = "weekly"
MONTHLY = "monthly"


def to_local(dt: datetime, tz_name: str) -> datetime:
    """Convert an aware datetime to the operational zone; naive values are taken as local already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(ZoneInfo(tz_name))


def local_now(tz_name: str) -> datetime:
    return datetime.now(ZoneInfo(tz_name))


def add_months(dt: datetime, months: int) -> datetime:
    """Calendar-month arithmetic. Day-of-month is clamped (Jan 31 + 1 month = Feb 28/29)."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def normalize_delivery_time(dt: datetime, delivery_hour: int = DELIVERY_HOUR) -> datetime:
    """Pin to the fixed delivery hour and zero the sub-hour fields."""
    return dt.replace(hour=delivery_hour, minute=0, second=0, microsecond=0)


def skip_if_sunday(dt: datetime) -> datetime:
    if dt.weekday() == SUNDAY:
        return dt + timedelta(days=1)
    return dt


def is_past_cutoff(now: datetime, cutoff_hour: int = CUTOFF_HOUR) -> bool:
    return now.hour >= cutoff_hour


def next_delivery_candidate(
    from_dt: datetime,
    frequency: str,
    delivery_hour: int = DELIVERY_HOUR,
) -> datetime:
    """One cadence step forward from `from_dt`, time-normalized. Sunday is NOT skipped here."""
    if frequency == WEEKLY:
        candidate = from_dt + timedelta(days=7)
    elif frequency == MONTHLY:
        candidate = add_months(from_dt, 1)
    else:
        raise ValueError(f"Unknown delivery frequency: {frequency!r}")
    return normalize_delivery_time(candidate, delivery_hour)


def generate_sequence(
    start: datetime,
    frequency: str,
    count: int,
    delivery_hour: int = DELIVERY_HOUR,
) -> list[datetime]:
    """
    Chain `count` cadence steps from `start` (exclusive), skipping Sundays at every step.

    A Sunday roll-forward shifts every later step, so a change to any input
    means regenerating the whole sequence.
    """
    dates: list[datetime] = []
    current = start
    for _ in range(max(count, 0)):
        current = skip_if_sunday(next_delivery_candidate(current, frequency, delivery_hour))
        dates.append(current)
    return dates


def at_or_after(moment: datetime, delivery_hour: int = DELIVERY_HOUR) -> datetime:
    """First delivery slot (delivery hour, not Sunday) that is not earlier than `moment`."""
    slot = normalize_delivery_time(moment, delivery_hour)
    if slot < moment:
        slot += timedelta(days=1)
    return skip_if_sunday(slot)


def first_delivery_after_cutoff(
    now: datetime,
    cutoff_hour: int = CUTOFF_HOUR,
    delivery_hour: int = DELIVERY_HOUR,
) -> datetime:
    """
    Before the cutoff the next delivery is tomorrow; at or after it, the day after tomorrow.

    Returns:
        The delivery datetime at the delivery hour, Sunday rolled to Monday
    """
    days_ahead = 2 if is_past_cutoff(now, cutoff_hour) else 1
    candidate = normalize_delivery_time(now + timedelta(days=days_ahead), delivery_hour)
    return skip_if_sunday(candidate)


def days_until(target: datetime, now: datetime) -> int:
    """Whole calendar days from `now`'s date to `target`'s date (negative when past)."""
    return (target.date() - now.date()).days


def is_delivery_today(delivery: datetime, now: datetime) -> bool:
    return delivery.date() == now.date()


def is_delivery_tomorrow(delivery: datetime, now: datetime) -> bool:
    return delivery.date() == now.date() + timedelta(days=1)
