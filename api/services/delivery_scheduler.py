"""
Delivery Scheduler — builds the ordered delivery calendar of a subscription.

Rules:
  - Weekly plans: one drop every 7 days, chained, Sunday rolled to Monday
  - Monthly plans: drops inside each calendar month follow the admin-configured
    cadence for the subscription type (juices / fruit_bowls / customized)
  - Every date is pinned to the delivery hour and never lands on a Sunday
  - An active admin pause pushes the first delivery to the day after the pause
    ends, or one week out when the pause is indefinite
  - Output is a fresh list; callers persist it by replacing future rows
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from services.delivery_calendar import (
    DELIVERY_HOUR, SUNDAY, WEEKLY, MONTHLY,
    add_months, at_or_after, next_delivery_candidate,
    normalize_delivery_time, skip_if_sunday, to_local,
)

INDEFINITE_PAUSE_DAYS = 7


@dataclass(frozen=True)
class CadenceSetting:
    subscription_type: str
    delivery_gap_days: int
    is_daily: bool
    description: str | None = None

    @property
    def step_days(self) -> int:
        return 1 if self.is_daily else self.delivery_gap_days + 1

    @property
    def label(self) -> str:
        return "Daily delivery" if self.is_daily else f"Every {self.step_days} days"


DEFAULT_CADENCE_SETTINGS: dict[str, CadenceSetting] = {
    "juices": CadenceSetting("juices", 1, False, "Every other day delivery"),
    "fruit_bowls": CadenceSetting("fruit_bowls", 1, True, "Daily delivery"),
    "customized": CadenceSetting("customized", 2, False, "Every 3 days"),
}

PLAN_TYPE_MAPPING = {
    "juice_weekly": "juices",
    "juice_monthly": "juices",
    "fruit_bowl_daily": "fruit_bowls",
    "fruit_bowl_weekly": "fruit_bowls",
    "customized_weekly": "customized",
    "customized_monthly": "customized",
}


def subscription_type_for_plan(plan_id: str | None) -> str:
    """Map a plan id to its cadence bucket; unknown plans fall back on naming, then 'customized'."""
    if not plan_id:
        return "customized"
    if plan_id in PLAN_TYPE_MAPPING:
        return PLAN_TYPE_MAPPING[plan_id]

    lowered = plan_id.lower()
    if "juice" in lowered:
        return "juices"
    if "fruit" in lowered or "bowl" in lowered:
        return "fruit_bowls"
    return "customized"


class CadencePolicy(Protocol):
    def cadence_for_month(
        self, setting: CadenceSetting, month_start: datetime, month_end: datetime,
    ) -> list[int]:
        """Ordered day offsets from `month_start` with a drop, all < (month_end - month_start)."""
        ...


class GapCadencePolicy:
    """Every `gap + 1` days (or every day) from the first day of each month slice."""

    def cadence_for_month(
        self, setting: CadenceSetting, month_start: datetime, month_end: datetime,
    ) -> list[int]:
        span = (month_end.date() - month_start.date()).days
        return list(range(0, span, setting.step_days))


class DeliveryScheduleGenerator:
    """
    Pure delivery-date generator.

    The cadence settings snapshot and policy are injected; the generator never
    reads global state or the clock, so identical inputs give identical output.
    """

    def __init__(
        self,
        cadence_settings: Mapping[str, CadenceSetting] | None = None,
        policy: CadencePolicy | None = None,
        delivery_hour: int = DELIVERY_HOUR,
        indefinite_pause_days: int = INDEFINITE_PAUSE_DAYS,
        tz_name: str | None = None,
    ):
        self.cadence_settings = dict(cadence_settings or DEFAULT_CADENCE_SETTINGS)
        self.policy = policy or GapCadencePolicy()
        self.delivery_hour = delivery_hour
        self.indefinite_pause_days = indefinite_pause_days
        self.tz_name = tz_name

    def _local(self, dt: datetime) -> datetime:
        return to_local(dt, self.tz_name) if self.tz_name else dt

    def _slot(self, dt: datetime) -> datetime:
        return skip_if_sunday(normalize_delivery_time(dt, self.delivery_hour))

    def setting_for(self, subscription_type: str) -> CadenceSetting:
        setting = self.cadence_settings.get(subscription_type)
        if setting is None:
            setting = DEFAULT_CADENCE_SETTINGS.get(subscription_type, DEFAULT_CADENCE_SETTINGS["customized"])
        return setting

    # ── Admin pause ────────────────────────────────────────

    def admin_pause_floor(self, admin_pause, now: datetime) -> datetime:
        """Earliest permissible delivery under an active admin pause."""
        if admin_pause.end_date is not None:
            pause_end = self._local(admin_pause.end_date)
            return self._slot(pause_end + timedelta(days=1))
        return at_or_after(
            self._local(now) + timedelta(days=self.indefinite_pause_days),
            self.delivery_hour,
        )

    # ── Single next delivery ───────────────────────────────

    def get_next_scheduled_delivery(
        self,
        from_dt: datetime,
        frequency: str,
        admin_pause=None,
        now: datetime | None = None,
    ) -> datetime:
        """
        Next delivery one cadence step after `from_dt`.

        With an active admin pause the result is the pause floor instead
        (day after the pause ends, or a week out when indefinite).
        """
        if admin_pause is not None:
            return self.admin_pause_floor(admin_pause, now or from_dt)

        candidate = next_delivery_candidate(self._local(from_dt), frequency, self.delivery_hour)
        return skip_if_sunday(candidate)

    # ── Full calendar ──────────────────────────────────────

    def generate_delivery_dates(
        self,
        frequency: str,
        duration_months: int,
        anchor: datetime,
        subscription_type: str = "juices",
        until: datetime | None = None,
        admin_pause=None,
        now: datetime | None = None,
    ) -> list[datetime]:
        """
        Every delivery from `anchor` (inclusive) to the end of the covered span.

        Args:
            frequency: weekly or monthly
            duration_months: Covered span in months from the anchor (ignored when `until` is set)
            anchor: First delivery candidate
            subscription_type: Cadence bucket used for monthly plans
            until: Explicit inclusive end of the span (e.g. subscription_end_date)
            admin_pause: Active admin pause for the owner, if any
            now: Reference time for an indefinite admin pause

        Returns:
            Strictly increasing delivery datetimes, none on a Sunday
        """
        first = self._slot(self._local(anchor))
        if admin_pause is not None:
            floor = self.admin_pause_floor(admin_pause, now or anchor)
            if floor > first:
                first = floor

        if until is not None:
            end = normalize_delivery_time(self._local(until), self.delivery_hour)
        else:
            end = add_months(normalize_delivery_time(self._local(anchor), self.delivery_hour), duration_months)

        if first > end:
            return []

        if frequency == WEEKLY:
            return self._weekly_dates(first, end)
        if frequency == MONTHLY:
            return self._monthly_dates(first, end, self.setting_for(subscription_type))
        raise ValueError(f"Unknown delivery frequency: {frequency!r}")

    def _weekly_dates(self, first: datetime, end: datetime) -> list[datetime]:
        dates = [first]
        current = first
        while True:
            current = skip_if_sunday(next_delivery_candidate(current, WEEKLY, self.delivery_hour))
            if current > end:
                break
            dates.append(current)
        return dates

    def _monthly_dates(self, first: datetime, end: datetime, setting: CadenceSetting) -> list[datetime]:
        dates: list[datetime] = []
        month_index = 0
        month_start = first
        while month_start <= end:
            month_end = add_months(first, month_index + 1)
            for offset in self.policy.cadence_for_month(setting, month_start, month_end):
                candidate = self._slot(month_start + timedelta(days=offset))
                if candidate > end:
                    break
                if dates and candidate <= dates[-1]:
                    continue
                dates.append(candidate)
            month_index += 1
            month_start = add_months(first, month_index)
        return dates

    # ── Admin preview ──────────────────────────────────────

    def preview(self, subscription_type: str, start: datetime, count: int = 14) -> tuple[list[datetime], str]:
        """Next `count` drops for a cadence bucket, for the admin settings screen."""
        setting = self.setting_for(subscription_type)
        dates: list[datetime] = []
        current = normalize_delivery_time(self._local(start), self.delivery_hour)
        while len(dates) < count:
            if current.weekday() == SUNDAY:
                current += timedelta(days=1)
                continue
            dates.append(current)
            current += timedelta(days=setting.step_days)
        return dates, setting.label
