"""
Subscription Lifecycle — status transitions and the rules that gate them.

States:   active, paused, admin_paused, expired (terminal)

  active        → paused         user pause, needs notice before the next delivery
  paused        → active         user reactivate, within the reactivation window
  paused        → expired        reactivation attempted after the window closed
  active        → admin_paused   admin bulk pause
  admin_paused  → active         admin reactivate

The functions here mutate the subscription row in memory only; persisting it
(and the delivery rows) is the caller's job. A rejected transition raises
before any field is touched.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta

from schemas import SubscriptionStatus
from services.delivery_calendar import CUTOFF_HOUR, add_months, is_past_cutoff
from services.errors import (
    InvalidStateTransition, NoticePeriodViolation, ReactivationWindowExpired,
)

REACTIVATION_WINDOW_MONTHS = 3

ALLOWED_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    SubscriptionStatus.ACTIVE: frozenset({SubscriptionStatus.PAUSED, SubscriptionStatus.ADMIN_PAUSED}),
    SubscriptionStatus.PAUSED: frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED}),
    SubscriptionStatus.ADMIN_PAUSED: frozenset({SubscriptionStatus.ACTIVE}),
    SubscriptionStatus.EXPIRED: frozenset(),
}


@dataclass
class ReactivationOutcome:
    next_delivery_date: datetime
    extended_end_date: datetime
    pause_duration: timedelta

    @property
    def pause_duration_days(self) -> int:
        return round(self.pause_duration.total_seconds() / 86400)


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return SubscriptionStatus(target) in ALLOWED_TRANSITIONS[SubscriptionStatus(current)]


def ensure_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"Cannot move subscription from '{SubscriptionStatus(current).value}' "
            f"to '{SubscriptionStatus(target).value}'."
        )


def can_pause(
    next_delivery_date: datetime | None,
    now: datetime,
    cutoff_hour: int = CUTOFF_HOUR,
) -> tuple[bool, str | None]:
    """
    Notice rule for a user pause.

    Refused when the next delivery is today or overdue, or when it is
    tomorrow and the cutoff hour has already passed today. Dates are
    compared in `now`'s zone.

    Returns:
        (allowed, reason) — reason is None when allowed
    """
    if next_delivery_date is None:
        return True, None
    if next_delivery_date.tzinfo is not None and now.tzinfo is not None:
        next_delivery_date = next_delivery_date.astimezone(now.tzinfo)

    days_ahead = (next_delivery_date.date() - now.date()).days
    if days_ahead <= 0:
        return False, "Cannot pause subscription. Your next delivery is due today and is already being prepared."
    if days_ahead == 1 and is_past_cutoff(now, cutoff_hour):
        return False, (
            f"Cannot pause subscription. Tomorrow's delivery is locked after "
            f"{cutoff_hour % 12 or 12} {'PM' if cutoff_hour >= 12 else 'AM'} today."
        )
    return True, None


def reactivation_deadline_for(pause_date: datetime, window_months: int = REACTIVATION_WINDOW_MONTHS) -> datetime:
    return add_months(pause_date, window_months)


def can_reactivate(subscription, now: datetime) -> tuple[bool, str | None, int]:
    """Return (allowed, reason, days_left) for a paused subscription."""
    deadline = subscription.reactivation_deadline
    if deadline is None:
        deadline = reactivation_deadline_for(subscription.pause_date)

    if now > deadline:
        return False, "Reactivation period has expired. Please create a new subscription.", 0

    days_left = max(int(-(-(deadline - now).total_seconds() // 86400)), 0)
    return True, None, days_left


# ── Transitions ────────────────────────────────────────────

def pause(
    subscription,
    now: datetime,
    reason: str | None = None,
    cutoff_hour: int = CUTOFF_HOUR,
    window_months: int = REACTIVATION_WINDOW_MONTHS,
) -> datetime:
    """active → paused. Returns the reactivation deadline."""
    ensure_transition(subscription.status, SubscriptionStatus.PAUSED)

    allowed, why = can_pause(subscription.next_delivery_date, now, cutoff_hour)
    if not allowed:
        raise NoticePeriodViolation(why)

    deadline = reactivation_deadline_for(now, window_months)
    subscription.status = SubscriptionStatus.PAUSED
    subscription.pause_date = now
    subscription.pause_reason = reason or "User requested pause"
    subscription.reactivation_deadline = deadline
    subscription.updated_at = now
    return deadline


def expire(subscription, now: datetime) -> None:
    """paused → expired (reactivation window missed)."""
    ensure_transition(subscription.status, SubscriptionStatus.EXPIRED)
    subscription.status = SubscriptionStatus.EXPIRED
    subscription.updated_at = now


def reactivate(subscription, now: datetime, next_delivery_date: datetime) -> ReactivationOutcome:
    """
    paused → active.

    The term is extended by the time spent paused so no paid delivery cycle
    is lost. Raises ReactivationWindowExpired without mutating anything when
    the deadline has passed; the caller is expected to `expire` it.
    Only a user pause can be lifted here; admin_paused rows resume through
    `admin_reactivate`.
    """
    status = SubscriptionStatus(subscription.status)
    if status != SubscriptionStatus.PAUSED:
        raise InvalidStateTransition(f"Cannot reactivate a subscription that is '{status.value}'.")

    allowed, why, _ = can_reactivate(subscription, now)
    if not allowed:
        raise ReactivationWindowExpired(why)

    pause_duration = max(now - subscription.pause_date, timedelta(0))
    extended_end = subscription.subscription_end_date + pause_duration

    subscription.status = SubscriptionStatus.ACTIVE
    subscription.subscription_end_date = extended_end
    subscription.next_delivery_date = next_delivery_date
    subscription.pause_date = None
    subscription.pause_reason = None
    subscription.reactivation_deadline = None
    subscription.updated_at = now

    return ReactivationOutcome(
        next_delivery_date=next_delivery_date,
        extended_end_date=extended_end,
        pause_duration=pause_duration,
    )


def admin_pause(subscription, pause_record, now: datetime) -> None:
    """active → admin_paused, linked to the admin pause record."""
    ensure_transition(subscription.status, SubscriptionStatus.ADMIN_PAUSED)

    subscription.status = SubscriptionStatus.ADMIN_PAUSED
    subscription.admin_pause_id = pause_record.id
    subscription.admin_pause_start = pause_record.start_date
    subscription.admin_pause_end = pause_record.end_date
    subscription.updated_at = now


def admin_reactivate(
    subscription,
    now: datetime,
    next_delivery_date: datetime,
    admin_user_id=None,
) -> bool:
    """
    admin_paused → active, clearing the admin pause link.

    Rows that still carry an admin_pause_id without being admin_paused (a
    partially failed bulk pause) only get the stale link cleared.

    Returns:
        True when the status actually changed to active
    """
    status = SubscriptionStatus(subscription.status)
    changed = False

    if status == SubscriptionStatus.ADMIN_PAUSED:
        ensure_transition(status, SubscriptionStatus.ACTIVE)
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.next_delivery_date = next_delivery_date
        changed = True
    elif subscription.admin_pause_id is None:
        raise InvalidStateTransition(
            f"Subscription is '{status.value}' and not linked to an admin pause."
        )
    elif status == SubscriptionStatus.ACTIVE:
        subscription.next_delivery_date = next_delivery_date

    subscription.admin_pause_id = None
    subscription.admin_pause_start = None
    subscription.admin_pause_end = None
    subscription.admin_reactivated_at = now
    subscription.admin_reactivated_by = admin_user_id
    subscription.updated_at = now
    return changed
