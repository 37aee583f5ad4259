"""Shared fixtures: an in-memory subscription store and a fixed clock."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import uuid
from datetime import datetime, timedelta

import pytest

from models import Subscription, SubscriptionDelivery, AdminPause
from schemas import (
    SubscriptionStatus, DeliveryStatus, DeliveryFrequency, AdminPauseType, AdminPauseStatus,
)
from services.errors import DatastoreUnavailable
from services.subscriptions import SubscriptionService
from services.admin_pause import AdminPauseCoordinator

# Wednesday, 10:00 local
NOW = datetime(2025, 3, 12, 10, 0)


class FakeStore:
    """Dict-backed stand-in for SubscriptionStore. Method names in `fail_on` raise DatastoreUnavailable."""

    def __init__(self):
        self.subscriptions: dict[uuid.UUID, Subscription] = {}
        self.deliveries: list[SubscriptionDelivery] = []
        self.admin_pauses: dict[uuid.UUID, AdminPause] = {}
        self.audit: list[tuple] = []
        self.fail_on: set[str] = set()
        self.fail_for: dict[str, set] = {}
        self.upserts = 0

    def _check(self, name: str, key=None):
        if name in self.fail_on or key in self.fail_for.get(name, set()):
            raise DatastoreUnavailable(f"{name} unavailable")

    # subscriptions
    async def get_subscription(self, subscription_id):
        self._check("get_subscription")
        return self.subscriptions.get(subscription_id)

    async def upsert_subscription(self, subscription):
        self._check("upsert_subscription", subscription.id)
        self.subscriptions[subscription.id] = subscription
        self.upserts += 1
        return subscription

    async def list_active_subscriptions(self, user_ids=None):
        self._check("list_active_subscriptions")
        wanted = {str(u) for u in user_ids} if user_ids is not None else None
        return [
            s for s in self.subscriptions.values()
            if s.status == SubscriptionStatus.ACTIVE and (wanted is None or str(s.user_id) in wanted)
        ]

    async def list_subscriptions_for_admin_pause(self, admin_pause_id):
        self._check("list_subscriptions_for_admin_pause")
        return [
            s for s in self.subscriptions.values()
            if s.admin_pause_id == admin_pause_id
            or (s.status == SubscriptionStatus.ADMIN_PAUSED and s.admin_pause_id is None)
        ]

    async def list_user_subscriptions(self, user_id):
        self._check("list_user_subscriptions")
        return [s for s in self.subscriptions.values() if s.user_id == user_id]

    async def list_due_for_renewal(self, now, horizon):
        self._check("list_due_for_renewal")
        return [
            s for s in self.subscriptions.values()
            if s.status == SubscriptionStatus.ACTIVE
            and not s.renewal_notification_sent
            and now < s.subscription_end_date <= horizon
        ]

    # deliveries
    async def replace_scheduled_deliveries(self, subscription_id, from_date, deliveries):
        self._check("replace_scheduled_deliveries", subscription_id)
        self.deliveries = [
            d for d in self.deliveries
            if not (
                d.subscription_id == subscription_id
                and d.status == DeliveryStatus.SCHEDULED
                and d.delivery_date >= from_date
            )
        ]
        self.deliveries.extend(deliveries)
        return len(deliveries)

    def _restatus(self, subscription_id, from_date, status, admin_pause_id=None):
        count = 0
        for d in self.deliveries:
            if (
                d.subscription_id == subscription_id
                and d.status == DeliveryStatus.SCHEDULED
                and d.delivery_date >= from_date
            ):
                d.status = status
                d.admin_pause_id = admin_pause_id
                count += 1
        return count

    async def skip_scheduled_deliveries(self, subscription_id, from_date):
        self._check("skip_scheduled_deliveries")
        return self._restatus(subscription_id, from_date, DeliveryStatus.SKIPPED)

    async def mark_deliveries_admin_paused(self, subscription_id, from_date, admin_pause_id):
        self._check("mark_deliveries_admin_paused")
        return self._restatus(subscription_id, from_date, DeliveryStatus.ADMIN_PAUSED, admin_pause_id)

    async def clear_admin_paused_deliveries(self, subscription_id):
        self._check("clear_admin_paused_deliveries")
        before = len(self.deliveries)
        self.deliveries = [
            d for d in self.deliveries
            if not (d.subscription_id == subscription_id and d.status == DeliveryStatus.ADMIN_PAUSED)
        ]
        return before - len(self.deliveries)

    async def list_upcoming_deliveries(self, subscription_id, now, limit=10):
        self._check("list_upcoming_deliveries")
        rows = sorted(
            (d for d in self.deliveries
             if d.subscription_id == subscription_id
             and d.status == DeliveryStatus.SCHEDULED
             and d.delivery_date >= now),
            key=lambda d: d.delivery_date,
        )
        return rows[:limit]

    # admin pauses
    async def get_admin_pause(self, admin_pause_id):
        self._check("get_admin_pause")
        return self.admin_pauses.get(admin_pause_id)

    async def save_admin_pause(self, pause):
        self._check("save_admin_pause")
        self.admin_pauses[pause.id] = pause
        return pause

    async def get_active_admin_pause(self, user_id, now):
        self._check("get_active_admin_pause")
        active = [
            p for p in self.admin_pauses.values()
            if p.status == AdminPauseStatus.ACTIVE
            and p.start_date <= now
            and (p.end_date is None or p.end_date >= now)
        ]
        for p in active:
            if p.pause_type == AdminPauseType.ALL:
                return p
        if user_id is not None:
            for p in active:
                if p.covers_user(user_id):
                    return p
        return None

    async def list_expired_admin_pauses(self, now):
        self._check("list_expired_admin_pauses")
        return [
            p for p in self.admin_pauses.values()
            if p.status == AdminPauseStatus.ACTIVE and p.end_date is not None and p.end_date < now
        ]

    async def record_audit(self, admin_user_id, action, details):
        self._check("record_audit")
        self.audit.append((admin_user_id, action, details))

    # helpers
    def scheduled_dates(self, subscription_id) -> list[datetime]:
        return sorted(
            d.delivery_date for d in self.deliveries
            if d.subscription_id == subscription_id and d.status == DeliveryStatus.SCHEDULED
        )

    def statuses(self, subscription_id) -> set:
        return {d.status for d in self.deliveries if d.subscription_id == subscription_id}


class RecordingDispatcher:
    def __init__(self):
        self.events = []

    def dispatch(self, event) -> bool:
        self.events.append(event)
        return True

    def types(self) -> list[str]:
        return [e.type for e in self.events]


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def notifier():
    return RecordingDispatcher()


@pytest.fixture
def service(store, notifier, clock):
    return SubscriptionService(store, dispatcher=notifier, clock=clock, tz_name="Asia/Kolkata")


@pytest.fixture
def coordinator(service):
    return AdminPauseCoordinator(service)


@pytest.fixture
def make_subscription(store):
    """Factory that stores an active weekly subscription; override any column by keyword."""

    def _make(**overrides) -> Subscription:
        values = dict(
            id=uuid.uuid4(),
            user_id=uuid.uuid4(),
            plan_id="juice_weekly",
            status=SubscriptionStatus.ACTIVE,
            delivery_frequency=DeliveryFrequency.WEEKLY,
            selected_items=[{"kind": "juice", "item_id": "green-detox", "quantity": 1}],
            delivery_address={"line1": "12 MG Road", "city": "Pune", "pincode": "411001"},
            customer_info={"name": "Asha", "email": "asha@example.com", "phone": "9876543210"},
            subscription_start_date=NOW - timedelta(days=10),
            subscription_end_date=NOW + timedelta(days=80),
            next_delivery_date=datetime(2025, 3, 14, 8, 0),
            original_price=360.0,
            discount_percentage=5,
            discount_amount=18.0,
            final_price=342.0,
            total_amount=342.0,
            subscription_duration=3,
            renewal_notification_sent=False,
            created_at=NOW - timedelta(days=10),
            updated_at=NOW - timedelta(days=10),
        )
        values.update(overrides)
        subscription = Subscription(**values)
        store.subscriptions[subscription.id] = subscription
        return subscription

    return _make


@pytest.fixture
def make_admin_pause(store):
    def _make(**overrides) -> AdminPause:
        values = dict(
            id=uuid.uuid4(),
            pause_type=AdminPauseType.ALL,
            affected_user_ids=None,
            reason="Festival holiday",
            start_date=NOW - timedelta(days=1),
            end_date=None,
            status=AdminPauseStatus.ACTIVE,
            affected_subscription_count=0,
            admin_user_id=uuid.uuid4(),
        )
        values.update(overrides)
        pause = AdminPause(**values)
        store.admin_pauses[pause.id] = pause
        return pause

    return _make
