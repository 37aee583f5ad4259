"""
Subscription use cases — create, pause, reactivate, periodic regeneration, renewal.

Rules:
  - The subscription row is the source of truth: a failed row write fails the
    whole operation, while delivery-row replacement and notifications are
    best-effort and only logged
  - An active admin pause never blocks enrollment; it only pushes the first
    delivery out and adds an advisory message
  - Every public operation returns an OperationResult or BulkOutcome; business
    errors never escape as exceptions
"""

import logging
import uuid
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import asdict
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from config import settings
from models import Subscription, SubscriptionDelivery
from schemas import (
    SubscriptionCreate, SubscriptionStatus, DeliveryStatus, DeliveryFrequency, AdminPauseType,
)
from services import lifecycle
from services.delivery_calendar import (
    at_or_after, days_until, local_now, to_local, WEEKLY,
)
from services.delivery_scheduler import (
    CadenceSetting, DeliveryScheduleGenerator, subscription_type_for_plan,
)
from services.errors import (
    BulkOutcome, ErrorKind, InvalidStateTransition, NotFoundError, OperationResult,
    ReactivationWindowExpired, SubscriptionError,
)
from services.notifications import (
    NotificationDispatcher, SubscriptionEvent,
    EVENT_PAUSE, EVENT_REACTIVATE, EVENT_RENEWAL_REMINDER,
)
from services.pricing import (
    calculate_subscription_end_date, calculate_subscription_pricing,
    get_expiry_status, needs_renewal_notification,
)
from services.store import SubscriptionStore

logger = logging.getLogger(__name__)

# Regeneration treats a next delivery further out than this as drifted
MAX_LEAD_DAYS = {"weekly": 14, "monthly": 40}


class SubscriptionService:
    def __init__(
        self,
        store: SubscriptionStore,
        cadence_settings: Mapping[str, CadenceSetting] | None = None,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
        tz_name: str | None = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.tz_name = tz_name or settings.TIMEZONE
        self.cutoff_hour = settings.CUTOFF_HOUR
        self.window_months = settings.REACTIVATION_WINDOW_MONTHS
        self.renewal_days = settings.RENEWAL_NOTIFICATION_DAYS
        self.generator = DeliveryScheduleGenerator(
            cadence_settings=cadence_settings,
            delivery_hour=settings.DELIVERY_HOUR,
            indefinite_pause_days=settings.INDEFINITE_ADMIN_PAUSE_DAYS,
            tz_name=self.tz_name,
        )
        self._clock = clock or (lambda: local_now(self.tz_name))

    def now(self) -> datetime:
        return self._clock()

    def local(self, dt: datetime) -> datetime:
        """Operational-zone view of `dt`; naive input is taken as local."""
        dt = to_local(dt, self.tz_name)
        if dt.tzinfo is None and self.now().tzinfo is not None:
            dt = dt.replace(tzinfo=ZoneInfo(self.tz_name))
        return dt

    async def _guarded(self, action: str, operation: Callable[[], Awaitable[OperationResult]]) -> OperationResult:
        try:
            return await operation()
        except SubscriptionError as e:
            if e.kind == ErrorKind.DATASTORE_UNAVAILABLE:
                logger.error("%s failed: %s", action, e.message)
            else:
                logger.info("%s rejected (%s): %s", action, e.kind.value, e.message)
            return OperationResult.fail(e)

    async def _load(self, subscription_id) -> Subscription:
        subscription = await self.store.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError(f"Subscription {subscription_id} not found.")
        return subscription

    def notify(self, event_type: str, subscription: Subscription, **details) -> None:
        if self.dispatcher is not None:
            self.dispatcher.dispatch(SubscriptionEvent.for_subscription(event_type, subscription, **details))

    # ── Delivery calendar ──────────────────────────────────

    def build_calendar(self, subscription: Subscription, admin_pause=None, now: datetime | None = None) -> list[SubscriptionDelivery]:
        """Fresh `scheduled` rows from next_delivery_date to the end of the term."""
        dates = self.generator.generate_delivery_dates(
            frequency=DeliveryFrequency(subscription.delivery_frequency).value,
            duration_months=subscription.subscription_duration,
            anchor=subscription.next_delivery_date,
            subscription_type=subscription_type_for_plan(subscription.plan_id),
            until=subscription.subscription_end_date,
            admin_pause=admin_pause,
            now=now,
        )
        items = list(subscription.selected_items or [])
        return [
            SubscriptionDelivery(
                id=uuid.uuid4(),
                subscription_id=subscription.id,
                delivery_date=d,
                status=DeliveryStatus.SCHEDULED,
                items=items,
            )
            for d in dates
        ]

    async def rebuild_calendar(self, subscription: Subscription, now: datetime, admin_pause=None) -> int:
        """Replace future scheduled rows. Failures are logged and left for the regeneration job."""
        rows = self.build_calendar(subscription, admin_pause, now)
        try:
            return await self.store.replace_scheduled_deliveries(subscription.id, now, rows)
        except SubscriptionError as e:
            logger.warning(
                "Delivery schedule for %s not replaced (%s); regeneration will retry",
                subscription.id, e.message,
            )
            return 0

    # ── Create ─────────────────────────────────────────────

    async def create_subscription(self, payload: SubscriptionCreate) -> OperationResult:
        return await self._guarded("create_subscription", lambda: self._create(payload))

    async def _create(self, payload: SubscriptionCreate) -> OperationResult:
        pricing = calculate_subscription_pricing(payload.base_price, payload.duration)
        now = self.now()
        frequency = DeliveryFrequency(payload.frequency)

        admin_pause = await self.store.get_active_admin_pause(payload.user_id, now)
        first_delivery = self.generator.get_next_scheduled_delivery(now, frequency.value, admin_pause, now)

        advisory = None
        if admin_pause is not None:
            if admin_pause.end_date is not None:
                advisory = (
                    f"Deliveries are temporarily paused until "
                    f"{self.local(admin_pause.end_date):%d %b %Y}. "
                    f"Your first delivery is scheduled for {first_delivery:%d %b %Y}."
                )
            else:
                advisory = (
                    f"Deliveries are temporarily paused. Your first delivery is "
                    f"tentatively scheduled for {first_delivery:%d %b %Y}."
                )

        customer = payload.customer.model_dump() if payload.customer else {}
        subscription = Subscription(
            id=uuid.uuid4(),
            user_id=payload.user_id,
            plan_id=payload.plan_id,
            status=SubscriptionStatus.ACTIVE,
            delivery_frequency=frequency,
            selected_items=[item.model_dump(mode="json") for item in payload.items],
            delivery_address=payload.address.model_dump(mode="json"),
            customer_info=customer,
            subscription_start_date=now,
            subscription_end_date=calculate_subscription_end_date(now, payload.duration),
            next_delivery_date=first_delivery,
            original_price=pricing.original_price,
            discount_percentage=pricing.discount_percentage,
            discount_amount=pricing.discount_amount,
            final_price=pricing.final_price,
            total_amount=pricing.final_price,
            subscription_duration=payload.duration,
            renewal_notification_sent=False,
            created_at=now,
            updated_at=now,
        )
        await self.store.upsert_subscription(subscription)
        scheduled = await self.rebuild_calendar(subscription, now, admin_pause)

        logger.info(
            "Subscription %s created for user %s: %s x%d, first delivery %s",
            subscription.id, payload.user_id, frequency.value, payload.duration, first_delivery,
        )
        return OperationResult.ok(
            advisory or "Subscription created successfully!",
            subscription=subscription,
            pricing=asdict(pricing),
            first_delivery_date=first_delivery,
            scheduled_deliveries=scheduled,
            advisory_message=advisory,
        )

    # ── Pause ──────────────────────────────────────────────

    async def pause_subscription(self, subscription_id, reason: str | None = None) -> OperationResult:
        return await self._guarded("pause_subscription", lambda: self._pause(subscription_id, reason))

    async def _pause(self, subscription_id, reason: str | None) -> OperationResult:
        subscription = await self._load(subscription_id)
        now = self.now()

        deadline = lifecycle.pause(
            subscription, now, reason,
            cutoff_hour=self.cutoff_hour, window_months=self.window_months,
        )
        await self.store.upsert_subscription(subscription)

        try:
            skipped = await self.store.skip_scheduled_deliveries(subscription.id, now)
        except SubscriptionError as e:
            logger.warning("Deliveries for %s not marked skipped: %s", subscription.id, e.message)
            skipped = 0

        self.notify(EVENT_PAUSE, subscription, reactivation_deadline=deadline)
        logger.info("Subscription %s paused until %s (%d deliveries skipped)", subscription.id, deadline, skipped)
        return OperationResult.ok(
            f"Subscription paused successfully. You can reactivate it within {self.window_months} months.",
            subscription=subscription,
            reactivation_deadline=deadline,
        )

    # ── Reactivate ─────────────────────────────────────────

    async def reactivate_subscription(self, subscription_id, explicit_date: datetime | None = None) -> OperationResult:
        return await self._guarded(
            "reactivate_subscription", lambda: self._reactivate(subscription_id, explicit_date),
        )

    async def _reactivate(self, subscription_id, explicit_date: datetime | None) -> OperationResult:
        subscription = await self._load(subscription_id)
        now = self.now()

        if subscription.status != SubscriptionStatus.PAUSED:
            raise InvalidStateTransition(
                f"Cannot reactivate a subscription that is '{SubscriptionStatus(subscription.status).value}'."
            )

        allowed, why, _ = lifecycle.can_reactivate(subscription, now)
        if not allowed:
            lifecycle.expire(subscription, now)
            await self.store.upsert_subscription(subscription)
            logger.info("Subscription %s expired: reactivation window closed", subscription.id)
            raise ReactivationWindowExpired(why)

        admin_pause = await self.store.get_active_admin_pause(subscription.user_id, now)
        frequency = DeliveryFrequency(subscription.delivery_frequency).value

        if explicit_date is not None:
            requested = max(self.local(explicit_date), now + timedelta(days=1))
            next_delivery = at_or_after(requested, self.generator.delivery_hour)
            if admin_pause is not None:
                next_delivery = max(next_delivery, self.generator.admin_pause_floor(admin_pause, now))
        else:
            next_delivery = self.generator.get_next_scheduled_delivery(now, frequency, admin_pause, now)

        outcome = lifecycle.reactivate(subscription, now, next_delivery)
        await self.store.upsert_subscription(subscription)
        await self.rebuild_calendar(subscription, now, admin_pause)

        self.notify(
            EVENT_REACTIVATE, subscription,
            next_delivery_date=outcome.next_delivery_date,
            extended_end_date=outcome.extended_end_date,
        )
        logger.info(
            "Subscription %s reactivated after %d days paused; next delivery %s, ends %s",
            subscription.id, outcome.pause_duration_days, next_delivery, outcome.extended_end_date,
        )
        return OperationResult.ok(
            "Subscription reactivated successfully!",
            subscription=subscription,
            next_delivery_date=outcome.next_delivery_date,
            extended_end_date=outcome.extended_end_date,
            pause_duration_days=outcome.pause_duration_days,
        )

    # ── Periodic jobs ──────────────────────────────────────

    async def regenerate_schedules(self) -> BulkOutcome:
        """
        Heal drifted next-delivery pointers and rebuild every active calendar.

        A next delivery that is today, overdue, or further out than the
        frequency allows is recomputed from now (admin-pause aware).
        """
        now = self.now()
        outcome = BulkOutcome()

        try:
            subscriptions = await self.store.list_active_subscriptions()
        except SubscriptionError as e:
            logger.error("Schedule regeneration aborted: %s", e.message)
            outcome.record_failure("*", e.message)
            return outcome

        for subscription in subscriptions:
            try:
                await self._regenerate_one(subscription, now)
                outcome.record_success(subscription.id)
            except (SubscriptionError, ValueError) as e:
                message = getattr(e, "message", str(e))
                logger.warning("Regeneration failed for %s: %s", subscription.id, message)
                outcome.record_failure(subscription.id, message)

        logger.info("Schedule regeneration: processed=%d total=%d", outcome.processed_count, outcome.total)
        return outcome

    async def _regenerate_one(self, subscription: Subscription, now: datetime) -> None:
        frequency = DeliveryFrequency(subscription.delivery_frequency).value
        admin_pause = await self.store.get_active_admin_pause(subscription.user_id, now)

        lead = days_until(self.local(subscription.next_delivery_date), now)
        if lead <= 0 or lead > MAX_LEAD_DAYS.get(frequency, MAX_LEAD_DAYS[WEEKLY]):
            subscription.next_delivery_date = self.generator.get_next_scheduled_delivery(
                now, frequency, admin_pause, now,
            )
            subscription.updated_at = now
            await self.store.upsert_subscription(subscription)
            logger.info("Subscription %s next delivery moved to %s", subscription.id, subscription.next_delivery_date)

        rows = self.build_calendar(subscription, admin_pause, now)
        await self.store.replace_scheduled_deliveries(subscription.id, now, rows)

    async def run_renewal_check(self) -> BulkOutcome:
        """Send one renewal reminder per term entering its last days."""
        now = self.now()
        outcome = BulkOutcome()

        try:
            due = await self.store.list_due_for_renewal(now, now + timedelta(days=self.renewal_days))
        except SubscriptionError as e:
            logger.error("Renewal check aborted: %s", e.message)
            outcome.record_failure("*", e.message)
            return outcome

        for subscription in due:
            needed, days_left = needs_renewal_notification(subscription.subscription_end_date, now, self.renewal_days)
            if not needed:
                continue
            try:
                subscription.renewal_notification_sent = True
                subscription.updated_at = now
                await self.store.upsert_subscription(subscription)
            except SubscriptionError as e:
                outcome.record_failure(subscription.id, e.message)
                continue

            self.notify(
                EVENT_RENEWAL_REMINDER, subscription,
                days_left=days_left, end_date=self.local(subscription.subscription_end_date),
            )
            outcome.record_success(subscription.id)

        logger.info("Renewal check: processed=%d total=%d", outcome.processed_count, outcome.total)
        return outcome

    # ── Queries ────────────────────────────────────────────

    async def get_admin_pause_info(self, user_id=None) -> OperationResult:
        return await self._guarded("get_admin_pause_info", lambda: self._admin_pause_info(user_id))

    async def _admin_pause_info(self, user_id) -> OperationResult:
        pause = await self.store.get_active_admin_pause(user_id, self.now())
        if pause is None:
            return OperationResult.ok("No active admin pause.", has_active_pause=False)

        if pause.pause_type == AdminPauseType.ALL:
            type_message = "All subscription services are temporarily paused."
        else:
            type_message = "Your subscription services are temporarily paused."
        if pause.end_date is not None:
            end_message = f" Expected to resume on {self.local(pause.end_date):%d %b %Y}."
        else:
            end_message = " Please check back later for updates."

        message = f"{type_message} {pause.reason}{end_message}"
        return OperationResult.ok(
            message,
            has_active_pause=True,
            reason=pause.reason,
            start_date=pause.start_date,
            end_date=pause.end_date,
            pause_type=AdminPauseType(pause.pause_type),
        )

    async def list_user_subscriptions(self, user_id) -> OperationResult:
        return await self._guarded("list_user_subscriptions", lambda: self._list_for_user(user_id))

    async def _list_for_user(self, user_id) -> OperationResult:
        now = self.now()
        entries = []
        for subscription in await self.store.list_user_subscriptions(user_id):
            upcoming = await self.store.list_upcoming_deliveries(subscription.id, now)
            expiry = get_expiry_status(subscription.subscription_end_date, now, self.renewal_days)
            entries.append({
                "subscription": subscription,
                "upcoming_deliveries": upcoming,
                "expiry": asdict(expiry),
            })
        return OperationResult.ok(f"{len(entries)} subscription(s) found.", subscriptions=entries)
