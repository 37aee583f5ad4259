"""
Admin Pause Coordinator — fleet-wide or selected-user delivery suspensions.

Rules:
  - The pause record is written first; each subscription is then moved on its
    own commit, so a crash mid-batch leaves a resumable partial result
  - Only `active` subscriptions are admin-paused; user-paused ones keep their
    own pause and are left alone
  - Reactivation is best-effort and idempotent: re-running it reconciles rows
    still linked to the pause (or orphaned in admin_paused) and skips the rest
  - Audit log and notification failures never fail the operation
"""

import logging
import uuid
from datetime import datetime, timedelta

from models import AdminPause
from schemas import AdminPauseCreate, AdminPauseStatus, AdminPauseType, SubscriptionStatus
from services import lifecycle
from services.delivery_calendar import first_delivery_after_cutoff, normalize_delivery_time, skip_if_sunday
from services.errors import BulkOutcome, NotFoundError, OperationResult, SubscriptionError, ValidationError
from services.notifications import EVENT_ADMIN_PAUSE, EVENT_ADMIN_REACTIVATE
from services.subscriptions import SubscriptionService

logger = logging.getLogger(__name__)


class AdminPauseCoordinator:
    def __init__(self, service: SubscriptionService):
        self.service = service
        self.store = service.store

    # ── Validation ─────────────────────────────────────────

    def validate(self, payload: AdminPauseCreate, now: datetime) -> None:
        try:
            pause_type = AdminPauseType(payload.pause_type)
        except ValueError:
            raise ValidationError("Pause type must be 'all' or 'selected'.") from None

        if pause_type == AdminPauseType.SELECTED and not payload.user_ids:
            raise ValidationError("Select at least one user for a selected pause.")
        if not payload.reason or not payload.reason.strip():
            raise ValidationError("A pause reason is required.")
        if payload.admin_user_id is None:
            raise ValidationError("Admin user id is required.")

        start = self.service.local(payload.start_date)
        if start.date() < now.date():
            raise ValidationError("Pause start date cannot be in the past.")
        if payload.end_date is not None and self.service.local(payload.end_date) <= start:
            raise ValidationError("Pause end date must be after the start date.")

    async def _audit(self, admin_user_id, action: str, details: dict) -> None:
        try:
            await self.store.record_audit(admin_user_id, action, details)
        except SubscriptionError as e:
            logger.warning("Audit log '%s' not written: %s", action, e.message)

    # ── Create ─────────────────────────────────────────────

    async def create_admin_pause(self, payload: AdminPauseCreate) -> OperationResult:
        try:
            return await self._create(payload)
        except SubscriptionError as e:
            logger.info("create_admin_pause rejected (%s): %s", e.kind.value, e.message)
            return OperationResult.fail(e)

    async def _create(self, payload: AdminPauseCreate) -> OperationResult:
        now = self.service.now()
        self.validate(payload, now)

        pause_type = AdminPauseType(payload.pause_type)
        user_ids = [str(u) for u in payload.user_ids] if pause_type == AdminPauseType.SELECTED else None
        start_date = self.service.local(payload.start_date)
        end_date = self.service.local(payload.end_date) if payload.end_date is not None else None
        pause = AdminPause(
            id=uuid.uuid4(),
            pause_type=pause_type,
            affected_user_ids=user_ids,
            reason=payload.reason.strip(),
            start_date=start_date,
            end_date=end_date,
            status=AdminPauseStatus.ACTIVE,
            affected_subscription_count=0,
            admin_user_id=payload.admin_user_id,
            created_at=now,
            updated_at=now,
        )
        await self.store.save_admin_pause(pause)

        outcome = BulkOutcome()
        for subscription in await self.store.list_active_subscriptions(user_ids):
            try:
                lifecycle.admin_pause(subscription, pause, now)
                await self.store.upsert_subscription(subscription)
            except SubscriptionError as e:
                logger.warning("Admin pause skipped %s: %s", subscription.id, e.message)
                outcome.record_failure(subscription.id, e.message)
                continue

            try:
                await self.store.mark_deliveries_admin_paused(
                    subscription.id, max(start_date, now), pause.id,
                )
            except SubscriptionError as e:
                logger.warning("Deliveries for %s not marked admin_paused: %s", subscription.id, e.message)

            self.service.notify(
                EVENT_ADMIN_PAUSE, subscription,
                reason=pause.reason, end_date=pause.end_date,
            )
            outcome.record_success(subscription.id)

        pause.affected_subscription_count = outcome.processed_count
        try:
            await self.store.save_admin_pause(pause)
        except SubscriptionError as e:
            logger.warning("Affected count for admin pause %s not saved: %s", pause.id, e.message)

        await self._audit(payload.admin_user_id, "admin_pause_created", {
            "admin_pause_id": str(pause.id),
            "pause_type": pause_type.value,
            "affected_user_ids": user_ids,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat() if end_date else None,
            "reason": pause.reason,
            "affected_subscriptions": outcome.processed_count,
        })

        logger.info(
            "Admin pause %s (%s) created: processed=%d total=%d",
            pause.id, pause_type.value, outcome.processed_count, outcome.total,
        )
        return OperationResult.ok(
            f"Admin pause applied to {outcome.processed_count} subscription(s).",
            admin_pause_id=pause.id,
            affected_count=outcome.processed_count,
            total=outcome.total,
            errors=outcome.errors,
        )

    # ── Reactivate ─────────────────────────────────────────

    def resume_date(self, pause: AdminPause, now: datetime) -> datetime:
        """
        First delivery after an admin pause is lifted.

        The cutoff-aware next slot, but never before the day after the
        pause's own end date.
        """
        generator = self.service.generator
        candidate = first_delivery_after_cutoff(now, self.service.cutoff_hour, generator.delivery_hour)
        if pause.end_date is not None:
            after_end = skip_if_sunday(normalize_delivery_time(
                self.service.local(pause.end_date) + timedelta(days=1), generator.delivery_hour,
            ))
            candidate = max(candidate, after_end)
        return candidate

    async def reactivate_admin_pause(self, admin_pause_id, admin_user_id=None) -> OperationResult:
        try:
            pause = await self.store.get_admin_pause(admin_pause_id)
            if pause is None:
                raise NotFoundError(f"Admin pause {admin_pause_id} not found.")
            outcome = await self._reactivate(pause, admin_user_id)
        except SubscriptionError as e:
            logger.info("reactivate_admin_pause failed (%s): %s", e.kind.value, e.message)
            return OperationResult.fail(e)

        return OperationResult.ok(
            f"Reactivated {outcome.processed_count} of {outcome.total} subscription(s).",
            admin_pause_id=pause.id,
            processed_count=outcome.processed_count,
            total=outcome.total,
            errors=outcome.errors,
        )

    async def _reactivate(self, pause: AdminPause, admin_user_id) -> BulkOutcome:
        now = self.service.now()

        if pause.status != AdminPauseStatus.REACTIVATED:
            pause.status = AdminPauseStatus.REACTIVATED
            pause.reactivated_at = now
            pause.reactivated_by = admin_user_id
            pause.updated_at = now
            await self.store.save_admin_pause(pause)

        resume = self.resume_date(pause, now)
        outcome = BulkOutcome()
        for subscription in await self.store.list_subscriptions_for_admin_pause(pause.id):
            try:
                # another pause still covering this user keeps deliveries out of its window
                other_pause = await self.store.get_active_admin_pause(subscription.user_id, now)
                if other_pause is not None and other_pause.id == pause.id:
                    other_pause = None
                next_delivery = resume
                if other_pause is not None:
                    next_delivery = max(resume, self.service.generator.admin_pause_floor(other_pause, now))
                resumed = lifecycle.admin_reactivate(subscription, now, next_delivery, admin_user_id)
                await self.store.upsert_subscription(subscription)
            except SubscriptionError as e:
                logger.warning("Admin reactivation failed for %s: %s", subscription.id, e.message)
                outcome.record_failure(subscription.id, e.message)
                continue

            if subscription.status == SubscriptionStatus.ACTIVE:
                try:
                    await self.store.clear_admin_paused_deliveries(subscription.id)
                except SubscriptionError as e:
                    logger.warning("Admin-paused deliveries for %s not cleared: %s", subscription.id, e.message)
                await self.service.rebuild_calendar(subscription, now, other_pause)
            if resumed:
                self.service.notify(EVENT_ADMIN_REACTIVATE, subscription, next_delivery_date=next_delivery)
            outcome.record_success(subscription.id)

        await self._audit(admin_user_id, "admin_pause_reactivated", {
            "admin_pause_id": str(pause.id),
            "processed": outcome.processed_count,
            "total": outcome.total,
            "errors": outcome.errors,
        })
        logger.info(
            "Admin pause %s reactivated: processed=%d total=%d",
            pause.id, outcome.processed_count, outcome.total,
        )
        return outcome

    async def cleanup_expired_admin_pauses(self) -> BulkOutcome:
        """Lift every active admin pause whose end date has passed."""
        now = self.service.now()
        outcome = BulkOutcome()
        try:
            expired = await self.store.list_expired_admin_pauses(now)
        except SubscriptionError as e:
            logger.error("Expired admin pause cleanup aborted: %s", e.message)
            outcome.record_failure("*", e.message)
            return outcome

        for pause in expired:
            try:
                result = await self._reactivate(pause, pause.admin_user_id)
            except SubscriptionError as e:
                logger.warning("Expired admin pause %s not lifted: %s", pause.id, e.message)
                outcome.record_failure(pause.id, e.message)
                continue
            outcome.items.extend(result.items)

        return outcome
