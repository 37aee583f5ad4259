"""
Subscription Store — persistence collaborator over an AsyncSession.

Every public method commits its own unit of work, so a bulk loop that calls
it once per subscription leaves a well-defined partial result on failure.
Driver and ORM failures surface as `DatastoreUnavailable`; a write against a
stale row version surfaces as `ConcurrentModification`.
"""

import logging
import uuid
from collections.abc import Iterable
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select, update, delete, or_, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from models import Subscription, SubscriptionDelivery, AdminPause, AdminAuditLog
from schemas import SubscriptionStatus, DeliveryStatus, AdminPauseType, AdminPauseStatus
from services.errors import ConcurrentModification, DatastoreUnavailable

logger = logging.getLogger(__name__)


class SubscriptionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def _unit(self, action: str):
        try:
            yield
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning("Stale write during %s: %s", action, e)
            raise ConcurrentModification(
                "The subscription was changed by another request. Please retry."
            ) from e
        except (SQLAlchemyError, OSError) as e:
            await self.db.rollback()
            logger.error("Datastore failure during %s: %s", action, e)
            raise DatastoreUnavailable(
                "Subscription storage is temporarily unavailable. Please try again."
            ) from e

    # ── Subscriptions ──────────────────────────────────────

    async def get_subscription(self, subscription_id: uuid.UUID) -> Subscription | None:
        async with self._unit("get_subscription"):
            result = await self.db.execute(
                select(Subscription).where(Subscription.id == subscription_id)
            )
            return result.scalar_one_or_none()

    async def upsert_subscription(self, subscription: Subscription) -> Subscription:
        async with self._unit("upsert_subscription"):
            self.db.add(subscription)
            await self.db.commit()
        return subscription

    async def list_active_subscriptions(self, user_ids: Iterable | None = None) -> list[Subscription]:
        """Active subscriptions, optionally restricted to a set of owners."""
        query = select(Subscription).where(Subscription.status == SubscriptionStatus.ACTIVE)
        if user_ids is not None:
            ids = [uuid.UUID(str(u)) for u in user_ids]
            if not ids:
                return []
            query = query.where(Subscription.user_id.in_(ids))

        async with self._unit("list_active_subscriptions"):
            result = await self.db.execute(query.order_by(Subscription.created_at))
            return list(result.scalars().all())

    async def list_subscriptions_for_admin_pause(self, admin_pause_id: uuid.UUID) -> list[Subscription]:
        """Rows to reconcile on admin reactivation, including ones left with a stale link."""
        async with self._unit("list_subscriptions_for_admin_pause"):
            result = await self.db.execute(
                select(Subscription)
                .where(or_(
                    Subscription.admin_pause_id == admin_pause_id,
                    and_(
                        Subscription.status == SubscriptionStatus.ADMIN_PAUSED,
                        Subscription.admin_pause_id.is_(None),
                    ),
                ))
                .order_by(Subscription.created_at)
            )
            return list(result.scalars().all())

    async def list_user_subscriptions(self, user_id: uuid.UUID) -> list[Subscription]:
        async with self._unit("list_user_subscriptions"):
            result = await self.db.execute(
                select(Subscription)
                .where(Subscription.user_id == user_id)
                .order_by(Subscription.created_at.desc())
            )
            return list(result.scalars().all())

    async def list_due_for_renewal(self, now: datetime, horizon: datetime) -> list[Subscription]:
        """Active terms ending inside (now, horizon] that have not been reminded yet."""
        async with self._unit("list_due_for_renewal"):
            result = await self.db.execute(
                select(Subscription).where(
                    Subscription.status == SubscriptionStatus.ACTIVE,
                    Subscription.renewal_notification_sent.is_(False),
                    Subscription.subscription_end_date > now,
                    Subscription.subscription_end_date <= horizon,
                )
            )
            return list(result.scalars().all())

    # ── Deliveries ─────────────────────────────────────────

    async def replace_scheduled_deliveries(
        self,
        subscription_id: uuid.UUID,
        from_date: datetime,
        deliveries: list[SubscriptionDelivery],
    ) -> int:
        """Delete future `scheduled` rows from `from_date` and insert the new batch in one commit."""
        async with self._unit("replace_scheduled_deliveries"):
            await self.db.execute(
                delete(SubscriptionDelivery).where(
                    SubscriptionDelivery.subscription_id == subscription_id,
                    SubscriptionDelivery.status == DeliveryStatus.SCHEDULED,
                    SubscriptionDelivery.delivery_date >= from_date,
                )
            )
            self.db.add_all(deliveries)
            await self.db.commit()
        return len(deliveries)

    async def _restatus_deliveries(
        self,
        subscription_id: uuid.UUID,
        from_date: datetime,
        status: DeliveryStatus,
        admin_pause_id: uuid.UUID | None = None,
    ) -> int:
        async with self._unit(f"mark_deliveries_{status.value}"):
            result = await self.db.execute(
                update(SubscriptionDelivery)
                .where(
                    SubscriptionDelivery.subscription_id == subscription_id,
                    SubscriptionDelivery.status == DeliveryStatus.SCHEDULED,
                    SubscriptionDelivery.delivery_date >= from_date,
                )
                .values(status=status, admin_pause_id=admin_pause_id)
            )
            await self.db.commit()
            return result.rowcount or 0

    async def skip_scheduled_deliveries(self, subscription_id: uuid.UUID, from_date: datetime) -> int:
        return await self._restatus_deliveries(subscription_id, from_date, DeliveryStatus.SKIPPED)

    async def mark_deliveries_admin_paused(
        self, subscription_id: uuid.UUID, from_date: datetime, admin_pause_id: uuid.UUID,
    ) -> int:
        return await self._restatus_deliveries(
            subscription_id, from_date, DeliveryStatus.ADMIN_PAUSED, admin_pause_id,
        )

    async def clear_admin_paused_deliveries(self, subscription_id: uuid.UUID) -> int:
        """Drop rows held by an admin pause; a fresh calendar replaces them."""
        async with self._unit("clear_admin_paused_deliveries"):
            result = await self.db.execute(
                delete(SubscriptionDelivery).where(
                    SubscriptionDelivery.subscription_id == subscription_id,
                    SubscriptionDelivery.status == DeliveryStatus.ADMIN_PAUSED,
                )
            )
            await self.db.commit()
            return result.rowcount or 0

    async def list_upcoming_deliveries(
        self, subscription_id: uuid.UUID, now: datetime, limit: int = 10,
    ) -> list[SubscriptionDelivery]:
        async with self._unit("list_upcoming_deliveries"):
            result = await self.db.execute(
                select(SubscriptionDelivery)
                .where(
                    SubscriptionDelivery.subscription_id == subscription_id,
                    SubscriptionDelivery.status == DeliveryStatus.SCHEDULED,
                    SubscriptionDelivery.delivery_date >= now,
                )
                .order_by(SubscriptionDelivery.delivery_date)
                .limit(limit)
            )
            return list(result.scalars().all())

    # ── Admin pauses ───────────────────────────────────────

    async def get_admin_pause(self, admin_pause_id: uuid.UUID) -> AdminPause | None:
        async with self._unit("get_admin_pause"):
            result = await self.db.execute(select(AdminPause).where(AdminPause.id == admin_pause_id))
            return result.scalar_one_or_none()

    async def save_admin_pause(self, pause: AdminPause) -> AdminPause:
        async with self._unit("save_admin_pause"):
            self.db.add(pause)
            await self.db.commit()
        return pause

    async def get_active_admin_pause(self, user_id: uuid.UUID | None, now: datetime) -> AdminPause | None:
        """
        The pause currently in force for `user_id`.

        A fleet-wide pause wins over a selected-users pause; with no user id
        only a fleet-wide pause can match.
        """
        async with self._unit("get_active_admin_pause"):
            result = await self.db.execute(
                select(AdminPause)
                .where(
                    AdminPause.status == AdminPauseStatus.ACTIVE,
                    AdminPause.start_date <= now,
                    or_(AdminPause.end_date.is_(None), AdminPause.end_date >= now),
                )
                .order_by(AdminPause.created_at.desc())
            )
            pauses = list(result.scalars().all())

        for pause in pauses:
            if pause.pause_type == AdminPauseType.ALL:
                return pause
        if user_id is not None:
            for pause in pauses:
                if pause.covers_user(user_id):
                    return pause
        return None

    async def list_expired_admin_pauses(self, now: datetime) -> list[AdminPause]:
        async with self._unit("list_expired_admin_pauses"):
            result = await self.db.execute(
                select(AdminPause).where(
                    AdminPause.status == AdminPauseStatus.ACTIVE,
                    AdminPause.end_date.is_not(None),
                    AdminPause.end_date < now,
                )
            )
            return list(result.scalars().all())

    async def record_audit(self, admin_user_id, action: str, details: dict) -> None:
        async with self._unit("record_audit"):
            self.db.add(AdminAuditLog(admin_user_id=admin_user_id, action=action, details=details))
            await self.db.commit()
