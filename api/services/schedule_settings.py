"""
Delivery cadence settings — admin-configured gap per subscription type.

Lookup order:
  1. Redis snapshot (TTL = SETTINGS_CACHE_TTL_SEC)
  2. delivery_schedule_settings table (active rows only)
  3. Built-in defaults for any type missing from the table

The loaded snapshot is handed to DeliveryScheduleGenerator explicitly.
A cache or table outage degrades to defaults, never to an error.
"""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import DeliveryScheduleSetting
from services.delivery_scheduler import CadenceSetting, DEFAULT_CADENCE_SETTINGS
from services.errors import DatastoreUnavailable

logger = logging.getLogger(__name__)

CACHE_KEY = "delivery_schedule:settings"

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Singleton Redis connection."""
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


def _to_cadence(row) -> CadenceSetting:
    return CadenceSetting(
        subscription_type=row.subscription_type,
        delivery_gap_days=row.delivery_gap_days,
        is_daily=bool(row.is_daily),
        description=row.description,
    )


def _serialize(snapshot: dict[str, CadenceSetting]) -> str:
    return json.dumps({
        key: {
            "delivery_gap_days": s.delivery_gap_days,
            "is_daily": s.is_daily,
            "description": s.description,
        }
        for key, s in snapshot.items()
    })


def _deserialize(raw: str) -> dict[str, CadenceSetting]:
    data = json.loads(raw)
    return {
        key: CadenceSetting(key, value["delivery_gap_days"], value["is_daily"], value.get("description"))
        for key, value in data.items()
    }


async def load_cadence_settings(db: AsyncSession) -> dict[str, CadenceSetting]:
    """Current cadence snapshot for every subscription type."""
    try:
        r = await get_redis()
        cached = await r.get(CACHE_KEY)
        if cached:
            return _deserialize(cached)
    except (RedisError, OSError, ValueError) as e:
        logger.warning("Cadence settings cache read failed: %s", e)

    snapshot = dict(DEFAULT_CADENCE_SETTINGS)
    try:
        result = await db.execute(
            select(DeliveryScheduleSetting).where(DeliveryScheduleSetting.is_active.is_(True))
        )
        for row in result.scalars().all():
            snapshot[row.subscription_type] = _to_cadence(row)
    except SQLAlchemyError as e:
        logger.warning("Cadence settings table unavailable, using defaults: %s", e)
        await db.rollback()
        return snapshot

    try:
        r = await get_redis()
        await r.setex(CACHE_KEY, settings.SETTINGS_CACHE_TTL_SEC, _serialize(snapshot))
    except (RedisError, OSError) as e:
        logger.warning("Cadence settings cache write failed: %s", e)

    return snapshot


async def invalidate_cache() -> None:
    try:
        r = await get_redis()
        await r.delete(CACHE_KEY)
    except (RedisError, OSError) as e:
        logger.warning("Cadence settings cache invalidation failed: %s", e)


async def update_cadence_setting(
    db: AsyncSession,
    subscription_type: str,
    delivery_gap_days: int,
    is_daily: bool,
    description: str | None = None,
    updated_by: str | None = None,
) -> CadenceSetting:
    """Create or overwrite one type's cadence and drop the cached snapshot."""
    try:
        row = await db.get(DeliveryScheduleSetting, subscription_type)
        if row is None:
            row = DeliveryScheduleSetting(subscription_type=subscription_type)
            db.add(row)
        row.delivery_gap_days = delivery_gap_days
        row.is_daily = is_daily
        row.description = description
        row.is_active = True
        row.updated_by = updated_by
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to update cadence for %s: %s", subscription_type, e)
        raise DatastoreUnavailable("Could not save delivery schedule settings.") from e

    await invalidate_cache()
    logger.info(
        "Cadence for %s set to gap=%d daily=%s by %s",
        subscription_type, delivery_gap_days, is_daily, updated_by,
    )
    return _to_cadence(row)
