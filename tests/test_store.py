"""Tests for the store's error mapping and admin-pause lookup (mocked AsyncSession)."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import uuid
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from models import AdminPause, Subscription
from schemas import AdminPauseStatus, AdminPauseType
from services.errors import ConcurrentModification, DatastoreUnavailable
from services.store import SubscriptionStore

NOW = datetime(2025, 3, 12, 10, 0)


def _db(rows=None):
    db = MagicMock()
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows or []
    db.execute = AsyncMock(return_value=result)
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


def _pause(pause_type, user_ids=None):
    return AdminPause(
        id=uuid.uuid4(),
        pause_type=pause_type,
        affected_user_ids=user_ids,
        reason="Maintenance",
        start_date=NOW - timedelta(days=1),
        status=AdminPauseStatus.ACTIVE,
    )


@pytest.mark.asyncio
async def test_stale_write_becomes_concurrent_modification():
    db = _db()
    db.commit.side_effect = StaleDataError("version mismatch")
    store = SubscriptionStore(db)

    with pytest.raises(ConcurrentModification):
        await store.upsert_subscription(MagicMock())
    db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_driver_failure_becomes_datastore_unavailable():
    db = _db()
    db.execute.side_effect = OperationalError("select", {}, Exception("connection refused"))
    store = SubscriptionStore(db)

    with pytest.raises(DatastoreUnavailable):
        await store.get_subscription(uuid.uuid4())
    db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_fleet_wide_pause_wins():
    user_id = uuid.uuid4()
    selected = _pause(AdminPauseType.SELECTED, [str(user_id)])
    fleet = _pause(AdminPauseType.ALL)
    store = SubscriptionStore(_db([selected, fleet]))

    assert await store.get_active_admin_pause(user_id, NOW) is fleet


@pytest.mark.asyncio
async def test_selected_pause_matches_listed_user_only():
    user_id = uuid.uuid4()
    selected = _pause(AdminPauseType.SELECTED, [str(user_id)])
    store = SubscriptionStore(_db([selected]))

    assert await store.get_active_admin_pause(user_id, NOW) is selected
    assert await store.get_active_admin_pause(uuid.uuid4(), NOW) is None
    assert await store.get_active_admin_pause(None, NOW) is None


@pytest.mark.asyncio
async def test_empty_user_scope_skips_query():
    db = _db()
    store = SubscriptionStore(db)
    assert await store.list_active_subscriptions([]) == []
    db.execute.assert_not_awaited()


def test_admin_pause_relationships_never_lazy_load():
    assert Subscription.__mapper__.relationships["admin_pause"].lazy == "raise"
    assert AdminPause.__mapper__.relationships["subscriptions"].lazy == "raise"
