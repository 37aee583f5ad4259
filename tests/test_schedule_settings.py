"""Tests for the cached delivery cadence settings."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.exc import OperationalError

from services.delivery_scheduler import DEFAULT_CADENCE_SETTINGS
from services.errors import DatastoreUnavailable
from services.schedule_settings import (
    CACHE_KEY, load_cadence_settings, update_cadence_setting,
)


def _db(rows=None, execute_error=None, get_result=None):
    db = MagicMock()
    if execute_error is not None:
        db.execute = AsyncMock(side_effect=execute_error)
    else:
        result = MagicMock()
        result.scalars.return_value.all.return_value = rows or []
        db.execute = AsyncMock(return_value=result)
    db.get = AsyncMock(return_value=get_result)
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


def _row(subscription_type, gap, daily=False, description=None):
    return SimpleNamespace(
        subscription_type=subscription_type, delivery_gap_days=gap, is_daily=daily, description=description,
    )


@pytest.mark.asyncio
async def test_load_from_cache():
    redis = AsyncMock()
    redis.get.return_value = json.dumps({
        "juices": {"delivery_gap_days": 3, "is_daily": False, "description": "Twice a week"},
    })
    db = _db()

    with patch("services.schedule_settings.get_redis", return_value=redis):
        snapshot = await load_cadence_settings(db)

    assert snapshot["juices"].step_days == 4
    db.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_load_from_table_overrides_defaults_and_caches():
    redis = AsyncMock()
    redis.get.return_value = None
    db = _db(rows=[_row("juices", 4)])

    with patch("services.schedule_settings.get_redis", return_value=redis):
        snapshot = await load_cadence_settings(db)

    assert snapshot["juices"].delivery_gap_days == 4
    assert snapshot["fruit_bowls"] == DEFAULT_CADENCE_SETTINGS["fruit_bowls"]
    key, ttl, payload = redis.setex.call_args.args
    assert key == CACHE_KEY
    assert json.loads(payload)["juices"]["delivery_gap_days"] == 4


@pytest.mark.asyncio
async def test_load_falls_back_to_defaults_when_everything_is_down():
    redis = AsyncMock()
    redis.get.side_effect = RedisConnectionError("refused")
    db = _db(execute_error=OperationalError("select", {}, Exception("db down")))

    with patch("services.schedule_settings.get_redis", return_value=redis):
        snapshot = await load_cadence_settings(db)

    assert snapshot == DEFAULT_CADENCE_SETTINGS
    db.rollback.assert_awaited_once()
    redis.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_creates_row_and_invalidates_cache():
    redis = AsyncMock()
    db = _db(get_result=None)

    with patch("services.schedule_settings.get_redis", return_value=redis):
        setting = await update_cadence_setting(db, "customized", 5, False, "Weekly-ish", updated_by="admin-1")

    assert setting.step_days == 6
    assert setting.description == "Weekly-ish"
    db.add.assert_called_once()
    db.commit.assert_awaited_once()
    redis.delete.assert_awaited_once_with(CACHE_KEY)


@pytest.mark.asyncio
async def test_update_failure_raises_datastore_unavailable():
    redis = AsyncMock()
    db = _db(get_result=SimpleNamespace())
    db.commit = AsyncMock(side_effect=OperationalError("update", {}, Exception("db down")))

    with patch("services.schedule_settings.get_redis", return_value=redis):
        with pytest.raises(DatastoreUnavailable):
            await update_cadence_setting(db, "juices", 2, False)

    db.rollback.assert_awaited_once()
    redis.delete.assert_not_awaited()
