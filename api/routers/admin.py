"""Admin API endpoints — bulk pauses and delivery cadence settings."""

from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from routers.dependencies import ERROR_STATUS, get_admin_coordinator, raise_for_result
from schemas import (
    AdminPauseCreate, AdminReactivateRequest, OperationResponse,
    DeliveryScheduleSettingResponse, DeliveryScheduleSettingUpdate,
    SchedulePreviewResponse, SubscriptionType,
)
from services.admin_pause import AdminPauseCoordinator
from services.delivery_calendar import local_now, to_local
from services.delivery_scheduler import DeliveryScheduleGenerator
from services.errors import SubscriptionError
from services.schedule_settings import load_cadence_settings, update_cadence_setting
from config import settings

router = APIRouter()


@router.post("/subscriptions/pause", response_model=OperationResponse)
async def create_admin_pause(
    data: AdminPauseCreate,
    coordinator: AdminPauseCoordinator = Depends(get_admin_coordinator),
):
    """Pause every active subscription in scope (all users or the selected ones)."""
    result = raise_for_result(await coordinator.create_admin_pause(data))
    d = result.data
    return OperationResponse(
        message=result.message,
        data={
            "admin_pause_id": str(d["admin_pause_id"]),
            "affected_count": d["affected_count"],
            "total": d["total"],
            "errors": d["errors"],
        },
    )


@router.post("/subscriptions/reactivate", response_model=OperationResponse)
async def reactivate_admin_pause(
    data: AdminReactivateRequest,
    coordinator: AdminPauseCoordinator = Depends(get_admin_coordinator),
):
    """Lift an admin pause. Partial success is still a 200 with per-item errors."""
    result = raise_for_result(
        await coordinator.reactivate_admin_pause(data.admin_pause_id, data.admin_user_id)
    )
    d = result.data
    return OperationResponse(
        message=result.message,
        data={
            "admin_pause_id": str(d["admin_pause_id"]),
            "processed_count": d["processed_count"],
            "total": d["total"],
            "errors": d["errors"],
        },
    )


# ── Delivery schedule settings ─────────────────────────────

@router.get("/delivery-schedule/settings", response_model=list[DeliveryScheduleSettingResponse])
async def get_schedule_settings(db: AsyncSession = Depends(get_db)):
    cadence = await load_cadence_settings(db)
    return [
        DeliveryScheduleSettingResponse(
            subscription_type=s.subscription_type,
            delivery_gap_days=s.delivery_gap_days,
            is_daily=s.is_daily,
            description=s.description,
        )
        for s in cadence.values()
    ]


@router.put("/delivery-schedule/settings", response_model=DeliveryScheduleSettingResponse)
async def put_schedule_setting(
    data: DeliveryScheduleSettingUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Change one type's cadence. Existing calendars pick it up on the next regeneration."""
    try:
        setting = await update_cadence_setting(
            db,
            subscription_type=data.subscription_type.value,
            delivery_gap_days=data.delivery_gap_days,
            is_daily=data.is_daily,
            description=data.description,
            updated_by=str(data.admin_user_id) if data.admin_user_id else None,
        )
    except SubscriptionError as e:
        raise HTTPException(status_code=ERROR_STATUS[e.kind], detail=e.message)
    return DeliveryScheduleSettingResponse(
        subscription_type=setting.subscription_type,
        delivery_gap_days=setting.delivery_gap_days,
        is_daily=setting.is_daily,
        description=setting.description,
    )


@router.get("/delivery-schedule/preview", response_model=SchedulePreviewResponse)
async def preview_schedule(
    subscription_type: SubscriptionType,
    start: datetime | None = None,
    days: int = Query(14, ge=1, le=60),
    db: AsyncSession = Depends(get_db),
):
    """Next `days` delivery dates for a subscription type under the current settings."""
    cadence = await load_cadence_settings(db)
    generator = DeliveryScheduleGenerator(
        cadence_settings=cadence,
        delivery_hour=settings.DELIVERY_HOUR,
        tz_name=settings.TIMEZONE,
    )
    anchor = to_local(start, settings.TIMEZONE) if start else local_now(settings.TIMEZONE)
    dates, label = generator.preview(subscription_type.value, anchor, days)
    return SchedulePreviewResponse(
        subscription_type=subscription_type,
        schedule=label,
        dates=[d.date() for d in dates],
    )
