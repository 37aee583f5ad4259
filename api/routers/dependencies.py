"""Shared FastAPI dependencies and error-kind → HTTP status mapping."""

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db.database import get_db
from services.admin_pause import AdminPauseCoordinator
from services.errors import ErrorKind, OperationResult
from services.notifications import NotificationDispatcher, dispatcher
from services.schedule_settings import load_cadence_settings
from services.store import SubscriptionStore
from services.subscriptions import SubscriptionService

ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.NOTICE_PERIOD: 409,
    ErrorKind.REACTIVATION_EXPIRED: 410,
    ErrorKind.CONCURRENT_MODIFICATION: 409,
    ErrorKind.DATASTORE_UNAVAILABLE: 503,
}


def get_dispatcher() -> NotificationDispatcher:
    return dispatcher


async def get_subscription_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_dispatcher),
) -> SubscriptionService:
    cadence = await load_cadence_settings(db)
    return SubscriptionService(SubscriptionStore(db), cadence_settings=cadence, dispatcher=notifier)


def get_admin_coordinator(
    service: SubscriptionService = Depends(get_subscription_service),
) -> AdminPauseCoordinator:
    return AdminPauseCoordinator(service)


def raise_for_result(result: OperationResult) -> OperationResult:
    """Pass a successful result through; turn a failed one into an HTTPException."""
    if not result.success:
        raise HTTPException(status_code=ERROR_STATUS.get(result.error_kind, 400), detail=result.message)
    return result


async def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """Periodic-job endpoints require `Authorization: Bearer <CRON_SECRET>`."""
    if not settings.CRON_SECRET:
        raise HTTPException(status_code=503, detail="CRON_SECRET not configured")
    if authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Unauthorized")
