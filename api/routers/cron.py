"""
Periodic job endpoints — called by an external scheduler with the cron secret.

  POST /regenerate-schedules  lift expired admin pauses, then heal every active calendar
  POST /renewal-check         queue renewal reminders for terms ending soon
"""

from fastapi import APIRouter, Depends

from routers.dependencies import (
    get_admin_coordinator, get_subscription_service, verify_cron_secret,
)
from schemas import BulkOutcomeResponse
from services.admin_pause import AdminPauseCoordinator
from services.errors import BulkOutcome
from services.subscriptions import SubscriptionService

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


def _summary(outcome: BulkOutcome) -> BulkOutcomeResponse:
    return BulkOutcomeResponse(
        processed_count=outcome.processed_count,
        total=outcome.total,
        errors=outcome.errors,
    )


@router.post("/regenerate-schedules")
async def regenerate_schedules(
    coordinator: AdminPauseCoordinator = Depends(get_admin_coordinator),
    service: SubscriptionService = Depends(get_subscription_service),
):
    lifted = await coordinator.cleanup_expired_admin_pauses()
    regenerated = await service.regenerate_schedules()
    return {
        "admin_pauses_lifted": _summary(lifted),
        "schedules": _summary(regenerated),
    }


@router.post("/renewal-check", response_model=BulkOutcomeResponse)
async def renewal_check(service: SubscriptionService = Depends(get_subscription_service)):
    return _summary(await service.run_renewal_check())
