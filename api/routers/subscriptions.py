"""Subscription API endpoints — create, pause, reactivate and lookups."""

import uuid
from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException

from routers.dependencies import get_subscription_service, raise_for_result
from schemas import (
    SubscriptionCreate, SubscriptionPause, SubscriptionReactivate, SubscriptionResponse,
    PricingResponse, DeliveryResponse, ExpiryStatusResponse, UserSubscriptionResponse,
    OperationResponse, AdminPauseInfo,
)
from services.pricing import calculate_subscription_pricing, get_duration_options
from services.errors import SubscriptionError
from services.subscriptions import SubscriptionService

router = APIRouter()


def _subscription_payload(subscription) -> dict:
    return SubscriptionResponse.model_validate(subscription).model_dump(mode="json")


@router.post("", response_model=OperationResponse)
async def create_subscription(
    data: SubscriptionCreate,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Create a subscription; an active admin pause only delays the first delivery."""
    result = raise_for_result(await service.create_subscription(data))
    d = result.data
    return OperationResponse(
        message=result.message,
        data={
            "subscription": _subscription_payload(d["subscription"]),
            "pricing": d["pricing"],
            "first_delivery_date": d["first_delivery_date"].isoformat(),
            "advisory_message": d["advisory_message"],
        },
    )


@router.post("/pause", response_model=OperationResponse)
async def pause_subscription(
    data: SubscriptionPause,
    service: SubscriptionService = Depends(get_subscription_service),
):
    result = raise_for_result(await service.pause_subscription(data.subscription_id, data.reason))
    return OperationResponse(
        message=result.message,
        data={
            "subscription": _subscription_payload(result.data["subscription"]),
            "reactivation_deadline": result.data["reactivation_deadline"].isoformat(),
        },
    )


@router.post("/reactivate", response_model=OperationResponse)
async def reactivate_subscription(
    data: SubscriptionReactivate,
    service: SubscriptionService = Depends(get_subscription_service),
):
    result = raise_for_result(
        await service.reactivate_subscription(data.subscription_id, data.explicit_date)
    )
    d = result.data
    return OperationResponse(
        message=result.message,
        data={
            "subscription": _subscription_payload(d["subscription"]),
            "next_delivery_date": d["next_delivery_date"].isoformat(),
            "extended_end_date": d["extended_end_date"].isoformat(),
            "pause_duration_days": d["pause_duration_days"],
        },
    )


@router.get("/pricing", response_model=PricingResponse)
async def get_pricing(base_price: float, duration: int):
    """Price preview for the plan selector."""
    try:
        pricing = calculate_subscription_pricing(base_price, duration)
    except SubscriptionError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return PricingResponse(**asdict(pricing))


@router.get("/duration-options")
async def duration_options():
    return [asdict(option) for option in get_duration_options()]


@router.get("/admin-pause-status", response_model=AdminPauseInfo)
async def admin_pause_status(
    user_id: uuid.UUID | None = None,
    service: SubscriptionService = Depends(get_subscription_service),
):
    result = raise_for_result(await service.get_admin_pause_info(user_id))
    if not result.data["has_active_pause"]:
        return AdminPauseInfo(has_active_pause=False)
    return AdminPauseInfo(message=result.message, **result.data)


@router.get("/user/{user_id}", response_model=list[UserSubscriptionResponse])
async def list_user_subscriptions(
    user_id: uuid.UUID,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """A user's subscriptions with upcoming deliveries and expiry status."""
    result = raise_for_result(await service.list_user_subscriptions(user_id))
    return [
        UserSubscriptionResponse(
            subscription=SubscriptionResponse.model_validate(entry["subscription"]),
            upcoming_deliveries=[DeliveryResponse.model_validate(d) for d in entry["upcoming_deliveries"]],
            expiry=ExpiryStatusResponse(**entry["expiry"]),
        )
        for entry in result.data["subscriptions"]
    ]
