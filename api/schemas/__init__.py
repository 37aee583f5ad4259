"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import uuid
from datetime import date, datetime
from enum import Enum
from pydantic import BaseModel, Field


# ── Enums ──────────────────────────────────────────────────

class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ADMIN_PAUSED = "admin_paused"
    EXPIRED = "expired"


class DeliveryStatus(str, Enum):
    SCHEDULED = "scheduled"
    SKIPPED = "skipped"
    ADMIN_PAUSED = "admin_paused"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class DeliveryFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class SubscriptionType(str, Enum):
    JUICES = "juices"
    FRUIT_BOWLS = "fruit_bowls"
    CUSTOMIZED = "customized"


class AdminPauseType(str, Enum):
    ALL = "all"
    SELECTED = "selected"


class AdminPauseStatus(str, Enum):
    ACTIVE = "active"
    REACTIVATED = "reactivated"


class ItemKind(str, Enum):
    JUICE = "juice"
    FRUIT_BOWL = "fruit_bowl"


# ── Shared value objects ───────────────────────────────────

class SelectedItem(BaseModel):
    kind: ItemKind = ItemKind.JUICE
    item_id: str
    name: str | None = None
    quantity: int = Field(1, ge=1)


class DeliveryAddress(BaseModel):
    line1: str
    line2: str | None = None
    city: str
    state: str | None = None
    pincode: str
    landmark: str | None = None
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)


class CustomerInfo(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None


# ── Subscription Schemas ───────────────────────────────────

class SubscriptionCreate(BaseModel):
    user_id: uuid.UUID
    plan_id: str
    frequency: DeliveryFrequency
    duration: int = Field(..., description="Billing periods, 1-12")
    base_price: float
    items: list[SelectedItem] = Field(..., min_length=1)
    address: DeliveryAddress
    customer: CustomerInfo | None = None


class SubscriptionPause(BaseModel):
    subscription_id: uuid.UUID
    reason: str | None = None


class SubscriptionReactivate(BaseModel):
    subscription_id: uuid.UUID
    explicit_date: datetime | None = None


class PricingResponse(BaseModel):
    original_price: float
    discount_percentage: int
    discount_amount: float
    final_price: float
    discount_tier: str


class DeliveryResponse(BaseModel):
    id: uuid.UUID
    delivery_date: datetime
    status: DeliveryStatus
    items: list[dict] = []

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    plan_id: str
    status: SubscriptionStatus
    delivery_frequency: DeliveryFrequency
    selected_items: list[dict]
    delivery_address: dict
    subscription_start_date: datetime
    subscription_end_date: datetime
    next_delivery_date: datetime
    original_price: float
    discount_percentage: int
    discount_amount: float
    final_price: float
    total_amount: float
    subscription_duration: int
    pause_date: datetime | None = None
    pause_reason: str | None = None
    reactivation_deadline: datetime | None = None
    admin_pause_id: uuid.UUID | None = None
    admin_pause_start: datetime | None = None
    admin_pause_end: datetime | None = None
    renewal_notification_sent: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class ExpiryStatusResponse(BaseModel):
    status: str
    days_left: int
    message: str


class UserSubscriptionResponse(BaseModel):
    subscription: SubscriptionResponse
    upcoming_deliveries: list[DeliveryResponse]
    expiry: ExpiryStatusResponse


class OperationResponse(BaseModel):
    success: bool = True
    message: str
    data: dict = {}


# ── Admin Schemas ──────────────────────────────────────────

class AdminPauseCreate(BaseModel):
    pause_type: AdminPauseType
    user_ids: list[uuid.UUID] = []
    start_date: datetime
    end_date: datetime | None = None
    reason: str
    admin_user_id: uuid.UUID


class AdminReactivateRequest(BaseModel):
    admin_pause_id: uuid.UUID
    admin_user_id: uuid.UUID


class AdminPauseInfo(BaseModel):
    has_active_pause: bool
    reason: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    pause_type: AdminPauseType | None = None
    message: str | None = None


class DeliveryScheduleSettingResponse(BaseModel):
    subscription_type: SubscriptionType
    delivery_gap_days: int
    is_daily: bool
    description: str | None = None
    is_active: bool = True

    class Config:
        from_attributes = True


class DeliveryScheduleSettingUpdate(BaseModel):
    subscription_type: SubscriptionType
    delivery_gap_days: int = Field(..., ge=0, le=30)
    is_daily: bool = False
    description: str | None = None
    admin_user_id: uuid.UUID | None = None


class SchedulePreviewResponse(BaseModel):
    subscription_type: SubscriptionType
    schedule: str
    dates: list[date]


class BulkOutcomeResponse(BaseModel):
    processed_count: int
    total: int
    errors: list[str] = []
