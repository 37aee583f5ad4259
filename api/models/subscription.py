"""Subscription ORM model — one recurring juice / fruit-bowl plan per row."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Numeric, Boolean, DateTime, ForeignKey, Text, Enum as PgEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.database import Base
from schemas import SubscriptionStatus, DeliveryFrequency


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Subscription(Base):
    __tablename__ = "user_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    plan_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[SubscriptionStatus] = mapped_column(
        PgEnum(SubscriptionStatus, name="subscription_status", values_callable=_enum_values),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )
    delivery_frequency: Mapped[DeliveryFrequency] = mapped_column(
        PgEnum(DeliveryFrequency, name="delivery_frequency", values_callable=_enum_values),
        nullable=False,
    )

    # Snapshots
    selected_items: Mapped[list] = mapped_column(JSONB, default=list)
    delivery_address: Mapped[dict] = mapped_column(JSONB, default=dict)
    customer_info: Mapped[dict] = mapped_column(JSONB, default=dict)

    # Term
    subscription_start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    subscription_end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    next_delivery_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Pricing snapshot
    original_price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    discount_percentage: Mapped[int] = mapped_column(Integer, default=0)
    discount_amount: Mapped[float] = mapped_column(Numeric(10, 2), default=0)
    final_price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    total_amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    subscription_duration: Mapped[int] = mapped_column(Integer, nullable=False)

    # User pause (set only while status = paused)
    pause_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    pause_reason: Mapped[str | None] = mapped_column(Text)
    reactivation_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Admin pause
    admin_pause_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("admin_subscription_pauses.id"))
    admin_pause_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    admin_pause_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    admin_reactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    admin_reactivated_by: Mapped[uuid.UUID | None] = mapped_column()

    renewal_notification_sent: Mapped[bool] = mapped_column(Boolean, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    deliveries = relationship(
        "SubscriptionDelivery",
        back_populates="subscription",
        lazy="raise",
        order_by="SubscriptionDelivery.delivery_date",
    )
    admin_pause = relationship("AdminPause", back_populates="subscriptions", lazy="raise")

    __mapper_args__ = {"version_id_col": version}
