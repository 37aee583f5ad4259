"""SubscriptionDelivery ORM model — one scheduled drop per row."""

import uuid
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, Enum as PgEnum, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.database import Base
from schemas import DeliveryStatus


class SubscriptionDelivery(Base):
    __tablename__ = "subscription_deliveries"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("user_subscriptions.id"), nullable=False,
    )
    delivery_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        PgEnum(
            DeliveryStatus, name="delivery_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=DeliveryStatus.SCHEDULED,
        nullable=False,
    )
    items: Mapped[list] = mapped_column(JSONB, default=list)
    admin_pause_id: Mapped[uuid.UUID | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    subscription = relationship("Subscription", back_populates="deliveries")

    __table_args__ = (
        Index("ix_subscription_deliveries_sub_date", "subscription_id", "delivery_date"),
    )
