"""Admin-configurable delivery cadence per subscription type."""

from datetime import datetime
from sqlalchemy import String, Integer, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.database import Base


class DeliveryScheduleSetting(Base):
    __tablename__ = "delivery_schedule_settings"

    subscription_type: Mapped[str] = mapped_column(String(32), primary_key=True)
    delivery_gap_days: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_daily: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_by: Mapped[str | None] = mapped_column(String(64))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
