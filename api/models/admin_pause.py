"""AdminPause ORM model — fleet-wide or targeted delivery suspension."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, DateTime, Text, Enum as PgEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.database import Base
from schemas import AdminPauseType, AdminPauseStatus


class AdminPause(Base):
    __tablename__ = "admin_subscription_pauses"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    pause_type: Mapped[AdminPauseType] = mapped_column(
        PgEnum(AdminPauseType, name="admin_pause_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    affected_user_ids: Mapped[list | None] = mapped_column(JSONB)  # only for pause_type = selected
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))  # None = indefinite
    status: Mapped[AdminPauseStatus] = mapped_column(
        PgEnum(AdminPauseStatus, name="admin_pause_status", values_callable=lambda e: [m.value for m in e]),
        default=AdminPauseStatus.ACTIVE,
        nullable=False,
    )
    affected_subscription_count: Mapped[int] = mapped_column(Integer, default=0)
    admin_user_id: Mapped[uuid.UUID | None] = mapped_column()
    reactivated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reactivated_by: Mapped[uuid.UUID | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships (weak back-reference; the pause does not own subscriptions)
    subscriptions = relationship("Subscription", back_populates="admin_pause", lazy="raise")

    def covers_user(self, user_id) -> bool:
        if self.pause_type == AdminPauseType.ALL:
            return True
        return str(user_id) in {str(u) for u in (self.affected_user_ids or [])}


class AdminAuditLog(Base):
    __tablename__ = "admin_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    admin_user_id: Mapped[uuid.UUID | None] = mapped_column()
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
