from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.flock.models import Base

if TYPE_CHECKING:
    from app.flock.modules.people.models import Person


class PrayerRequest(Base):
    __tablename__ = "prayer_requests"
    __table_args__ = (
        Index("idx_prayer_requests_tenant", "tenant_id"),
        Index("idx_prayer_requests_status", "tenant_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    person_id: Mapped[int | None] = mapped_column(ForeignKey("people.id", ondelete="SET NULL"), nullable=True)
    requester_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")  # active, answered, archived
    visibility: Mapped[str] = mapped_column(String(32), nullable=False, default="public")  # public, leaders_only, private
    is_urgent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    answered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    answer_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    person: Mapped["Person | None"] = relationship("Person", lazy="selectin")


class PrayerRecord(Base):
    """One row per person who has prayed for a request."""

    __tablename__ = "prayer_records"
    __table_args__ = (
        UniqueConstraint("prayer_request_id", "person_id", name="uq_prayer_records_request_person"),
        Index("idx_prayer_records_request", "prayer_request_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    prayer_request_id: Mapped[int] = mapped_column(ForeignKey("prayer_requests.id", ondelete="CASCADE"), nullable=False)
    person_id: Mapped[int] = mapped_column(ForeignKey("people.id", ondelete="CASCADE"), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    prayed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    person: Mapped["Person"] = relationship("Person", lazy="selectin")
