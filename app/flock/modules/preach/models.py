from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.flock.models import Base
from app.flock.modules.bulletins.models import BulletinIssue, ServiceItem


class PreachSession(Base):
    """One live run through a bulletin's order of service. `ended_at` marks it complete."""

    __tablename__ = "preach_sessions"
    __table_args__ = (Index("idx_preach_sessions_tenant_bulletin", "tenant_id", "bulletin_issue_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    bulletin_issue_id: Mapped[int] = mapped_column(ForeignKey("bulletin_issues.id", ondelete="CASCADE"), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    bulletin: Mapped[BulletinIssue] = relationship(BulletinIssue, lazy="selectin")
    timings: Mapped[list["ServiceItemTiming"]] = relationship(
        "ServiceItemTiming",
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ServiceItemTiming(Base):
    __tablename__ = "service_item_timings"
    __table_args__ = (
        UniqueConstraint("preach_session_id", "service_item_id", name="uq_service_item_timings_session_item"),
        Index("idx_service_item_timings_session", "preach_session_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    preach_session_id: Mapped[int] = mapped_column(ForeignKey("preach_sessions.id", ondelete="CASCADE"), nullable=False)
    service_item_id: Mapped[int] = mapped_column(ForeignKey("service_items.id", ondelete="CASCADE"), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    # set once both ends are known
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    session: Mapped[PreachSession] = relationship(PreachSession, back_populates="timings")
    item: Mapped[ServiceItem] = relationship(ServiceItem, lazy="selectin")
