from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.flock.models import Base


class SermonSeries(Base):
    __tablename__ = "sermon_series"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    slug: Mapped[str | None] = mapped_column(String(100), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)


class Sermon(Base):
    __tablename__ = "sermons"
    __table_args__ = (Index("idx_sermons_tenant_date", "tenant_id", "sermon_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    series_id: Mapped[int | None] = mapped_column(ForeignKey("sermon_series.id", ondelete="SET NULL"), nullable=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    sermon_date: Mapped[date] = mapped_column(Date, nullable=False)
    preacher: Mapped[str | None] = mapped_column(String(150), nullable=True)
    primary_scripture: Mapped[str | None] = mapped_column(String(100), nullable=True)
    additional_scripture: Mapped[str | None] = mapped_column(Text, nullable=True)
    manuscript: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list | None] = mapped_column(JSON, nullable=True)
    outline: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    path_stage: Mapped[str] = mapped_column(String(32), nullable=False, default="text_setup")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="idea")
    style_profile: Mapped[str | None] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    series: Mapped[SermonSeries | None] = relationship(SermonSeries, lazy="selectin")


class SermonPlan(Base):
    __tablename__ = "sermon_plans"
    __table_args__ = (UniqueConstraint("sermon_id", name="uq_sermon_plans_sermon"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    sermon_id: Mapped[int] = mapped_column(ForeignKey("sermons.id", ondelete="CASCADE"), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    big_idea: Mapped[str | None] = mapped_column(String(500), nullable=True)
    primary_text: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supporting_texts: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    elements: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    template_id: Mapped[int | None] = mapped_column(
        ForeignKey("sermon_plan_templates.id", ondelete="SET NULL"), nullable=True
    )
    style_profile: Mapped[str | None] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class SermonPlanTemplate(Base):
    __tablename__ = "sermon_plan_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    default_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    default_big_idea: Mapped[str | None] = mapped_column(String(500), nullable=True)
    default_primary_text: Mapped[str | None] = mapped_column(String(100), nullable=True)
    default_supporting_texts: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    structure: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    style_profile: Mapped[str | None] = mapped_column(String(40), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
