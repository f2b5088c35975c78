from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.flock.models import Base


class BrandPack(Base):
    """Organization identity used on bulletins, tax statements and AI prompts."""

    __tablename__ = "brand_packs"
    __table_args__ = (Index("idx_brand_packs_tenant_active", "tenant_id", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="Default")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    legal_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    church_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address_line1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    address_line2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    country: Mapped[str | None] = mapped_column(String(50), nullable=True, default="US")
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ein: Mapped[str | None] = mapped_column(String(20), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax_statement_footer: Mapped[str | None] = mapped_column(Text, nullable=True)
    giving_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    tagline: Mapped[str | None] = mapped_column(String(255), nullable=True)
    service_time: Mapped[str | None] = mapped_column(String(100), nullable=True)

    bulletin_default_layout_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="template")
    bulletin_ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bulletin_default_canvas_grid_size: Mapped[int] = mapped_column(Integer, nullable=False, default=16)
    bulletin_default_canvas_show_grid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    bulletin_default_pages: Mapped[int] = mapped_column(Integer, nullable=False, default=4)

    theology_profile: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
