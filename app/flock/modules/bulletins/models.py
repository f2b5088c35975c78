from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.flock.models import Base, new_uuid


class BulletinIssue(Base):
    """
    One weekly bulletin. Status moves draft -> approved/built -> locked;
    soft delete sets both `deleted_at` and status "deleted".
    """

    __tablename__ = "bulletin_issues"
    __table_args__ = (Index("idx_bulletin_issues_tenant_date", "tenant_id", "service_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    service_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")

    brand_pack_id: Mapped[int | None] = mapped_column(ForeignKey("brand_packs.id", ondelete="SET NULL"), nullable=True)
    template_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    design_options: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    canvas_layout: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    use_canvas_layout: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    generator_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    public_token: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, default=new_uuid)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    pdf_storage_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    locked_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    items: Mapped[list["ServiceItem"]] = relationship(
        back_populates="bulletin",
        lazy="selectin",
        order_by="ServiceItem.sequence",
    )


class ServiceItem(Base):
    __tablename__ = "service_items"
    __table_args__ = (Index("idx_service_items_bulletin_seq", "bulletin_issue_id", "sequence"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    bulletin_issue_id: Mapped[int] = mapped_column(ForeignKey("bulletin_issues.id", ondelete="CASCADE"), nullable=False)

    item_type: Mapped[str] = mapped_column(String(32), nullable=False)  # song, scripture, sermon, ...
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    leader_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    scripture_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ccli_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    artist: Mapped[str | None] = mapped_column(String(255), nullable=True)
    song_id: Mapped[int | None] = mapped_column(ForeignKey("songs.id", ondelete="SET NULL"), nullable=True)
    sermon_id: Mapped[int | None] = mapped_column(ForeignKey("sermons.id", ondelete="SET NULL"), nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Liturgy text printed verbatim by the simpleText layout
    printed_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    marker: Mapped[str | None] = mapped_column(String(8), nullable=True)
    # planned minutes, compared against preach-mode timings
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    bulletin: Mapped[BulletinIssue] = relationship(back_populates="items")
