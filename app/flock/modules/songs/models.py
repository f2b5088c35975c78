from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.flock.models import Base


class Song(Base):
    __tablename__ = "songs"
    __table_args__ = (
        Index("idx_songs_tenant_title", "tenant_id", "title"),
        Index("idx_songs_tenant_ccli", "tenant_id", "ccli_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    alternate_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_line: Mapped[str | None] = mapped_column(String(500), nullable=True)
    tune_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hymn_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    hymnal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    author: Mapped[str | None] = mapped_column(String(255), nullable=True)
    composer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_public_domain: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ccli_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    copyright: Mapped[str | None] = mapped_column(Text, nullable=True)
    default_key: Mapped[str | None] = mapped_column(String(10), nullable=True)
    default_tempo: Mapped[int | None] = mapped_column(Integer, nullable=True)
    lyrics: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
