from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Enum,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy import DateTime as _DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..models import MediaKind


class Base(DeclarativeBase):
    pass


class Album(Base):
    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(64), ForeignKey("albums.id", ondelete="CASCADE"), nullable=True, index=True
    )
    # media id; not a foreign key so media and albums can be written in any order
    thumbnail_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        _DateTime(timezone=True), server_default=func.now()
    )


class Media(Base):
    __tablename__ = "media"
    __table_args__ = (UniqueConstraint("album_id", "filename", name="uq_media_album_filename"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    album_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("albums.id", ondelete="CASCADE"), nullable=False, index=True
    )
    filename: Mapped[str] = mapped_column(String(512), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    captured_at: Mapped[datetime] = mapped_column(_DateTime(timezone=True), nullable=False, index=True)
    media_type: Mapped[MediaKind] = mapped_column(
        Enum(MediaKind, values_callable=lambda kinds: [kind.value for kind in kinds]),
        nullable=False,
        default=MediaKind.PHOTO,
    )
    thumbnail: Mapped[Optional[bytes]] = mapped_column(LargeBinary, nullable=True)
    width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    exif: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    blob_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        _DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        _DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def has_thumbnail(self) -> bool:
        return bool(self.thumbnail)
