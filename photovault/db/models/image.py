from __future__ import annotations
from enum import Enum
from typing import Optional
from sqlalchemy import (
    String, Integer, Boolean, Text, ForeignKey, Index, Enum as SAEnum
)
from sqlalchemy.orm import Mapped, mapped_column

from .mixins import Base, TimestampMixin


class ImageStatus(str, Enum):
    normal = "normal"
    trash = "trash"
    not_sure = "not-sure"


class Image(TimestampMixin, Base):
    __tablename__ = "image"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    absolute_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    bytes_size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    width_px: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    height_px: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    modified_at: Mapped[str] = mapped_column(String, nullable=False)
    thumbnail_ref: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    supported: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    format: Mapped[str] = mapped_column(String, nullable=False)

    # An image sits in at most one album; the album must belong to the same vault.
    album_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("album.id", ondelete="SET NULL"), nullable=True
    )
    vault_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("vault.id", ondelete="CASCADE"), nullable=True
    )
    status: Mapped[ImageStatus] = mapped_column(
        SAEnum(ImageStatus, values_callable=lambda e: [m.value for m in e]),
        default=ImageStatus.normal, nullable=False,
    )

    __table_args__ = (
        Index("idx_image_album", "album_id"),
        Index("idx_image_vault", "vault_id"),
        Index("idx_image_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Image id={self.id} path='{self.absolute_path}' album={self.album_id} status={self.status.value}>"
