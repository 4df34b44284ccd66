from __future__ import annotations
from typing import Optional
from sqlalchemy import String, Integer, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from .mixins import Base, TimestampMixin


class Album(TimestampMixin, Base):
    """
    Catalog node mirroring one directory of a vault.

    The directory path is never stored: it is derived from the parent chain and the
    sanitized names (see AlbumPathIndex), so renaming an ancestor moves every descendant.
    """
    __tablename__ = "album"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("album.id", ondelete="CASCADE"), nullable=True
    )
    vault_id: Mapped[int] = mapped_column(
        ForeignKey("vault.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("idx_album_parent", "parent_id"),
        Index("idx_album_vault", "vault_id"),
        Index("idx_album_parent_pos", "parent_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<Album id={self.id} name='{self.name}' parent={self.parent_id} vault={self.vault_id}>"
