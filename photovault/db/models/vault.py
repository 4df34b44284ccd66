from __future__ import annotations
from sqlalchemy import String, Integer, Boolean, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from .mixins import Base, TimestampMixin


class Vault(TimestampMixin, Base):
    """ A registered directory root. Albums and images hang off a vault; its files are never owned by the catalog. """
    __tablename__ = "vault"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    root_path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (Index("idx_vault_pos", "position"),)

    def __repr__(self) -> str:
        return f"<Vault id={self.id} root='{self.root_path}' name='{self.display_name}'>"
