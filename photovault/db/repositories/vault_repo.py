from __future__ import annotations
from typing import Optional
from sqlalchemy import select, func, delete
from sqlalchemy.orm import Session
from photovault.db.models import Vault, Album, Image


class VaultRepo:
    def get(self, s: Session, vault_id: int) -> Vault | None:
        return s.get(Vault, vault_id)

    def get_by_path(self, s: Session, root_path: str) -> Vault | None:
        return s.execute(select(Vault).where(Vault.root_path == root_path)).scalar_one_or_none()

    def list(self, s: Session) -> list[Vault]:
        return list(s.execute(select(Vault).order_by(Vault.position, Vault.id)).scalars().all())

    def first_visible(self, s: Session) -> Vault | None:
        return s.execute(
            select(Vault).where(Vault.visible.is_(True)).order_by(Vault.position, Vault.id)
        ).scalars().first()

    def next_position(self, s: Session) -> int:
        max_pos = s.execute(select(func.max(Vault.position))).scalar()
        return (max_pos if max_pos is not None else 0) + 1

    def create(self, s: Session, root_path: str, display_name: str, position: int,
               visible: bool = True) -> Vault:
        v = Vault(root_path=root_path, display_name=display_name, position=position, visible=visible)
        s.add(v)
        s.flush()
        return v

    def delete(self, s: Session, vault_id: int) -> None:
        """ Purge the vault row with its albums and images. """
        s.execute(delete(Image).where(Image.vault_id == vault_id))
        s.execute(delete(Album).where(Album.vault_id == vault_id))
        s.execute(delete(Vault).where(Vault.id == vault_id))
