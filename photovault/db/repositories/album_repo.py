from __future__ import annotations
from typing import Optional, Iterable
from sqlalchemy import select, func, update, delete
from sqlalchemy.orm import Session
from photovault.db.models import Album, Image


class AlbumRepo:
    def get(self, s: Session, album_id: int) -> Album | None:
        return s.get(Album, album_id)

    def list_all(self, s: Session) -> list[Album]:
        return list(s.execute(select(Album).order_by(Album.position, Album.id)).scalars().all())

    def list_for_vault(self, s: Session, vault_id: int) -> list[Album]:
        return list(s.execute(
            select(Album).where(Album.vault_id == vault_id).order_by(Album.position, Album.id)
        ).scalars().all())

    def create(self, s: Session, vault_id: int, parent_id: Optional[int], name: str, position: int) -> Album:
        a = Album(vault_id=vault_id, parent_id=parent_id, name=name, position=position)
        s.add(a)
        s.flush()
        return a

    def next_child_position(self, s: Session, vault_id: int, parent_id: Optional[int]) -> int:
        # Max position among siblings in the same vault
        max_pos = s.execute(
            select(func.max(Album.position)).where(Album.vault_id == vault_id, Album.parent_id.is_(parent_id))
        ).scalar()
        return (max_pos if max_pos is not None else 0) + 1

    def descendant_ids(self, s: Session, album_id: int) -> list[int]:
        """ Ids of every album below album_id (breadth first, album_id itself excluded). """
        out: list[int] = []
        frontier = [album_id]
        seen = {album_id}
        while frontier:
            children = s.execute(select(Album.id).where(Album.parent_id.in_(frontier))).scalars().all()
            frontier = [c for c in children if c not in seen]
            seen.update(frontier)
            out.extend(frontier)
        return out

    def set_vault(self, s: Session, album_ids: Iterable[int], vault_id: int) -> None:
        ids = list(album_ids)
        if ids:
            s.execute(update(Album).where(Album.id.in_(ids)).values(vault_id=vault_id))

    def delete_many(self, s: Session, album_ids: Iterable[int]) -> int:
        """ Detach the albums' images, then delete the album rows. Returns rows deleted. """
        ids = list(album_ids)
        if not ids:
            return 0
        s.execute(update(Image).where(Image.album_id.in_(ids)).values(album_id=None))
        res = s.execute(delete(Album).where(Album.id.in_(ids)))
        return res.rowcount or 0

    def delete_all(self, s: Session) -> None:
        s.execute(update(Image).values(album_id=None))
        s.execute(delete(Album))
