from __future__ import annotations
from typing import Iterable, Optional
from sqlalchemy import select, update, delete, or_
from sqlalchemy.orm import Session
from photovault.db.models import Image, ImageStatus

# keep IN (...) lists well under SQLite's bound-parameter limit
_CHUNK = 500


def _chunks(items: list, size: int = _CHUNK):
    for i in range(0, len(items), size):
        yield items[i:i + size]


class ImageRepo:
    def get(self, s: Session, image_id: int) -> Image | None:
        return s.get(Image, image_id)

    def get_by_path(self, s: Session, absolute_path: str) -> Image | None:
        return s.execute(select(Image).where(Image.absolute_path == absolute_path)).scalar_one_or_none()

    def map_by_paths(self, s: Session, paths: Iterable[str]) -> dict[str, Image]:
        out: dict[str, Image] = {}
        for chunk in _chunks(list(paths)):
            rows = s.execute(select(Image).where(Image.absolute_path.in_(chunk))).scalars().all()
            out.update({img.absolute_path: img for img in rows})
        return out

    def list_all(self, s: Session) -> list[Image]:
        return list(s.execute(select(Image).order_by(Image.filename, Image.id)).scalars().all())

    def list_for_vault(self, s: Session, vault_id: int) -> list[Image]:
        return list(s.execute(select(Image).where(Image.vault_id == vault_id)).scalars().all())

    def list_for_albums(self, s: Session, album_ids: Iterable[int]) -> list[Image]:
        out: list[Image] = []
        for chunk in _chunks(list(album_ids)):
            out.extend(s.execute(select(Image).where(Image.album_id.in_(chunk))).scalars().all())
        return out

    def list_orphans_under(self, s: Session, root_prefix: str) -> list[Image]:
        """ Images with no vault whose path starts with root_prefix (which should end in a separator). """
        rows = s.execute(select(Image).where(Image.vault_id.is_(None))).scalars().all()
        return [img for img in rows if img.absolute_path.startswith(root_prefix)]

    def list_under_prefix(self, s: Session, prefix: str) -> list[Image]:
        rows = s.execute(select(Image).where(Image.absolute_path.like(_like_prefix(prefix), escape="\\"))).scalars()
        # LIKE is case-insensitive for ASCII in SQLite, so re-check exactly
        return [img for img in rows if img.absolute_path.startswith(prefix)]

    def list_pending(self, s: Session) -> list[Image]:
        """ Images carrying a disposition for the organize pass. """
        return list(s.execute(
            select(Image).where(or_(
                Image.album_id.is_not(None),
                Image.status.in_([ImageStatus.trash, ImageStatus.not_sure]),
            )).order_by(Image.filename, Image.id)
        ).scalars().all())

    def list_for_visible(self, s: Session, visible_vault_ids: Iterable[int]) -> list[Image]:
        ids = list(visible_vault_ids)
        return list(s.execute(
            select(Image).where(or_(Image.vault_id.is_(None), Image.vault_id.in_(ids)))
        ).scalars().all())

    def create(self, s: Session, *, absolute_path: str, filename: str, bytes_size: int, modified_at: str,
               supported: bool, fmt: str, album_id: Optional[int] = None, vault_id: Optional[int] = None,
               width: Optional[int] = None, height: Optional[int] = None) -> Image:
        img = Image(absolute_path=absolute_path, filename=filename, bytes_size=bytes_size,
                    modified_at=modified_at, supported=supported, format=fmt, album_id=album_id,
                    vault_id=vault_id, width_px=width, height_px=height, status=ImageStatus.normal)
        s.add(img)
        s.flush()
        return img

    def update_many(self, s: Session, image_ids: Iterable[int], **values) -> None:
        """ Batch update by id list (album_id, vault_id, status, ...). """
        ids = list(image_ids)
        if not ids or not values:
            return
        for chunk in _chunks(ids):
            s.execute(update(Image).where(Image.id.in_(chunk)).values(**values))

    def set_path(self, s: Session, image: Image, absolute_path: str, filename: str) -> None:
        image.absolute_path = absolute_path
        image.filename = filename

    def set_thumbnail(self, s: Session, image_id: int, thumbnail_ref: str,
                      width: Optional[int] = None, height: Optional[int] = None) -> None:
        img = s.get(Image, image_id)
        if img is None:
            return
        img.thumbnail_ref = thumbnail_ref
        if width is not None and height is not None:
            img.width_px, img.height_px = width, height

    def rewrite_prefix(self, s: Session, old_prefix: str, new_prefix: str) -> int:
        """ Re-point every image stored under old_prefix to new_prefix. Returns rows touched. """
        moved = self.list_under_prefix(s, old_prefix)
        for img in moved:
            img.absolute_path = new_prefix + img.absolute_path[len(old_prefix):]
        return len(moved)

    def delete_many(self, s: Session, image_ids: Iterable[int]) -> None:
        for chunk in _chunks(list(image_ids)):
            s.execute(delete(Image).where(Image.id.in_(chunk)))

    def delete_all(self, s: Session) -> None:
        s.execute(delete(Image))


def _like_prefix(prefix: str) -> str:
    escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped + "%"
