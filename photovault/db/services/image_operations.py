from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from photovault.core.activity_log import ActivityLog, LogAction
from photovault.core.errors import Conflict, InvalidInput, IOFailure, NotFound, VaultError
from photovault.core.fileops import (
    SORT_LATER_DIR, TRASH_DIR, image_format, io_guard, is_hidden, is_supported, move_path, relative_label,
    remove_tree, unique_target, validate_filename,
)
from photovault.db.manager import DatabaseManager
from photovault.db.models import Image, ImageStatus
from photovault.db.repositories import AlbumRepo, ImageRepo
from photovault.db.services.album_paths import AlbumPathIndex
from photovault.db.services.vault_registry import VaultRegistry

logger = logging.getLogger(__name__)

UNSET: Any = object()


@dataclass(frozen=True)
class BatchItemResult:
    id: int
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class TrashInfo:
    count: int
    size: int


class ImageOperations:
    """Single and batched image moves with collision-free names and cross-device fallback."""

    def __init__(self, db: DatabaseManager, registry: VaultRegistry, activity: Optional[ActivityLog] = None,
                 thumbnail_remover: Optional[Callable[[Optional[str]], None]] = None):
        self.db = db
        self.registry = registry
        self.activity = activity or registry.activity
        self.thumbnail_remover = thumbnail_remover
        self.album_repo = AlbumRepo()
        self.image_repo = ImageRepo()

    # ---------- Helpers ----------
    def _require_image(self, s: Session, image_id: int) -> Image:
        img = self.image_repo.get(s, image_id)
        if img is None:
            raise NotFound(f"Image {image_id} not found")
        return img

    @staticmethod
    def _require_source(img: Image) -> Path:
        src = Path(img.absolute_path)
        if not src.is_file():
            raise IOFailure(f"Source file missing: {src}")
        return src

    def _relocate(self, s: Session, src: Path, target_dir: Path) -> Path:
        with io_guard(f"Cannot move {src}"):
            target_dir.mkdir(parents=True, exist_ok=True)
            dst = unique_target(target_dir, src.name,
                                taken=lambda p: self.image_repo.get_by_path(s, str(p)) is not None)
            move_path(src, dst)
        return dst

    def _record_move(self, s: Session, img: Image, src: Path, dst: Path) -> None:
        """ Point the row at dst; if the catalog refuses, put the file back before failing. """
        try:
            self.image_repo.set_path(s, img, str(dst), dst.name)
            s.flush()
        except IntegrityError as e:
            with io_guard(f"Cannot move {dst} back to {src}"):
                move_path(dst, src)
            raise Conflict(f"Catalog already holds an image at {dst}") from e

    # ---------- Single image ----------
    def move_image_to_album(self, image_id: int, album_id: Optional[int]) -> Image:
        """ Move the file into the album's folder. album_id=None leaves the file where it is. """
        with self.db.session() as s:
            img = self._require_image(s, image_id)
            if album_id is None:
                return img
            album = self.album_repo.get(s, album_id)
            if album is None:
                raise NotFound(f"Album {album_id} not found")
            vault = self.registry.require(s, album.vault_id)
            index = AlbumPathIndex(self.album_repo.list_for_vault(s, vault.id))
            target_dir = index.absolute_path(album.id, vault.root_path)

            src = self._require_source(img)
            if src.parent == target_dir:
                img.album_id, img.vault_id = album.id, vault.id
                return img
            dst = self._relocate(s, src, target_dir)
            self._record_move(s, img, src, dst)
            img.album_id, img.vault_id = album.id, vault.id
            root = vault.root_path

        self.activity.append(root, LogAction.MOVE,
                             f'Moved "{src.name}" to "{relative_label(dst, root)}"')
        return img

    def move_image_to_trash(self, image_id: int) -> Path:
        """ Move into the vault's _Trash and forget the image. Returns where the file ended up. """
        with self.db.session() as s:
            img = self._require_image(s, image_id)
            root = self.registry.fallback_root(s, img.vault_id)
            src = self._require_source(img)
            dst = self._relocate(s, src, root / TRASH_DIR)
            ref = img.thumbnail_ref
            self.image_repo.delete_many(s, [img.id])

        if self.thumbnail_remover is not None:
            self.thumbnail_remover(ref)
        self.activity.append(root, LogAction.DELETE, f'Moved "{src.name}" to trash')
        return dst

    def move_image_to_sort_later(self, image_id: int) -> Image:
        with self.db.session() as s:
            img = self._require_image(s, image_id)
            root = self.registry.fallback_root(s, img.vault_id)
            src = self._require_source(img)
            dst = self._relocate(s, src, root / SORT_LATER_DIR)
            self._record_move(s, img, src, dst)
            img.status = ImageStatus.not_sure
            img.album_id = None

        self.activity.append(root, LogAction.MOVE, f'Moved "{src.name}" to "{relative_label(dst, root)}"')
        return img

    def rename_image(self, image_id: int, filename: str) -> Image:
        clean = validate_filename(filename)
        with self.db.session() as s:
            img = self._require_image(s, image_id)
            if clean == img.filename:
                return img
            src = self._require_source(img)
            dst = src.parent / clean
            if os.path.lexists(dst) or self.image_repo.get_by_path(s, str(dst)) is not None:
                raise Conflict(f"A file named '{clean}' already exists")
            with io_guard(f"Cannot rename {src}"):
                os.rename(src, dst)
            self.image_repo.set_path(s, img, str(dst), clean)
            img.supported = is_supported(clean)
            img.format = image_format(clean)
            vault = self.registry.vault_repo.get(s, img.vault_id) if img.vault_id is not None else None
            root = vault.root_path if vault is not None else None

        if root is not None:
            self.activity.append(root, LogAction.RENAME, f'Renamed "{src.name}" -> "{clean}"')
        return img

    def assign_images(self, image_ids: Iterable[int], album_id: Optional[int] = UNSET, status: Any = UNSET) -> int:
        """ Catalog-only disposition marking for the organize pass. Returns the number of ids updated. """
        ids = list(image_ids)
        values: dict[str, Any] = {}
        if status is not UNSET:
            try:
                values["status"] = ImageStatus(status)
            except ValueError as e:
                raise InvalidInput(f"Unknown image status {status!r}") from e
        with self.db.session() as s:
            if album_id is not UNSET:
                values["album_id"] = album_id
                if album_id is not None:
                    album = self.album_repo.get(s, album_id)
                    if album is None:
                        raise NotFound(f"Album {album_id} not found")
                    values["vault_id"] = album.vault_id
            self.image_repo.update_many(s, ids, **values)
        return len(ids) if values else 0

    # ---------- Batches ----------
    def _batch(self, image_ids: Iterable[int], op: Callable[[int], Any]) -> list[BatchItemResult]:
        results = []
        for image_id in image_ids:
            try:
                op(image_id)
            except VaultError as e:
                logger.warning("Image %s: %s", image_id, e)
                results.append(BatchItemResult(image_id, False, str(e)))
            else:
                results.append(BatchItemResult(image_id, True))
        return results

    def batch_move_images(self, image_ids: Iterable[int], album_id: Optional[int]) -> list[BatchItemResult]:
        return self._batch(image_ids, lambda image_id: self.move_image_to_album(image_id, album_id))

    def batch_trash_images(self, image_ids: Iterable[int]) -> list[BatchItemResult]:
        return self._batch(image_ids, self.move_image_to_trash)

    # ---------- Trash ----------
    def trash_dirs(self) -> list[Path]:
        with self.db.session() as s:
            roots = [Path(v.root_path) for v in self.registry.vault_repo.list(s)]
            roots.extend(self.registry.extra_roots(s))
        return [root / TRASH_DIR for root in roots]

    def _trash_entries(self) -> Iterable[os.DirEntry]:
        for trash in self.trash_dirs():
            try:
                with os.scandir(trash) as it:
                    entries = [e for e in it if not is_hidden(e.name)]
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Cannot read trash folder %s: %s", trash, e)
                continue
            yield from entries

    def trash_info(self) -> TrashInfo:
        count = size = 0
        for entry in self._trash_entries():
            try:
                if not entry.is_file():
                    continue
                count += 1
                size += entry.stat().st_size
            except OSError as e:
                logger.debug("Cannot stat %s: %s", entry.path, e)
        return TrashInfo(count=count, size=size)

    def empty_trash(self) -> int:
        """ Permanently delete everything in every vault's trash. Returns the number of entries removed. """
        deleted = 0
        for entry in self._trash_entries():
            try:
                if entry.is_dir(follow_symlinks=False):
                    remove_tree(Path(entry.path))
                else:
                    os.unlink(entry.path)
            except OSError as e:
                logger.warning("Failed to delete %s: %s", entry.path, e)
                continue
            deleted += 1
        logger.info("Emptied trash: %d entries deleted", deleted)
        return deleted
