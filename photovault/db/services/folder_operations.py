from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.orm import Session

from photovault.core.activity_log import ActivityLog, LogAction
from photovault.core.errors import Conflict, InvalidInput, NotEmpty, NotFound
from photovault.core.fileops import (
    has_visible_entries, io_guard, move_path, relative_label, remove_tree, sanitize_name, validate_folder_name,
)
from photovault.db.manager import DatabaseManager
from photovault.db.models import Album, Vault
from photovault.db.repositories import AlbumRepo, ImageRepo
from photovault.db.services.album_paths import AlbumPathIndex
from photovault.db.services.vault_registry import VaultRegistry

logger = logging.getLogger(__name__)


class FolderOperations:
    """
    Create/rename/move/delete one album folder, keeping the directory and the catalog in step.

    Each call is one consistency unit: the filesystem change runs inside the session, so a
    failure on disk rolls the catalog back. A crash after the disk change but before commit
    leaves drift that the next sync heals.
    """

    def __init__(self, db: DatabaseManager, registry: VaultRegistry, activity: Optional[ActivityLog] = None,
                 thumbnail_remover: Optional[Callable[[Optional[str]], None]] = None):
        self.db = db
        self.registry = registry
        self.activity = activity or registry.activity
        self.thumbnail_remover = thumbnail_remover
        self.album_repo = AlbumRepo()
        self.image_repo = ImageRepo()

    # ---------- Helpers ----------
    def _require_album(self, s: Session, album_id: int) -> Album:
        album = self.album_repo.get(s, album_id)
        if album is None:
            raise NotFound(f"Album {album_id} not found")
        return album

    def _album_dir(self, s: Session, album: Album, vault: Vault) -> Path:
        index = AlbumPathIndex(self.album_repo.list_for_vault(s, vault.id))
        return index.absolute_path(album.id, vault.root_path)

    # ---------- Operations ----------
    def create_folder(self, name: str, parent_id: Optional[int] = None, vault_id: Optional[int] = None) -> Album:
        clean = validate_folder_name(name)
        with self.db.session() as s:
            parent = self._require_album(s, parent_id) if parent_id is not None else None
            if vault_id is not None:
                vault = self.registry.require(s, vault_id)
            elif parent is not None:
                vault = self.registry.require(s, parent.vault_id)
            else:
                vault = self.registry.default_vault(s)
            if parent is not None and parent.vault_id != vault.id:
                raise InvalidInput("Parent album belongs to a different vault")

            base = self._album_dir(s, parent, vault) if parent is not None else Path(vault.root_path)
            target = base / clean
            siblings = [a for a in self.album_repo.list_for_vault(s, vault.id) if a.parent_id == parent_id]
            if any(sanitize_name(a.name) == clean for a in siblings):
                raise Conflict(f"Album already exists: {target}")

            with io_guard(f"Cannot create folder {target}"):
                target.mkdir(parents=True, exist_ok=True)
            album = self.album_repo.create(
                s, vault.id, parent_id, clean, self.album_repo.next_child_position(s, vault.id, parent_id)
            )
            root = vault.root_path

        self.activity.append(root, LogAction.CREATE, f'Created folder "{relative_label(target, root)}"')
        logger.info("Created album %s (id=%s)", target, album.id)
        return album

    def rename_folder(self, album_id: int, new_name: str) -> Album:
        clean = validate_folder_name(new_name)
        with self.db.session() as s:
            album = self._require_album(s, album_id)
            vault = self.registry.require(s, album.vault_id)
            old = self._album_dir(s, album, vault)
            new = old.parent / clean
            if clean == album.name:
                return album
            if os.path.lexists(new):
                raise Conflict(f"A folder named '{clean}' already exists")
            if not old.is_dir():
                raise NotFound(f"Folder not found on disk: {old}")

            with io_guard(f"Cannot rename {old}"):
                os.rename(old, new)
            album.name = clean
            # descendant album paths are derived; only stored image paths need rewriting
            self.image_repo.rewrite_prefix(s, str(old) + os.sep, str(new) + os.sep)
            root = vault.root_path

        self.activity.append(root, LogAction.RENAME,
                             f'Renamed "{relative_label(old, root)}" -> "{relative_label(new, root)}"')
        return album

    def move_folder(self, album_id: int, new_parent_id: Optional[int], target_vault_id: Optional[int] = None) -> Album:
        with self.db.session() as s:
            album = self._require_album(s, album_id)
            source = self.registry.require(s, album.vault_id)
            parent = self._require_album(s, new_parent_id) if new_parent_id is not None else None

            if target_vault_id is not None:
                target = self.registry.require(s, target_vault_id)
            elif parent is not None:
                target = self.registry.require(s, parent.vault_id)
            else:
                target = source
            if parent is not None and parent.vault_id != target.id:
                raise InvalidInput("Target parent belongs to a different vault")

            descendants = self.album_repo.descendant_ids(s, album.id)
            if new_parent_id is not None and (new_parent_id == album.id or new_parent_id in descendants):
                raise InvalidInput("Cannot move a folder into itself or one of its subfolders")
            if album.parent_id == new_parent_id and album.vault_id == target.id:
                return album

            src = self._album_dir(s, album, source)
            dest_base = self._album_dir(s, parent, target) if parent is not None else Path(target.root_path)
            dst = dest_base / album.name
            if os.path.lexists(dst):
                raise Conflict(f"A folder named '{album.name}' already exists at the destination")
            if not src.is_dir():
                raise NotFound(f"Folder not found on disk: {src}")

            position = self.album_repo.next_child_position(s, target.id, new_parent_id)
            with io_guard(f"Cannot move {src}"):
                dest_base.mkdir(parents=True, exist_ok=True)
                move_path(src, dst)

            crossing = target.id != source.id
            album.parent_id = new_parent_id
            album.vault_id = target.id
            album.position = position
            if crossing:
                self.album_repo.set_vault(s, descendants, target.id)
                images = self.image_repo.list_for_albums(s, [album.id, *descendants])
                self.image_repo.update_many(s, [img.id for img in images], vault_id=target.id)
            self.image_repo.rewrite_prefix(s, str(src) + os.sep, str(dst) + os.sep)
            source_root, target_root = source.root_path, target.root_path

        detail = f'Moved folder "{relative_label(src, source_root)}" -> "{relative_label(dst, target_root)}"'
        self.activity.append(source_root, LogAction.MOVE, detail)
        if crossing:
            self.activity.append(target_root, LogAction.MOVE, f"{detail} (from vault {source_root})")
        return album

    def delete_folder(self, album_id: int, delete_contents: bool = False) -> int:
        """ Remove the folder and its subtree from disk and catalog. Returns the number of albums deleted. """
        with self.db.session() as s:
            album = self._require_album(s, album_id)
            vault = self.registry.require(s, album.vault_id)
            path = self._album_dir(s, album, vault)

            if path.is_dir():
                with io_guard(f"Cannot delete {path}"):
                    if not delete_contents and has_visible_entries(path):
                        raise NotEmpty(f"Folder is not empty: {path}")
                    remove_tree(path)
            else:
                logger.debug("Folder %s already gone from disk", path)

            ids = [album.id, *self.album_repo.descendant_ids(s, album.id)]
            images = {img.id: img for img in self.image_repo.list_for_albums(s, ids)}
            images.update({img.id: img for img in self.image_repo.list_under_prefix(s, str(path) + os.sep)})
            refs = [img.thumbnail_ref for img in images.values() if img.thumbnail_ref]
            self.image_repo.delete_many(s, images)
            deleted = self.album_repo.delete_many(s, ids)
            root = vault.root_path

        if self.thumbnail_remover is not None:
            for ref in refs:
                self.thumbnail_remover(ref)
        self.activity.append(root, LogAction.DELETE, f'Deleted folder "{relative_label(path, root)}"')
        logger.info("Deleted album %s with %d sub-albums and %d images", path, deleted - 1, len(images))
        return deleted
