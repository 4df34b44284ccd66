from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from photovault.core.activity_log import ActivityLog
from photovault.core.config import Config
from photovault.core.errors import NotFound
from photovault.core.scanner import list_image_files
from photovault.core.thumbnails import ThumbnailGenerator
from photovault.db.manager import DatabaseManager
from photovault.db.models import Vault
from photovault.db.repositories import AlbumRepo, ImageRepo
from photovault.db.services.album_paths import AlbumPathIndex
from photovault.db.services.folder_operations import FolderOperations
from photovault.db.services.image_operations import ImageOperations
from photovault.db.services.organize_plan import OrganizePlanner, OrganizeSummary
from photovault.db.services.thumbnail_service import ThumbnailService
from photovault.db.services.tree_reconciler import SyncReport, TreeReconciler
from photovault.db.services.vault_registry import VaultRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlbumFile:
    path: str
    filename: str
    album_path: str
    vault_id: int


class LibraryService:
    """
    Wires the registry, reconciler and operations around one DatabaseManager.
    Entry points (CLI, jobs) use this instead of building the services one by one.
    """

    def __init__(self, db: DatabaseManager, config: Optional[Config] = None,
                 thumbnails: Optional[ThumbnailService] = None, activity: Optional[ActivityLog] = None):
        self.db = db
        self.config = config or Config()
        self.activity = activity or ActivityLog()
        self.thumbnails = thumbnails
        remover = thumbnails.remove if thumbnails is not None else None

        self.registry = VaultRegistry(db, self.activity, thumbnail_remover=remover)
        self.reconciler = TreeReconciler(db, activity=self.activity, thumbnails=thumbnails)
        self.folders = FolderOperations(db, self.registry, self.activity, thumbnail_remover=remover)
        self.images = ImageOperations(db, self.registry, self.activity, thumbnail_remover=remover)
        self.planner = OrganizePlanner(self.registry)
        self.album_repo = AlbumRepo()
        self.image_repo = ImageRepo()

    @classmethod
    def from_config(cls, db: DatabaseManager, config: Config) -> "LibraryService":
        generator = ThumbnailGenerator(config.thumbnails_path())
        thumbs = ThumbnailService(db, generator, size=config.thumbnail_size, workers=config.thumbnail_workers)
        return cls(db, config, thumbnails=thumbs)

    def close(self) -> None:
        if self.thumbnails is not None:
            self.thumbnails.shutdown()

    # ---------- Vaults ----------
    def add_vault(self, path: str | Path, display_name: Optional[str] = None, sync: bool = True) -> Vault:
        vault = self.registry.add_vault(path, display_name)
        if sync:
            self.reconciler.sync(vault.id)
        return vault

    def sync(self, vault_id: Optional[int] = None) -> list[SyncReport]:
        if vault_id is None:
            return self.reconciler.sync_all()
        return [self.reconciler.sync(vault_id)]

    # ---------- Browsing ----------
    def album_files(self, album_id: int) -> list[AlbumFile]:
        """ Image files currently on disk in the album's folder (not the catalog's view). """
        with self.db.session() as s:
            album = self.album_repo.get(s, album_id)
            if album is None:
                raise NotFound(f"Album {album_id} not found")
            vault = self.registry.require(s, album.vault_id)
            index = AlbumPathIndex(self.album_repo.list_for_vault(s, vault.id))
            rel = index.relative_path(album.id)
            folder = index.absolute_path(album.id, vault.root_path)
        return [AlbumFile(path=e.path, filename=e.name, album_path=rel, vault_id=vault.id)
                for e in list_image_files(folder)]

    def organize_summary(self) -> OrganizeSummary:
        with self.db.session() as s:
            return self.planner.summary(s)

    # ---------- Data management ----------
    def export_assignments(self, target: Optional[Path] = None) -> Path:
        target = target or self.config.data_dir / "assignments-export.json"
        with self.db.session() as s:
            data = {
                "exportedAt": datetime.now(timezone.utc).isoformat(),
                "images": [
                    {"path": img.absolute_path, "albumId": img.album_id, "status": img.status.value}
                    for img in self.image_repo.list_all(s)
                ],
                "albums": [
                    {"id": a.id, "name": a.name, "parentId": a.parent_id, "vaultId": a.vault_id}
                    for a in self.album_repo.list_all(s)
                ],
            }
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.info("Exported %d images and %d albums to %s", len(data["images"]), len(data["albums"]), target)
        return target

    def clear_catalog(self) -> None:
        """ Forget every album and image (vault registrations stay) and delete the thumbnail files. """
        with self.db.session() as s:
            refs = [img.thumbnail_ref for img in self.image_repo.list_all(s) if img.thumbnail_ref]
            self.image_repo.delete_all(s)
            self.album_repo.delete_all(s)
        if self.thumbnails is not None:
            for ref in refs:
                self.thumbnails.remove(ref)
        logger.info("Cleared catalog (%d thumbnails removed)", len(refs))
