from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from photovault.core.activity_log import ActivityLog, LogAction
from photovault.core.errors import NotFound
from photovault.core.fileops import image_format, is_supported, sanitize_name
from photovault.core.scanner import DirectoryScanner, FolderNode, list_image_files
from photovault.db.manager import DatabaseManager
from photovault.db.models import Vault
from photovault.db.repositories import AlbumRepo, ImageRepo, VaultRepo
from photovault.db.services.album_paths import AlbumPathIndex

logger = logging.getLogger(__name__)


class ThumbnailDispatcher(Protocol):
    def dispatch(self, image_id: int, path: str): ...


# ---------- Diff model ----------
class DiffKind(str, Enum):
    matched = "matched"
    created = "created"
    deleted = "deleted"


@dataclass(frozen=True)
class AlbumDiff:
    """ Outcome for one path: reuse an existing album, mint a new one, or drop a stale one. """
    kind: DiffKind
    relative_path: str
    album_id: Optional[int] = None
    node: Optional[FolderNode] = None


def _sanitized(relative_path: str) -> str:
    return os.path.join(*(sanitize_name(p) for p in Path(relative_path).parts))


def diff_albums(nodes: list[FolderNode], index: AlbumPathIndex) -> list[AlbumDiff]:
    """
    Compare on-disk folders with catalog albums by derived path. Pure: nothing is written.

    Exact path matches are taken first; a folder left over then falls back to the album whose
    sanitized path equals its sanitized path. No album is ever matched to two folders.
    Matched/created entries keep the scanner's traversal order; deletions come last.
    """
    by_path = index.by_relative_path()
    matched: dict[str, int] = {}
    for node in nodes:
        album = by_path.get(node.relative_path)
        if album is not None:
            matched[node.relative_path] = album.id

    claimed = set(matched.values())
    by_sanitized: dict[str, int] = {}
    for album in sorted(index.albums(), key=lambda a: a.id):
        if album.id not in claimed:
            by_sanitized.setdefault(index.sanitized_path(album.id), album.id)
    for node in nodes:
        if node.relative_path in matched:
            continue
        album_id = by_sanitized.get(_sanitized(node.relative_path))
        if album_id is not None and album_id not in claimed:
            matched[node.relative_path] = album_id
            claimed.add(album_id)

    out: list[AlbumDiff] = []
    for node in nodes:
        album_id = matched.get(node.relative_path)
        if album_id is not None:
            out.append(AlbumDiff(DiffKind.matched, node.relative_path, album_id, node))
        else:
            out.append(AlbumDiff(DiffKind.created, node.relative_path, None, node))
    for album in sorted(index.albums(), key=lambda a: a.id):
        if album.id not in claimed:
            out.append(AlbumDiff(DiffKind.deleted, index.relative_path(album.id), album.id))
    return out


@dataclass(frozen=True)
class DiscoveredFile:
    path: str
    name: str
    size: int
    modified_at: str


@dataclass
class SyncReport:
    vault_id: int
    folders: int = 0
    albums_created: int = 0
    albums_updated: int = 0
    albums_deleted: int = 0
    images_added: int = 0
    images_relinked: int = 0
    images_pruned: int = 0
    orphans_claimed: int = 0
    album_ids: dict[str, int] = field(default_factory=dict)

    @property
    def mutations(self) -> int:
        return (self.albums_created + self.albums_updated + self.albums_deleted + self.images_added
                + self.images_relinked + self.images_pruned + self.orphans_claimed)

    def summary(self) -> str:
        return (f"Synced vault: {self.folders} folders, {self.albums_created} new / {self.albums_deleted} removed albums, "
                f"{self.images_added} new images, {self.images_pruned} pruned, "
                f"{self.orphans_claimed} migrated images")


class TreeReconciler:
    """Aligns a vault's albums and images with its live directory tree."""

    def __init__(self, db: DatabaseManager, scanner: Optional[DirectoryScanner] = None,
                 activity: Optional[ActivityLog] = None, thumbnails: Optional[ThumbnailDispatcher] = None):
        self.db = db
        self.scanner = scanner or DirectoryScanner()
        self.activity = activity or ActivityLog()
        self.thumbnails = thumbnails
        self.vault_repo = VaultRepo()
        self.album_repo = AlbumRepo()
        self.image_repo = ImageRepo()

    def sync_all(self) -> list[SyncReport]:
        with self.db.session() as s:
            vault_ids = [v.id for v in self.vault_repo.list(s)]
        reports = []
        for vault_id in vault_ids:
            try:
                reports.append(self.sync(vault_id))
            except NotFound as e:
                logger.warning("Skipping vault %s: %s", vault_id, e)
        return reports

    def sync(self, vault_id: int) -> SyncReport:
        with self.db.session() as s:
            vault = self.vault_repo.get(s, vault_id)
            if vault is None:
                raise NotFound(f"Vault {vault_id} not found")
        root = Path(vault.root_path)
        if not root.is_dir():
            # Never read a missing root as "every folder was deleted".
            raise NotFound(f"Vault root is missing: {root}")

        # Read the filesystem first; the catalog is only touched once the picture is complete.
        nodes = self.scanner.scan(root)
        listings = {node.relative_path: self._discover(root / node.relative_path) for node in nodes}

        report = SyncReport(vault_id=vault_id, folders=len(nodes))
        with self.db.session() as s:
            index = AlbumPathIndex(self.album_repo.list_for_vault(s, vault_id))
            diffs = diff_albums(nodes, index)
            resolved = self._apply_album_diffs(s, vault_id, diffs, index, report)
            new_images = self._reconcile_images(s, vault, resolved, listings, report)
            pruned_thumbs = self._prune_missing(s, vault_id, report)
            self._claim_orphans(s, vault, resolved, report)
            report.album_ids = resolved

        if self.thumbnails is not None:
            for image_id, path in new_images:
                self.thumbnails.dispatch(image_id, path)
            remover = getattr(self.thumbnails, "remove", None)
            if remover is not None:
                for ref in pruned_thumbs:
                    remover(ref)

        self.activity.append(root, LogAction.SYNC, report.summary())
        logger.info("%s (%s)", report.summary(), vault.display_name)
        return report

    # ---------- Steps ----------
    def _discover(self, directory: Path) -> list[DiscoveredFile]:
        out = []
        for entry in list_image_files(directory):
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError as e:
                logger.warning("Skipping unreadable image %s: %s", entry.path, e)
                continue
            modified = datetime.fromtimestamp(st.st_mtime, timezone.utc).isoformat()
            out.append(DiscoveredFile(path=entry.path, name=entry.name, size=st.st_size, modified_at=modified))
        return out

    def _apply_album_diffs(self, s: Session, vault_id: int, diffs: list[AlbumDiff], index: AlbumPathIndex,
                           report: SyncReport) -> dict[str, int]:
        resolved: dict[str, int] = {}
        for d in diffs:
            if d.kind is DiffKind.deleted:
                continue
            node = d.node
            parent_id = resolved.get(node.parent_relative_path) if node.parent_relative_path else None
            if d.kind is DiffKind.matched:
                album = index.get(d.album_id)
                if (album.parent_id, album.name, album.position) != (parent_id, node.name, node.order):
                    album.parent_id = parent_id
                    album.name = node.name
                    album.position = node.order
                    report.albums_updated += 1
                resolved[node.relative_path] = album.id
            else:
                album = self.album_repo.create(s, vault_id, parent_id, node.name, node.order)
                report.albums_created += 1
                resolved[node.relative_path] = album.id

        stale = [d.album_id for d in diffs if d.kind is DiffKind.deleted]
        if stale:
            self.album_repo.delete_many(s, stale)
            report.albums_deleted = len(stale)
        return resolved

    def _reconcile_images(self, s: Session, vault: Vault, resolved: dict[str, int],
                          listings: dict[str, list[DiscoveredFile]], report: SyncReport) -> list[tuple[int, str]]:
        known = self.image_repo.map_by_paths(s, [f.path for rel in resolved for f in listings.get(rel, ())])
        new_images: list[tuple[int, str]] = []
        for rel, album_id in resolved.items():
            for f in listings.get(rel, ()):
                img = known.get(f.path)
                if img is not None:
                    if img.album_id != album_id or img.vault_id != vault.id:
                        if img.vault_id is None:
                            report.orphans_claimed += 1
                        else:
                            report.images_relinked += 1
                        img.album_id = album_id
                        img.vault_id = vault.id
                    continue
                img = self.image_repo.create(
                    s, absolute_path=f.path, filename=f.name, bytes_size=f.size, modified_at=f.modified_at,
                    supported=is_supported(f.name), fmt=image_format(f.name), album_id=album_id, vault_id=vault.id,
                )
                report.images_added += 1
                if img.supported:
                    new_images.append((img.id, img.absolute_path))
        return new_images

    def _prune_missing(self, s: Session, vault_id: int, report: SyncReport) -> list[str]:
        gone = [img for img in self.image_repo.list_for_vault(s, vault_id) if not os.path.exists(img.absolute_path)]
        if gone:
            self.image_repo.delete_many(s, [img.id for img in gone])
            report.images_pruned = len(gone)
        return [img.thumbnail_ref for img in gone if img.thumbnail_ref]

    def _claim_orphans(self, s: Session, vault: Vault, resolved: dict[str, int], report: SyncReport) -> None:
        root = vault.root_path.rstrip(os.sep)
        orphans = self.image_repo.list_orphans_under(s, root + os.sep)
        if not orphans:
            return
        # deepest folder wins; depth is the number of path components
        prefixes = sorted(
            ((os.path.join(root, rel) + os.sep, album_id, len(Path(rel).parts)) for rel, album_id in resolved.items()),
            key=lambda t: -t[2],
        )
        for img in orphans:
            img.vault_id = vault.id
            img.album_id = next((album_id for prefix, album_id, _ in prefixes if img.absolute_path.startswith(prefix)), None)
            report.orphans_claimed += 1
        logger.info("Migrated %d orphaned images to vault %s", len(orphans), vault.display_name)
