"""
Resolves where each image with a pending disposition should end up.

Shared by the organize job (which carries the moves out) and the pre-flight summary.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from sqlalchemy.orm import Session

from photovault.core.errors import NotFound
from photovault.core.fileops import SORT_LATER_DIR, TRASH_DIR
from photovault.db.models import ImageStatus
from photovault.db.repositories import AlbumRepo, ImageRepo, VaultRepo
from photovault.db.services.album_paths import AlbumPathIndex
from photovault.db.services.vault_registry import VaultRegistry

logger = logging.getLogger(__name__)


class Disposition(str, Enum):
    album = "album"
    trash = "trash"
    sort_later = "sort-later"


@dataclass(frozen=True)
class PlannedMove:
    image_id: int
    source: Path
    disposition: Disposition
    target_dir: Path
    album_id: Optional[int] = None

    @property
    def in_place(self) -> bool:
        return self.source.parent == self.target_dir


@dataclass
class AlbumMoveSummary:
    album_id: int
    album_name: str
    target_path: str
    count: int = 0


@dataclass
class OrganizeSummary:
    album_moves: list[AlbumMoveSummary] = field(default_factory=list)
    trash_count: int = 0
    not_sure_count: int = 0
    unresolved: int = 0

    @property
    def total_images(self) -> int:
        return sum(m.count for m in self.album_moves) + self.trash_count + self.not_sure_count


class OrganizePlanner:
    def __init__(self, registry: VaultRegistry):
        self.registry = registry
        self.vault_repo = VaultRepo()
        self.album_repo = AlbumRepo()
        self.image_repo = ImageRepo()

    def plan(self, s: Session) -> tuple[list[PlannedMove], list[tuple[str, str]]]:
        """ One move per pending image, plus (path, reason) for images whose target cannot be resolved. """
        vaults = {v.id: v for v in self.vault_repo.list(s)}
        index = AlbumPathIndex(self.album_repo.list_all(s))
        moves: list[PlannedMove] = []
        unresolved: list[tuple[str, str]] = []

        for img in self.image_repo.list_pending(s):
            source = Path(img.absolute_path)
            try:
                if img.status is ImageStatus.trash:
                    root = self.registry.fallback_root(s, img.vault_id)
                    moves.append(PlannedMove(img.id, source, Disposition.trash, root / TRASH_DIR))
                elif img.status is ImageStatus.not_sure:
                    root = self.registry.fallback_root(s, img.vault_id)
                    moves.append(PlannedMove(img.id, source, Disposition.sort_later, root / SORT_LATER_DIR))
                else:
                    album = index.get(img.album_id)
                    vault = vaults.get(album.vault_id) if album is not None else None
                    if vault is None:
                        raise NotFound(f"Album {img.album_id} has no vault")
                    target = index.absolute_path(album.id, vault.root_path)
                    moves.append(PlannedMove(img.id, source, Disposition.album, target, album.id))
            except NotFound as e:
                logger.warning("Cannot organize %s: %s", source, e)
                unresolved.append((str(source), str(e)))
        return moves, unresolved

    def summary(self, s: Session) -> OrganizeSummary:
        moves, unresolved = self.plan(s)
        out = OrganizeSummary(unresolved=len(unresolved))
        by_album: dict[int, AlbumMoveSummary] = {}
        for m in moves:
            if m.disposition is Disposition.trash:
                out.trash_count += 1
            elif m.disposition is Disposition.sort_later:
                out.not_sure_count += 1
            elif not m.in_place:
                entry = by_album.get(m.album_id)
                if entry is None:
                    album = self.album_repo.get(s, m.album_id)
                    entry = by_album[m.album_id] = AlbumMoveSummary(m.album_id, album.name, str(m.target_dir))
                entry.count += 1
        out.album_moves = sorted(by_album.values(), key=lambda e: e.target_path)
        return out
