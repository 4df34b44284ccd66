from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from photovault.core.errors import IOFailure, VaultError
from photovault.core.fileops import copy_file, io_guard, move_path, unique_target
from photovault.db.repositories import ImageRepo
from photovault.db.services.organize_plan import Disposition, OrganizePlanner, OrganizeSummary, PlannedMove
from photovault.db.services.vault_registry import VaultRegistry
from photovault.jobs.base import Job

logger = logging.getLogger(__name__)

SystemTrash = Callable[[Path], None]


class OrganizeJob(Job):
    """
    Final disposition pass. Every image with an album, trash or not-sure marking is
    moved (or copied, when originals are kept) to its destination and then dropped
    from the catalog. Trash is always a move.
    """
    kind = "organize"

    def __init__(self, registry: VaultRegistry, delete_originals: Optional[bool] = None,
                 system_trash: Optional[SystemTrash] = None, thumbnail_remover=None) -> None:
        super().__init__()
        self.registry = registry
        self.db = registry.db
        self.planner = OrganizePlanner(registry)
        self.system_trash = system_trash
        self.thumbnail_remover = thumbnail_remover
        self.image_repo = ImageRepo()

        settings = registry.settings()
        self.delete_originals = (settings.organize_action == "move") if delete_originals is None else delete_originals
        self.use_system_trash = settings.trash_handling == "system" and system_trash is not None

    def summary(self) -> OrganizeSummary:
        with self.db.session() as s:
            return self.planner.summary(s)

    def _execute(self) -> None:
        with self.db.session() as s:
            moves, unresolved = self.planner.plan(s)
        self._set_total(len(moves) + len(unresolved))
        for path, reason in unresolved:
            self._item_failed(path, IOFailure(reason))

        for move in moves:
            if self.cancelled:
                break
            self._begin_item(str(move.source))
            if move.in_place:
                self._item_done("in_place")
                continue
            try:
                self._apply(move)
            except VaultError as e:
                self._item_failed(str(move.source), e)
                continue
            self._forget(move.image_id)
            self._item_done(move.disposition.value)

    def _apply(self, move: PlannedMove) -> Path:
        src = move.source
        if not src.is_file():
            raise IOFailure(f"Source file missing: {src}")
        with io_guard(f"Cannot organize {src}"):
            if move.disposition is Disposition.trash and self.use_system_trash:
                self.system_trash(src)
                return src
            move.target_dir.mkdir(parents=True, exist_ok=True)
            dst = unique_target(move.target_dir, src.name)
            if self.delete_originals or move.disposition is Disposition.trash:
                move_path(src, dst)
            else:
                copy_file(src, dst)
        return dst

    def _forget(self, image_id: int) -> None:
        with self.db.session() as s:
            img = self.image_repo.get(s, image_id)
            ref = img.thumbnail_ref if img is not None else None
            self.image_repo.delete_many(s, [image_id])
        if ref and self.thumbnail_remover is not None:
            self.thumbnail_remover(ref)
