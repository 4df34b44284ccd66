from __future__ import annotations

import logging
from typing import Iterable, Optional

from photovault.core.errors import VaultError
from photovault.db.services.tree_reconciler import SyncReport, TreeReconciler
from photovault.jobs.base import Job

logger = logging.getLogger(__name__)


class SyncJob(Job):
    """Reconciles vaults one after another; a vault that fails to sync is reported and skipped."""
    kind = "sync"

    def __init__(self, reconciler: TreeReconciler, vault_ids: Optional[Iterable[int]] = None) -> None:
        super().__init__()
        self.reconciler = reconciler
        self.vault_ids = list(vault_ids) if vault_ids is not None else None
        self.reports: list[SyncReport] = []

    def _execute(self) -> None:
        if self.vault_ids is None:
            with self.reconciler.db.session() as s:
                self.vault_ids = [v.id for v in self.reconciler.vault_repo.list(s)]
        self._set_total(len(self.vault_ids))

        for vault_id in self.vault_ids:
            if self.cancelled:
                break
            self._begin_item(f"vault {vault_id}")
            try:
                report = self.reconciler.sync(vault_id)
            except VaultError as e:
                self._item_failed(f"vault {vault_id}", e)
                continue
            self.reports.append(report)
            self._item_done("synced")
