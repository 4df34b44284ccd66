from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from photovault.core.errors import NotFound
from photovault.core.fileops import image_format, is_hidden, is_image_file, is_supported
from photovault.db.manager import DatabaseManager
from photovault.db.repositories import ImageRepo, SettingsRepo
from photovault.jobs.base import Job

logger = logging.getLogger(__name__)


def walk_images(source: Path) -> Iterator[str]:
    """ Every image file below source, hidden files and folders excluded. """
    for dirpath, dirnames, filenames in os.walk(source, onerror=lambda e: logger.warning("Cannot read %s", e)):
        dirnames[:] = sorted(d for d in dirnames if not is_hidden(d))
        for name in sorted(filenames):
            if not is_hidden(name) and is_image_file(name):
                yield os.path.join(dirpath, name)


class ScanJob(Job):
    """
    Initial discovery of a loose source folder: catalogs every image as a vault-less
    entry, ready to be assigned and organized. Already-known paths are left alone.
    """
    kind = "scan"

    def __init__(self, db: DatabaseManager, source: Path | str, thumbnails=None) -> None:
        super().__init__()
        self.db = db
        self.source = Path(source).expanduser()
        self.thumbnails = thumbnails
        self.image_repo = ImageRepo()
        self.settings_repo = SettingsRepo()

    def _execute(self) -> None:
        if not self.source.is_dir():
            raise NotFound(f"Source folder does not exist: {self.source}")

        paths = list(walk_images(self.source))
        self._set_total(len(paths))
        with self.db.session() as s:
            known = set(self.image_repo.map_by_paths(s, paths))
            self.settings_repo.set_many(s, {"source_folder": str(self.source)})

        for path in paths:
            if self.cancelled:
                break
            self._begin_item(path)
            if path in known:
                self._item_done("skipped")
                continue
            try:
                image_id = self._add(path)
            except OSError as e:
                self._item_failed(path, e)
                continue
            self._item_done("added")
            if image_id is not None and self.thumbnails is not None:
                self.thumbnails.dispatch(image_id, path)

    def _add(self, path: str) -> Optional[int]:
        st = os.stat(path)
        name = os.path.basename(path)
        with self.db.session() as s:
            img = self.image_repo.create(
                s, absolute_path=path, filename=name, bytes_size=st.st_size,
                modified_at=datetime.fromtimestamp(st.st_mtime, timezone.utc).isoformat(),
                supported=is_supported(name), fmt=image_format(name),
            )
            return img.id if img.supported else None
