from __future__ import annotations
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Literal, Optional

from photovault.core.errors import InvalidInput
from photovault.core.thumbnails import ThumbnailError, ThumbnailGenerator
from photovault.db.manager import DatabaseManager
from photovault.db.repositories import ImageRepo, VaultRepo

logger = logging.getLogger(__name__)


class ThumbnailService:
    """
    Fire-and-forget thumbnail generation. Each task only writes its own image's
    thumbnail_ref/dimensions, so tasks never contend with each other.
    """

    def __init__(self, db: DatabaseManager, generator: ThumbnailGenerator, size: int = 400,
                 workers: int = 2):
        self.db = db
        self.generator = generator
        self.size = size
        self.image_repo = ImageRepo()
        self.vault_repo = VaultRepo()
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="thumbs")

    def dispatch(self, image_id: int, path: str) -> Future:
        future = self._executor.submit(self._generate, image_id, path)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Thumbnail task failed: %s", exc, exc_info=exc)

    def _generate(self, image_id: int, path: str) -> Optional[str]:
        try:
            thumb = self.generator.generate(path, image_id, self.size)
        except ThumbnailError as e:
            logger.warning("%s", e)
            return None
        with self.db.session() as s:
            self.image_repo.set_thumbnail(s, image_id, thumb.ref, thumb.width, thumb.height)
        return thumb.ref

    def regenerate(self, scope: Literal["all", "visible"] = "all") -> list[Future]:
        """ Queue regeneration for every supported image, or only those in visible vaults (plus vault-less ones). """
        with self.db.session() as s:
            if scope == "visible":
                visible = [v.id for v in self.vault_repo.list(s) if v.visible]
                images = self.image_repo.list_for_visible(s, visible)
            elif scope == "all":
                images = self.image_repo.list_all(s)
            else:
                raise InvalidInput(f"Unknown thumbnail scope {scope!r}")
            todo = [(img.id, img.absolute_path) for img in images if img.supported]
        logger.info("Regenerating %d thumbnails (scope=%s)", len(todo), scope)
        return [self.dispatch(image_id, path) for image_id, path in todo]

    def remove(self, thumbnail_ref: Optional[str]) -> None:
        self.generator.remove(thumbnail_ref)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
