from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image as PILImage, UnidentifiedImageError

logger = logging.getLogger(__name__)


class ThumbnailError(Exception): ...


@dataclass
class Thumbnail:
    ref: str
    width: Optional[int]
    height: Optional[int]


class ThumbnailGenerator:
    """ Pillow-backed thumbnails: fit inside size x size, never enlarged, stored as JPEG under thumbnails_dir. """

    def __init__(self, thumbnails_dir: Path, quality: int = 80) -> None:
        self.thumbnails_dir = thumbnails_dir
        self.quality = quality

    def path_for(self, image_id: int) -> Path:
        return self.thumbnails_dir / f"{image_id}.jpg"

    def generate(self, source: Path | str, image_id: int, size: int) -> Thumbnail:
        self.thumbnails_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(image_id)
        try:
            with PILImage.open(source) as im:
                w, h = im.size
                thumb = im.copy()
                thumb.thumbnail((size, size))
                if thumb.mode not in ("RGB", "L"):
                    thumb = thumb.convert("RGB")
                thumb.save(target, format="JPEG", quality=self.quality)
        except (OSError, UnidentifiedImageError, ValueError) as e:
            raise ThumbnailError(f"Cannot build thumbnail for {source}: {e}") from e
        return Thumbnail(ref=str(target), width=w, height=h)

    def remove(self, thumbnail_ref: Optional[str]) -> None:
        if not thumbnail_ref:
            return
        try:
            Path(thumbnail_ref).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove thumbnail %s: %s", thumbnail_ref, e)
