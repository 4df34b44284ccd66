"""
Directory tree discovery for vault roots.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .fileops import is_hidden, is_image_file, is_skipped_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FolderNode:
    """One on-disk folder below a vault root."""

    relative_path: str
    name: str
    parent_relative_path: Optional[str]
    order: int


class DirectoryScanner:
    """Walk a vault root depth-first into a path-keyed list of folders."""

    def __init__(self, follow_symlinks: bool = False) -> None:
        self.follow_symlinks = follow_symlinks

    def scan(self, root: Path) -> list[FolderNode]:
        """Return every album folder under root in traversal order.

        Siblings are visited in name order so the order index is stable between passes.
        Hidden and reserved folders (and everything under them) are skipped.
        """
        nodes: list[FolderNode] = []
        counter = 0

        def walk(directory: Path, parent_rel: Optional[str]) -> None:
            nonlocal counter
            for name in self._subdirectories(directory):
                rel = os.path.join(parent_rel, name) if parent_rel else name
                nodes.append(FolderNode(relative_path=rel, name=name, parent_relative_path=parent_rel, order=counter))
                counter += 1
                walk(directory / name, rel)

        walk(root, None)
        return nodes

    def _subdirectories(self, directory: Path) -> Iterator[str]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except FileNotFoundError:
            # vanished mid-walk, the sync treats it as deleted
            logger.debug("Folder disappeared during scan: %s", directory)
            return
        except OSError as e:
            logger.warning("Skipping unreadable folder %s: %s", directory, e)
            return
        for entry in entries:
            if is_skipped_dir(entry.name):
                continue
            try:
                if entry.is_dir(follow_symlinks=self.follow_symlinks):
                    yield entry.name
            except OSError as e:
                logger.warning("Skipping %s: %s", entry.path, e)


def list_image_files(directory: Path) -> list[os.DirEntry]:
    """Non-recursive listing of the image files directly inside directory."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning("Cannot list images in %s: %s", directory, e)
        return []
    out = []
    for entry in entries:
        if is_hidden(entry.name) or not is_image_file(entry.name):
            continue
        try:
            if entry.is_file(follow_symlinks=False):
                out.append(entry)
        except OSError as e:
            logger.warning("Skipping %s: %s", entry.path, e)
    return out
