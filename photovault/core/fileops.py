"""
Filesystem primitives shared by the sync pass, the folder/image operations and the jobs.
"""
from __future__ import annotations

import errno
import logging
import os
import re
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from .errors import Conflict, CrossDeviceFallback, InvalidInput, IOFailure

logger = logging.getLogger(__name__)

TRASH_DIR = "_Trash"
SORT_LATER_DIR = "_Sort Later"
RESERVED_NAMES = frozenset({TRASH_DIR, SORT_LATER_DIR})

# Formats Pillow can decode for thumbnails
SUPPORTED_FORMATS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".bmp", ".tiff", ".tif",
})

# Everything that is catalogued as an image
IMAGE_EXTENSIONS = SUPPORTED_FORMATS | frozenset({
    ".heic", ".heif", ".raw", ".cr2", ".cr3", ".nef", ".arw", ".dng", ".orf",
    ".rw2", ".pef", ".sr2", ".raf", ".psd",
})

_ILLEGAL_CHARS = re.compile(r'[/\\:*?"<>|]')
_CONTROL_CHARS = re.compile(r"[\x00-\x1f]")


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def is_skipped_dir(name: str) -> bool:
    """ Hidden and reserved directories are never albums. """
    return is_hidden(name) or name in RESERVED_NAMES


def is_image_file(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in IMAGE_EXTENSIONS


def is_supported(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in SUPPORTED_FORMATS


def image_format(name: str) -> str:
    return os.path.splitext(name)[1].lower().lstrip(".")


def sanitize_name(name: str) -> str:
    return _ILLEGAL_CHARS.sub("_", name)


def validate_folder_name(name: str) -> str:
    """ Return the sanitized folder name or raise InvalidInput. """
    clean = sanitize_name((name or "").strip())
    if not clean or clean in {".", ".."}:
        raise InvalidInput("Folder name must not be empty")
    if _CONTROL_CHARS.search(clean):
        raise InvalidInput("Folder name contains invalid characters")
    if is_hidden(clean):
        raise InvalidInput("Folder name must not start with '.'")
    if clean in RESERVED_NAMES:
        raise InvalidInput(f"'{clean}' is a reserved folder name")
    return clean


def validate_filename(name: str) -> str:
    clean = (name or "").strip()
    if not clean or clean in {".", ".."}:
        raise InvalidInput("Filename cannot be empty")
    if "/" in clean or "\\" in clean:
        raise InvalidInput("Filename cannot contain slashes")
    if _CONTROL_CHARS.search(clean):
        raise InvalidInput("Filename contains invalid characters")
    return clean


def unique_target(directory: Path, filename: str, taken: Optional[Callable[[Path], bool]] = None) -> Path:
    """
    First free path for filename in directory: 'a.jpg', then 'a (1).jpg', 'a (2).jpg', ...

    A candidate is free when nothing exists there on disk and ``taken`` (if given) does not
    claim it, e.g. for a catalog row still pointing at a file deleted behind our back.
    """
    def free(candidate: Path) -> bool:
        return not os.path.lexists(candidate) and not (taken is not None and taken(candidate))

    candidate = directory / filename
    if free(candidate):
        return candidate
    stem, suffix = os.path.splitext(filename)
    counter = 1
    while True:
        candidate = directory / f"{stem} ({counter}){suffix}"
        if free(candidate):
            return candidate
        counter += 1


def _rename(src: Path, dst: Path) -> None:
    try:
        os.rename(src, dst)
    except OSError as e:
        if e.errno == errno.EXDEV:
            raise CrossDeviceFallback(str(e)) from e
        raise


def move_path(src: Path, dst: Path) -> None:
    """ Rename src to dst, copying then removing the source when they sit on different devices. """
    if os.path.lexists(dst):
        raise Conflict(f"Destination already exists: {dst}")
    try:
        _rename(src, dst)
    except CrossDeviceFallback:
        logger.debug("Cross-device move %s -> %s, copying", src, dst)
        if src.is_dir():
            shutil.copytree(src, dst, symlinks=True)
            shutil.rmtree(src)
        else:
            shutil.copy2(src, dst)
            os.unlink(src)


def copy_file(src: Path, dst: Path) -> None:
    if os.path.lexists(dst):
        raise Conflict(f"Destination already exists: {dst}")
    shutil.copy2(src, dst)


def has_visible_entries(directory: Path) -> bool:
    with os.scandir(directory) as it:
        return any(not is_hidden(entry.name) for entry in it)


def remove_tree(directory: Path) -> None:
    shutil.rmtree(directory)


def relative_label(path: Path | str, root: Path | str) -> str:
    """ Path shown in activity log lines: relative to the vault root, '/'-prefixed. """
    try:
        rel = Path(path).relative_to(root)
    except ValueError:
        return str(path)
    return "/" + rel.as_posix()


@contextmanager
def io_guard(action: str) -> Iterator[None]:
    """ Re-raise filesystem errors as domain errors: existing destinations as Conflict, the rest as IOFailure. """
    try:
        yield
    except FileExistsError as e:
        raise Conflict(f"{action}: {e}") from e
    except OSError as e:
        raise IOFailure(f"{action}: {e}") from e
