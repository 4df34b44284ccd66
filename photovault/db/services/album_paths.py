from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from photovault.core.fileops import sanitize_name

logger = logging.getLogger(__name__)


class _AlbumLike(Protocol):
    id: int
    name: str
    parent_id: Optional[int]


class AlbumPathIndex:
    """
    Derives album directory paths from the parent chain.

    Album names are the directory names as found on disk (or as created here, already
    sanitized), so ``relative_path`` is the real location. ``sanitized_path`` applies the
    folder-name sanitizer to every component and only serves to recognise rows written with
    names the filesystem never held.

    Paths are recomputed from the live rows on every pass and memoized for the lifetime of
    the index only, so one pass over a deep tree walks each chain once.
    """

    def __init__(self, albums: Iterable[_AlbumLike]):
        self._by_id = {a.id: a for a in albums}
        self._memo: dict[int, str] = {}
        self._sanitized_memo: dict[int, str] = {}

    def __contains__(self, album_id: int) -> bool:
        return album_id in self._by_id

    def get(self, album_id: int) -> Optional[_AlbumLike]:
        return self._by_id.get(album_id)

    def relative_path(self, album_id: int) -> str:
        return self._derive(album_id, self._memo, lambda a: a.name)

    def sanitized_path(self, album_id: int) -> str:
        return self._derive(album_id, self._sanitized_memo, lambda a: sanitize_name(a.name))

    def _derive(self, album_id: int, memo: dict[int, str], name_of: Callable[[_AlbumLike], str]) -> str:
        if album_id in memo:
            return memo[album_id]

        # Collect the chain up to the first memoized ancestor (or the root).
        chain: list[_AlbumLike] = []
        seen: set[int] = set()
        cur = self._by_id.get(album_id)
        base = ""
        while cur is not None:
            if cur.id in memo:
                base = memo[cur.id]
                break
            if cur.id in seen:
                logger.warning("Album parent cycle at id=%s, treating it as a root", cur.id)
                break
            seen.add(cur.id)
            chain.append(cur)
            # A dangling parent reference ends the chain, as if the album were top level.
            cur = self._by_id.get(cur.parent_id) if cur.parent_id is not None else None

        for album in reversed(chain):
            name = name_of(album)
            base = os.path.join(base, name) if base else name
            memo[album.id] = base
        return memo.get(album_id, base)

    def absolute_path(self, album_id: int, vault_root: str | Path) -> Path:
        return Path(vault_root) / self.relative_path(album_id)

    def depth(self, album_id: int) -> int:
        return len(Path(self.relative_path(album_id)).parts)

    def by_relative_path(self) -> dict[str, _AlbumLike]:
        """ path -> album; when two rows derive the same path the lowest id wins. """
        out: dict[str, _AlbumLike] = {}
        for album_id in sorted(self._by_id):
            out.setdefault(self.relative_path(album_id), self._by_id[album_id])
        return out

    def albums(self) -> list[_AlbumLike]:
        return list(self._by_id.values())
