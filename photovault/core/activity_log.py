"""
Append-only Markdown audit trail kept inside each vault root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FILENAME = ".activity-log"

_HEADER = """# Photo Vault Activity Log

Structural changes made to this vault by photovault.

| Timestamp | Action | Detail |
|-----------|--------|--------|
"""


class LogAction(str, Enum):
    MOVE = "MOVE"
    DELETE = "DELETE"
    RENAME = "RENAME"
    CREATE = "CREATE"
    SYNC = "SYNC"
    VAULT_ADDED = "VAULT_ADDED"


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    action: LogAction
    detail: str


def _escape(detail: str) -> str:
    return detail.replace("\\", "\\\\").replace("|", "\\|").replace("\n", " ")


def _split_row(line: str) -> list[str]:
    """Split a table row on unescaped pipes."""
    cells, cur, i = [], [], 0
    body = line.strip()[1:-1] if line.strip().endswith("|") else line.strip()[1:]
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            cur.append(body[i + 1])
            i += 2
            continue
        if ch == "|":
            cells.append("".join(cur).strip())
            cur = []
        else:
            cur.append(ch)
        i += 1
    cells.append("".join(cur).strip())
    return cells


class ActivityLog:
    """One Markdown table per vault root; write failures are logged, never raised."""

    def __init__(self, filename: str = LOG_FILENAME) -> None:
        self.filename = filename

    def path_for(self, vault_root: Path | str) -> Path:
        return Path(vault_root) / self.filename

    def append(self, vault_root: Path | str, action: LogAction, detail: str) -> None:
        log_path = self.path_for(vault_root)
        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        row = f"| {timestamp} | {action.value} | {_escape(detail)} |\n"
        try:
            if not log_path.exists():
                log_path.write_text(_HEADER, encoding="utf-8")
            with log_path.open("a", encoding="utf-8") as fh:
                fh.write(row)
        except OSError as e:
            logger.warning("Failed to write activity log %s: %s", log_path, e)

    def entries(self, vault_root: Path | str) -> list[LogEntry]:
        log_path = self.path_for(vault_root)
        if not log_path.exists():
            return []
        out: list[LogEntry] = []
        for line in log_path.read_text(encoding="utf-8").splitlines():
            if not line.startswith("| ") or line.startswith("| Timestamp"):
                continue
            cells = _split_row(line)
            if len(cells) != 3:
                continue
            try:
                action = LogAction(cells[1])
            except ValueError:
                continue
            out.append(LogEntry(timestamp=cells[0], action=action, detail=cells[2]))
        return out
