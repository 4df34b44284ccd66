from __future__ import annotations
import logging
from pathlib import Path
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from photovault.core.errors import NotFound
from .models import Base

logger = logging.getLogger(__name__)

# Applied on every new connection. busy_timeout lets a thumbnail worker wait out a sync commit.
CATALOG_PRAGMAS = (
    "PRAGMA foreign_keys = ON;",
    "PRAGMA journal_mode = WAL;",
    "PRAGMA synchronous = NORMAL;",
    "PRAGMA temp_store = MEMORY;",
    "PRAGMA busy_timeout = 5000;",
)


def _catalog_url(path: Path) -> str:
    return f"sqlite:///{path.resolve().as_posix()}"


def _install_pragmas(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, conn_rec):
        cur = dbapi_conn.cursor()
        for pragma in CATALOG_PRAGMAS:
            cur.execute(pragma)
        cur.close()


class DatabaseManager:
    """
    Owns the catalog engine and session factory.

    The schema is created on open; tables that already exist are left alone. Services and
    jobs each open short sessions through session(), possibly from worker threads.
    """

    def __init__(self) -> None:
        self._engine: Optional[Engine] = None
        self._Session: Optional[sessionmaker[Session]] = None
        self._path: Optional[Path] = None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._Session is not None

    def open(self, path: Path, *, create_if_missing: bool = True) -> None:
        """ Open (and if allowed, create) the catalog at path, replacing any catalog open before. """
        fresh = not path.exists()
        if fresh and not create_if_missing:
            raise NotFound(f"Catalog database not found: {path}")
        path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(_catalog_url(path), future=True, connect_args={"check_same_thread": False})
        _install_pragmas(engine)
        Base.metadata.create_all(engine)

        if self._engine is not None:
            self._engine.dispose()
        self._engine = engine
        self._Session = sessionmaker(bind=engine, expire_on_commit=False, future=True)
        self._path = path
        logger.info("%s catalog %s", "Created" if fresh else "Opened", path)

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._Session = None
        self._path = None

    @contextmanager
    def session(self) -> Iterator[Session]:
        """ One unit of work: committed on success, rolled back on any exception. """
        if self._Session is None:
            raise RuntimeError("Catalog is not open. Call DatabaseManager.open() first.")
        s = self._Session()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()
