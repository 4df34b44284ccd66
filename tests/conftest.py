from pathlib import Path

import pytest
from sqlalchemy import event, Engine, create_engine
from sqlalchemy.orm import sessionmaker

from photovault.core.activity_log import ActivityLog
from photovault.db.manager import DatabaseManager
from photovault.db.models import Base, Vault, Album, Image, ImageStatus
from photovault.db.services import FolderOperations, ImageOperations, TreeReconciler, VaultRegistry


# --- SQLite tuning for tests --------------------------------------------------
@event.listens_for(Engine, "connect")
def _sqlite_enable_fk(dbapi_connection, _):
    # Ensure ON DELETE CASCADE and general FK correctness in SQLite
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


# --- Database Fixtures -----------------------------------------------------------------
@pytest.fixture()
def session():
    """Fresh in-memory session per test."""
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, future=True, expire_on_commit=False)
    with session() as s:
        yield s
        s.rollback()  # clean even if the test forgot


@pytest.fixture()
def dbm(tmp_path):
    """File-backed DatabaseManager for service tests."""
    db = DatabaseManager()
    db.open(tmp_path / "catalog.db")
    yield db
    db.dispose()


# --- Helper fixtures for creating rows ----------------------------------------
@pytest.fixture()
def make_vault(session):
    def _mk(root: str = "/V", name: str = "V", position: int = 1, visible: bool = True) -> Vault:
        v = Vault(root_path=root, display_name=name, position=position, visible=visible)
        session.add(v)
        session.flush()
        return v

    return _mk


@pytest.fixture()
def make_album(session):
    def _mk(vault: Vault, name: str, parent: Album | None = None, position: int = 0) -> Album:
        a = Album(vault_id=vault.id, parent_id=parent.id if parent else None, name=name, position=position)
        session.add(a)
        session.flush()
        return a

    return _mk


@pytest.fixture()
def make_image(session):
    def _mk(path: str, *, album: Album | None = None, vault: Vault | None = None,
            status: ImageStatus = ImageStatus.normal) -> Image:
        img = Image(absolute_path=path, filename=Path(path).name, bytes_size=3, modified_at="2024-01-01T00:00:00",
                    supported=True, format=Path(path).suffix.lstrip(".") or "jpg",
                    album_id=album.id if album else None, vault_id=vault.id if vault else None, status=status)
        session.add(img)
        session.flush()
        return img

    return _mk


# --- Filesystem fixtures ---------------------------------------------------------
@pytest.fixture()
def write_file():
    """ Create a small file (and its parent folders). """
    def _write(path: Path, data: bytes = b"img") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _write


@pytest.fixture()
def vault_root(tmp_path):
    root = tmp_path / "V"
    root.mkdir()
    return root


class RecordingThumbnails:
    """ Stands in for ThumbnailService: remembers what would have been generated or removed. """

    def __init__(self):
        self.dispatched = []
        self.removed = []

    def dispatch(self, image_id, path):
        self.dispatched.append((image_id, path))

    def remove(self, ref):
        self.removed.append(ref)


@pytest.fixture()
def thumbs():
    return RecordingThumbnails()


# --- Service fixtures ----------------------------------------------------------
@pytest.fixture()
def activity():
    return ActivityLog()


@pytest.fixture()
def registry(dbm, activity, thumbs):
    return VaultRegistry(dbm, activity, thumbnail_remover=thumbs.remove)


@pytest.fixture()
def reconciler(dbm, activity, thumbs):
    return TreeReconciler(dbm, activity=activity, thumbnails=thumbs)


@pytest.fixture()
def folders(dbm, registry, activity, thumbs):
    return FolderOperations(dbm, registry, activity, thumbnail_remover=thumbs.remove)


@pytest.fixture()
def images(dbm, registry, activity, thumbs):
    return ImageOperations(dbm, registry, activity, thumbnail_remover=thumbs.remove)


@pytest.fixture()
def vault(registry, vault_root):
    """ A registered (not yet synced) vault rooted at vault_root. """
    return registry.add_vault(vault_root, "Main")
