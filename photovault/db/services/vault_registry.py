from __future__ import annotations
import logging
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy.orm import Session

from photovault.core.activity_log import ActivityLog, LogAction
from photovault.core.config import CatalogSettings
from photovault.core.errors import Conflict, InvalidInput, NotFound
from photovault.db.manager import DatabaseManager
from photovault.db.models import Vault
from photovault.db.repositories import VaultRepo, ImageRepo, SettingsRepo

logger = logging.getLogger(__name__)


def normalize_root(path: str | Path) -> str:
    return str(Path(path).expanduser().resolve())


class VaultRegistry:
    """Registered vault roots and the catalog's key/value settings."""

    def __init__(self, db: DatabaseManager, activity: Optional[ActivityLog] = None,
                 thumbnail_remover: Optional[Callable[[Optional[str]], None]] = None):
        self.db = db
        self.activity = activity or ActivityLog()
        self.thumbnail_remover = thumbnail_remover
        self.vault_repo = VaultRepo()
        self.image_repo = ImageRepo()
        self.settings_repo = SettingsRepo()

    # ---------- Vaults ----------
    def list_vaults(self) -> list[Vault]:
        with self.db.session() as s:
            return self.vault_repo.list(s)

    def get_vault(self, vault_id: int) -> Vault:
        with self.db.session() as s:
            return self.require(s, vault_id)

    def require(self, s: Session, vault_id: int) -> Vault:
        v = self.vault_repo.get(s, vault_id)
        if v is None:
            raise NotFound(f"Vault {vault_id} not found")
        return v

    def add_vault(self, path: str | Path, display_name: Optional[str] = None) -> Vault:
        root = Path(normalize_root(path))
        if not root.exists():
            raise NotFound(f"Folder does not exist: {root}")
        if not root.is_dir():
            raise InvalidInput(f"Path is not a directory: {root}")

        with self.db.session() as s:
            if self.vault_repo.get_by_path(s, str(root)) is not None:
                raise Conflict(f"This folder is already a vault: {root}")
            name = (display_name or "").strip() or root.name or str(root)
            vault = self.vault_repo.create(s, str(root), name, self.vault_repo.next_position(s))

        self.activity.append(root, LogAction.VAULT_ADDED, f'Vault "{vault.display_name}" added')
        logger.info("Registered vault %s at %s", vault.display_name, root)
        return vault

    def update_vault(self, vault_id: int, *, display_name: Optional[str] = None,
                     visible: Optional[bool] = None, position: Optional[int] = None) -> Vault:
        with self.db.session() as s:
            vault = self.require(s, vault_id)
            if display_name is not None:
                nm = display_name.strip()
                if not nm:
                    raise InvalidInput("Vault name must not be empty")
                vault.display_name = nm
            if visible is not None:
                vault.visible = visible
            if position is not None:
                vault.position = position
            return vault

    def remove_vault(self, vault_id: int) -> None:
        """Forget a vault: purge its albums and images and their thumbnails. Files on disk are untouched."""
        with self.db.session() as s:
            vault = self.require(s, vault_id)
            refs = [img.thumbnail_ref for img in self.image_repo.list_for_vault(s, vault_id) if img.thumbnail_ref]
            self.vault_repo.delete(s, vault_id)
        if self.thumbnail_remover is not None:
            for ref in refs:
                self.thumbnail_remover(ref)
        logger.info("Removed vault %s (%s)", vault.display_name, vault.root_path)

    # ---------- Fallbacks ----------
    def default_vault(self, s: Session) -> Vault:
        """The vault for the legacy single-vault setting, registering it on first use."""
        folder = self.settings_repo.get_all(s).get("vault_folder")
        if not folder:
            raise NotFound("No vault specified and no default vault folder set")
        root = normalize_root(folder)
        vault = self.vault_repo.get_by_path(s, root)
        if vault is None:
            vault = self.vault_repo.create(s, root, Path(root).name or root, self.vault_repo.next_position(s))
            logger.info("Registered legacy vault folder %s", root)
        return vault

    def fallback_root(self, s: Session, vault_id: Optional[int]) -> Path:
        """Root for trash/sort-later: the given vault, else the first visible vault, else the legacy folder."""
        if vault_id is not None:
            vault = self.vault_repo.get(s, vault_id)
            if vault is not None:
                return Path(vault.root_path)
        visible = self.vault_repo.first_visible(s)
        if visible is not None:
            return Path(visible.root_path)
        folder = self.settings_repo.get_all(s).get("vault_folder")
        if folder:
            return Path(normalize_root(folder))
        raise NotFound("No vault available")

    def extra_roots(self, s: Session) -> list[Path]:
        """Legacy vault folder when it is not registered as a vault."""
        folder = self.settings_repo.get_all(s).get("vault_folder")
        if not folder:
            return []
        root = normalize_root(folder)
        if self.vault_repo.get_by_path(s, root) is not None:
            return []
        return [Path(root)]

    # ---------- Settings ----------
    def settings(self) -> CatalogSettings:
        with self.db.session() as s:
            return CatalogSettings.from_rows(self.settings_repo.get_all(s))

    def update_settings(self, **values) -> CatalogSettings:
        unknown = set(values) - set(CatalogSettings.model_fields)
        if unknown:
            raise InvalidInput(f"Unknown settings: {', '.join(sorted(unknown))}")
        with self.db.session() as s:
            current = CatalogSettings.from_rows(self.settings_repo.get_all(s))
            try:
                updated = CatalogSettings(**{**current.model_dump(), **values})
            except ValueError as e:
                raise InvalidInput(str(e)) from e
            self.settings_repo.set_many(s, {k: getattr(updated, k) for k in values})
            return updated
