from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

ENV_CONFIG_PATH = "PHOTOVAULT_CONFIG"
DEFAULT_DATA_DIR = Path.home() / ".photovault"


class Config(BaseModel):
    """ Process-level settings: where the catalog, thumbnails and logs live. """
    data_dir: Path = DEFAULT_DATA_DIR
    db_path: Optional[Path] = None
    thumbnails_dir: Optional[Path] = None
    log_dir: Optional[Path] = None
    log_level: str = "INFO"
    thumbnail_size: int = Field(default=400, gt=0)
    thumbnail_workers: int = Field(default=2, ge=1)

    def catalog_path(self) -> Path:
        return self.db_path or self.data_dir / "catalog.db"

    def thumbnails_path(self) -> Path:
        return self.thumbnails_dir or self.data_dir / "thumbnails"

    def logs_path(self) -> Path:
        return self.log_dir or self.data_dir / "logs"


class CatalogSettings(BaseModel):
    """ User settings persisted in the catalog's key/value table. """
    vault_folder: Optional[str] = None          # legacy single-vault root
    source_folder: Optional[str] = None
    default_thumbnail_size: int = 150
    organize_action: Literal["move", "copy"] = "move"
    trash_handling: Literal["vault", "system"] = "vault"
    confirm_destructive_actions: bool = True
    hide_assigned: bool = False

    @classmethod
    def from_rows(cls, rows: dict[str, Any]) -> "CatalogSettings":
        """ Build from stored values; unknown keys are ignored and invalid values fall back to defaults. """
        known = {k: v for k, v in rows.items() if k in cls.model_fields}
        try:
            return cls(**known)
        except ValidationError:
            out = cls()
            for key, value in known.items():
                try:
                    out = cls(**{**out.model_dump(), key: value})
                except ValidationError:
                    logger.warning("Ignoring invalid catalog setting %s=%r", key, value)
            return out


def config_path(path: Path | None = None) -> Path:
    if path is not None:
        return path.expanduser()
    env = os.environ.get(ENV_CONFIG_PATH)
    if env:
        return Path(env).expanduser()
    return DEFAULT_DATA_DIR / "config.json"


def _read_json(path: Path, default: dict) -> dict:
    if not path.exists():
        return default
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Could not read config file %s, using defaults", path)
        return default
    return raw if isinstance(raw, dict) else default


def load_config(path: Path | None = None) -> Config:
    data = _read_json(config_path(path), {})
    try:
        return Config(**data)
    except ValidationError as e:
        logger.warning("Invalid config %s (%s), using defaults", config_path(path), e.error_count())
        return Config()


def save_config(cfg: Config, path: Path | None = None) -> None:
    target = config_path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(cfg.model_dump_json(indent=2), encoding="utf-8")
