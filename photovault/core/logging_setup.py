"""
Logging configuration for photovault.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

BASE_LOGGER = "photovault"


def setup_logging(log_dir: Optional[Path] = None, level: str | int = logging.INFO) -> logging.Logger:
    """Attach console and file handlers to the package logger (once) and return it."""
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    base_logger = logging.getLogger(BASE_LOGGER)
    base_logger.setLevel(level)
    if base_logger.handlers:
        return base_logger

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    base_logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        date_stamp = datetime.now(timezone.utc).strftime("%Y%m%d")

        file_handler = logging.FileHandler(log_dir / f"photovault_{date_stamp}.log", encoding="utf-8")
        file_handler.setFormatter(formatter)
        base_logger.addHandler(file_handler)

        error_handler = logging.FileHandler(log_dir / f"errors_{date_stamp}.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        base_logger.addHandler(error_handler)

    return base_logger
