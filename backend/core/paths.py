"""
Config file resolution for wotid-auth.

Deployments keep private files (e.g. the static identity directory) outside
the repository and point CONFIG_DIR at them. Files not found there fall back
to ./config, and a missing `name.yaml` falls back to `name.example.yaml`.

Usage:
    from backend.core.paths import get_config_path

    directory_path = get_config_path("identity_directory.yaml", required=True)
"""
import os
import logging
from pathlib import Path
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

# backend/core/paths.py -> repo root
_DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"


def _config_dirs() -> Iterator[Path]:
    overlay = os.getenv("CONFIG_DIR")
    if overlay:
        yield Path(overlay).expanduser()
    yield _DEFAULT_CONFIG_DIR


def _candidates(filename: str) -> Iterator[Path]:
    for directory in _config_dirs():
        yield directory / filename
        if filename.endswith(".yaml"):
            yield directory / f"{filename[:-len('.yaml')]}.example.yaml"


def get_config_path(filename: str, required: bool = False) -> Optional[Path]:
    """
    Find a config file in CONFIG_DIR, then in ./config.

    Args:
        filename: Config filename (e.g., "identity_directory.yaml")
        required: If True, raise FileNotFoundError when not found

    Returns:
        Path to the first existing candidate, or None
    """
    searched = []
    for path in _candidates(filename):
        if path.exists():
            logger.debug(f"Config '{filename}' resolved to: {path}")
            return path
        searched.append(str(path))

    if required:
        raise FileNotFoundError(f"Config file '{filename}' not found (searched: {searched})")

    logger.debug(f"Config '{filename}' not found")
    return None
