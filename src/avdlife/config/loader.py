from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from .models import Settings

# Config file used when no path is given; AVDLIFE_CONFIG points elsewhere.
DEFAULT_CONFIG: str = os.getenv("AVDLIFE_CONFIG", "avdlife.yaml")


def read_yaml(path: Path) -> dict[str, Any]:
    """
    Return the top-level mapping of a YAML file.

    A missing or empty file yields an empty mapping.

    Raises:
        ValueError: If the document is not a mapping.
    """
    if not path.is_file():
        return {}
    with path.open(encoding="utf-8") as f:
        loaded = yaml.safe_load(f)
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        kind = type(loaded).__name__
        raise ValueError(f"{path}: expected a mapping at the top level, got {kind}")
    return loaded


def load_settings(path: str | os.PathLike[str] | None = None) -> Settings:
    """
    Build Settings from a YAML file, with AVDLIFE_* environment variables on top.

    Args:
        path: Configuration file; DEFAULT_CONFIG when omitted.
    """
    return Settings(**read_yaml(Path(path or DEFAULT_CONFIG)))
