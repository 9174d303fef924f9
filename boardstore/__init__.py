"""Boardstore - ordered boards, lists and cards with archive lifecycle."""

from __future__ import annotations

import tomllib
from pathlib import Path


def _get_version() -> str:
    """Read the version from pyproject.toml next to the package."""
    try:
        pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return data.get("project", {}).get("version", "unknown")
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"


__version__ = _get_version()
