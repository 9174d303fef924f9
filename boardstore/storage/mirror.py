"""Local mirror of the container tables.

The mirror keeps one full snapshot (a JSON array of rows) per container
kind. Callers always load the whole snapshot, change it in memory and save
the whole snapshot back; there is no partial in-place patching. The file
mirror writes to a temporary file and renames it over the old snapshot, so
a crash leaves either the old or the new array on disk, never half of one.

When no snapshot exists yet, the optional seed rows are returned instead.
"""

from __future__ import annotations

import asyncio
import copy
import json
import os
import re
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from boardstore.models.container import ContainerKind

logger = structlog.get_logger()

Rows = list[dict[str, Any]]

_NAMESPACE_RE = re.compile(r"[A-Za-z0-9_-]+")


class Mirror(ABC):
    """Snapshot storage, one collection per container kind."""

    def __init__(self, seed: Mapping[ContainerKind, Rows] | None = None) -> None:
        self._seed = seed or {}

    def _seed_rows(self, kind: ContainerKind) -> Rows:
        return copy.deepcopy(list(self._seed.get(kind, [])))

    @abstractmethod
    async def load(self, kind: ContainerKind) -> Rows:
        """Return the full snapshot for ``kind`` (a private copy)."""

    @abstractmethod
    async def save(self, kind: ContainerKind, rows: Rows) -> None:
        """Replace the full snapshot for ``kind``."""


class MemoryMirror(Mirror):
    """In-process snapshot; backs isolated (guest/demo) sessions."""

    def __init__(self, seed: Mapping[ContainerKind, Rows] | None = None) -> None:
        super().__init__(seed)
        self._tables: dict[ContainerKind, Rows] = {}

    async def load(self, kind: ContainerKind) -> Rows:
        if kind not in self._tables:
            self._tables[kind] = self._seed_rows(kind)
        return copy.deepcopy(self._tables[kind])

    async def save(self, kind: ContainerKind, rows: Rows) -> None:
        self._tables[kind] = copy.deepcopy(list(rows))


class JsonFileMirror(Mirror):
    """One JSON file per kind under ``<directory>/<namespace>/``.

    ``namespace`` is a single path segment of letters, digits, ``_`` and
    ``-``; anything else raises ``ValueError``.
    """

    def __init__(
        self,
        directory: str | Path,
        namespace: str,
        seed: Mapping[ContainerKind, Rows] | None = None,
    ) -> None:
        super().__init__(seed)
        if not _NAMESPACE_RE.fullmatch(namespace):
            raise ValueError(f"Invalid mirror namespace: {namespace!r}")
        base = Path(directory).resolve()
        self._root = (base / namespace).resolve()
        if self._root.parent != base:
            raise ValueError(f"Mirror namespace escapes {base}: {namespace!r}")
        self._log = logger.bind(component="mirror", namespace=namespace)

    def path_for(self, kind: ContainerKind) -> Path:
        return self._root / f"{kind.table}.json"

    async def load(self, kind: ContainerKind) -> Rows:
        return await asyncio.to_thread(self._load_sync, kind)

    async def save(self, kind: ContainerKind, rows: Rows) -> None:
        await asyncio.to_thread(self._save_sync, kind, list(rows))

    def _load_sync(self, kind: ContainerKind) -> Rows:
        path = self.path_for(kind)
        if not path.exists():
            return self._seed_rows(kind)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self._log.warning("mirror.load_failed", path=str(path), error=str(e))
            return self._seed_rows(kind)
        if not isinstance(data, list):
            self._log.warning("mirror.invalid_snapshot", path=str(path))
            return self._seed_rows(kind)
        return data

    def _save_sync(self, kind: ContainerKind, rows: Rows) -> None:
        path = self.path_for(kind)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{kind.table}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
