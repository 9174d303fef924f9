"""Remote backend base class - hosted store abstraction.

A backend is responsible ONLY for talking to the hosted store. It does NOT
handle:
- Fallback to the local mirror
- Position arithmetic
- Archive rules
- Session classification

Every failure to reach or use the store (transport error, HTTP error,
schema error, driver error) is raised as ``NetworkError`` so the gateway
can fall back uniformly.

Rows are plain dicts with the columns listed in ``ROW_FIELDS``; timestamps
are ISO-8601 strings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from boardstore.models.container import ContainerKind


class RemoteBackend(ABC):
    """Abstract hosted store, one table per container kind."""

    name: str = "remote"

    @abstractmethod
    async def select(
        self,
        kind: "ContainerKind",
        filters: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """Rows matching all ``filters`` (``None`` means IS NULL), by position."""

    @abstractmethod
    async def insert(self, kind: "ContainerKind", row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return its stored representation.

        The returned dict may be empty if the store does not echo rows.
        """

    @abstractmethod
    async def update(
        self,
        kind: "ContainerKind",
        container_id: str,
        values: dict[str, Any],
    ) -> dict[str, Any]:
        """Patch one row and return its stored representation (may be empty)."""

    @abstractmethod
    async def upsert_many(
        self,
        kind: "ContainerKind",
        rows: Sequence[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Write full rows in one all-or-nothing call."""

    @abstractmethod
    async def delete(self, kind: "ContainerKind", ids: Sequence[str]) -> None:
        """Remove rows by id."""

    async def close(self) -> None:
        """Release backend resources."""
        return None
