"""Container data model.

A container is any entity that takes part in the ordered-sibling and
archive model: a workspace, a board, a list or a card. All four kinds
share one row shape; the kind decides which table holds the row and
which kind its parent is.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from boardstore.utils.datetime import utcnow

ARCHIVE_NAME = "Archive"

# Columns persisted remotely and in the mirror. ``source`` is not one of them.
ROW_FIELDS = (
    "id",
    "parent_id",
    "workspace_id",
    "name",
    "position",
    "archived",
    "is_archive",
    "restore_parent_id",
    "created_at",
    "updated_at",
)


class ContainerKind(str, Enum):
    """Container kinds, top-down."""

    WORKSPACE = "workspace"
    BOARD = "board"
    LIST = "list"
    CARD = "card"

    @property
    def table(self) -> str:
        """Remote table / mirror key."""
        return f"{self.value}s"

    @property
    def id_prefix(self) -> str:
        return "ws" if self is ContainerKind.WORKSPACE else self.value

    @property
    def parent_kind(self) -> ContainerKind | None:
        return _PARENT_KIND[self]

    @property
    def child_kind(self) -> ContainerKind | None:
        return _CHILD_KIND[self]

    @classmethod
    def from_table(cls, table: str) -> ContainerKind:
        """Resolve ``boards`` -> BOARD. Raises ValueError on unknown tables."""
        for kind in cls:
            if kind.table == table:
                return kind
        raise ValueError(f"Unknown container table: {table}")


_PARENT_KIND: dict[ContainerKind, ContainerKind | None] = {
    ContainerKind.WORKSPACE: None,
    ContainerKind.BOARD: ContainerKind.WORKSPACE,
    ContainerKind.LIST: ContainerKind.BOARD,
    ContainerKind.CARD: ContainerKind.LIST,
}

_CHILD_KIND: dict[ContainerKind, ContainerKind | None] = {
    ContainerKind.WORKSPACE: ContainerKind.BOARD,
    ContainerKind.BOARD: ContainerKind.LIST,
    ContainerKind.LIST: ContainerKind.CARD,
    ContainerKind.CARD: None,
}


ResultSource = Literal["remote", "mirror"]


class Container(BaseModel):
    """A workspace, board, list or card."""

    kind: ContainerKind
    id: str
    parent_id: str | None = None
    workspace_id: str | None = None
    name: str
    position: float
    archived: bool = False

    # Set only on the permanent Archive board of a workspace
    is_archive: bool = False
    # Parent before archiving; consumed by restore
    restore_parent_id: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Where the gateway got this row from
    source: ResultSource = "remote"

    @property
    def owning_workspace_id(self) -> str:
        """Workspace this container belongs to (itself for workspaces)."""
        if self.kind is ContainerKind.WORKSPACE:
            return self.id
        return self.workspace_id or ""

    def to_row(self) -> dict[str, Any]:
        """Serialize to a persisted row (JSON-compatible)."""
        data = self.model_dump(mode="json", include=set(ROW_FIELDS))
        return {field: data[field] for field in ROW_FIELDS}

    @classmethod
    def from_row(
        cls,
        kind: ContainerKind,
        row: dict[str, Any],
        source: ResultSource = "remote",
    ) -> Container:
        """Deserialize a persisted row, ignoring unknown columns."""
        data = {k: row[k] for k in ROW_FIELDS if row.get(k) is not None}
        return cls(kind=kind, source=source, **data)
