"""SQLModel tables for the SQL remote backend.

One table per container kind, all sharing the container row columns.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from boardstore.models.container import ContainerKind
from boardstore.utils.datetime import utcnow
from boardstore.utils.ids import new_id


class ContainerColumns(SQLModel):
    """Columns shared by every container table."""

    parent_id: Optional[str] = Field(default=None, index=True)
    workspace_id: Optional[str] = Field(default=None, index=True)
    name: str
    position: float = Field(index=True)
    archived: bool = Field(default=False)
    is_archive: bool = Field(default=False)
    restore_parent_id: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class WorkspaceRecord(ContainerColumns, table=True):
    __tablename__ = "workspaces"

    id: str = Field(default_factory=lambda: new_id("ws"), primary_key=True)


class BoardRecord(ContainerColumns, table=True):
    __tablename__ = "boards"

    id: str = Field(default_factory=lambda: new_id("board"), primary_key=True)


class ListRecord(ContainerColumns, table=True):
    __tablename__ = "lists"

    id: str = Field(default_factory=lambda: new_id("list"), primary_key=True)


class CardRecord(ContainerColumns, table=True):
    __tablename__ = "cards"

    id: str = Field(default_factory=lambda: new_id("card"), primary_key=True)


RECORD_TYPES: dict[ContainerKind, type[ContainerColumns]] = {
    ContainerKind.WORKSPACE: WorkspaceRecord,
    ContainerKind.BOARD: BoardRecord,
    ContainerKind.LIST: ListRecord,
    ContainerKind.CARD: CardRecord,
}
