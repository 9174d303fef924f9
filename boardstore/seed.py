"""Starter data for guest sessions.

Every isolated session starts from its own copy of these rows: one
workspace with two boards, the Archive board and a few lists and cards.
"""

from __future__ import annotations

from typing import Any

from boardstore.models.container import ARCHIVE_NAME, ContainerKind

GUEST_WORKSPACE_ID = "guest-workspace"
_CREATED_AT = "2025-01-01T00:00:00Z"


def _row(
    container_id: str,
    parent_id: str | None,
    name: str,
    position: float,
    *,
    is_archive: bool = False,
) -> dict[str, Any]:
    return {
        "id": container_id,
        "parent_id": parent_id,
        "workspace_id": GUEST_WORKSPACE_ID if parent_id else None,
        "name": name,
        "position": position,
        "archived": False,
        "is_archive": is_archive,
        "restore_parent_id": None,
        "created_at": _CREATED_AT,
        "updated_at": _CREATED_AT,
    }


STARTER_DATA: dict[ContainerKind, list[dict[str, Any]]] = {
    ContainerKind.WORKSPACE: [
        _row(GUEST_WORKSPACE_ID, None, "Demo Workspace", 1000),
    ],
    ContainerKind.BOARD: [
        _row("board-1", GUEST_WORKSPACE_ID, "Getting Started", 1000),
        _row("board-2", GUEST_WORKSPACE_ID, "Personal Tasks", 2000),
        _row("archive-board", GUEST_WORKSPACE_ID, ARCHIVE_NAME, 3000, is_archive=True),
    ],
    ContainerKind.LIST: [
        _row("list-1", "board-1", "To Do", 1000),
        _row("list-2", "board-1", "In Progress", 2000),
        _row("list-3", "board-1", "Done", 3000),
        _row("list-personal-1", "board-2", "Personal To Do", 1000),
    ],
    ContainerKind.CARD: [
        _row("card-1", "list-1", "Welcome to the Demo!", 1000),
        _row("card-2", "list-1", "Try dragging cards between lists", 2000),
        _row("card-3", "list-2", "Archive a card to see it in the Archive board", 1000),
        _row("card-4", "list-3", "Create your first board", 1000),
    ],
}
