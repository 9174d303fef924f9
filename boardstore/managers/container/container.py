"""ContainerStore - ordered-collection commands for one container kind.

The same class serves workspaces, boards, lists and cards. Positions come
from the PositionAllocator; every write goes through the registry's
PersistenceGateway. Archive, restore and delete are lifecycle transitions
owned by the ArchiveManager and are only forwarded from here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from boardstore.errors import (
    ConstraintViolation,
    NeedsRebalance,
    NotFoundError,
    ValidationError,
)
from boardstore.models.container import Container, ContainerKind
from boardstore.utils.datetime import utcnow_iso

if TYPE_CHECKING:
    from boardstore.managers.archive import ArchiveManager
    from boardstore.managers.registry import StoreRegistry
    from boardstore.services.gateway import GatewayResult

logger = structlog.get_logger()


class ContainerStore:
    """List, create, rename, move, archive, restore and delete one kind."""

    def __init__(self, kind: ContainerKind, registry: "StoreRegistry") -> None:
        self.kind = kind
        self._registry = registry
        self._gateway = registry.gateway
        self._allocator = registry.allocator
        self._locks = registry.locks
        self._log = logger.bind(manager="container", kind=kind.value)

    @property
    def _archives(self) -> "ArchiveManager":
        return self._registry.archives

    # ---- reads ----

    async def get(self, container_id: str) -> Container:
        """Get container by ID.

        Raises:
            NotFoundError: If no container of this kind has that id
        """
        container = await self._gateway.get(self.kind, container_id)
        if container is None:
            raise self._not_found(container_id)
        return container

    async def lookup(self, container_id: str) -> Container | None:
        """Like ``get``, but ``None`` when the answer is unknown.

        During an outage the gateway answers from the mirror, which may
        never have seen ``container_id``; such a miss returns ``None``.

        Raises:
            NotFoundError: If the remote store (or an isolated session's
                dataset) has no such container
        """
        result = await self._gateway.select(self.kind, {"id": container_id})
        container = result.container()
        if container is not None:
            return container
        if result.fallback:
            self._log.warning("container.unverified", id=container_id)
            return None
        raise self._not_found(container_id)

    def _not_found(self, container_id: str) -> NotFoundError:
        return NotFoundError(
            f"{self.kind.value.capitalize()} not found: {container_id}",
            details={"kind": self.kind.value, "id": container_id},
        )

    async def list(self, parent_id: str | None) -> list[Container]:
        """Containers under ``parent_id`` in display order.

        Active containers only, except under an Archive board, which holds
        nothing but archived containers.
        """
        archived_view = False
        if parent_id is not None:
            archived_view = await self._archives.is_archive(parent_id)
        return await self._siblings(parent_id, archived=archived_view)

    async def _siblings(self, parent_id: str | None, *, archived: bool) -> list[Container]:
        result = await self._gateway.select(
            self.kind,
            {"parent_id": parent_id, "archived": archived},
        )
        return sorted(result.containers(), key=lambda c: c.position)

    # ---- writes ----

    def _clean_name(self, name: Any) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(
                "Name must not be empty",
                details={"kind": self.kind.value},
            )
        return name.strip()

    async def _scope_lock(self, parent_id: str | None):
        return await self._locks.get((self.kind, parent_id))

    async def create(
        self,
        parent_id: str | None,
        name: str,
        *,
        workspace_id: str | None = None,
    ) -> Container:
        """Create a container at the end of ``parent_id``'s children.

        ``workspace_id`` is only consulted when the parent cannot be read
        (remote store down, parent not in the mirror yet).

        Raises:
            ValidationError: Empty name, or missing/unexpected parent
            NotFoundError: Parent does not exist
            ConstraintViolation: Parent is an Archive board or archived
        """
        name = self._clean_name(name)
        workspace_id = await self._resolve_create_parent(parent_id, workspace_id)
        return await self.append(parent_id, name, workspace_id=workspace_id)

    async def _resolve_create_parent(
        self,
        parent_id: str | None,
        workspace_hint: str | None,
    ) -> str | None:
        parent_kind = self.kind.parent_kind
        if parent_kind is None:
            if parent_id is not None:
                raise ValidationError("Workspaces have no parent")
            return None
        if not parent_id:
            raise ValidationError(
                f"A {self.kind.value} needs a parent {parent_kind.value}",
                details={"kind": self.kind.value},
            )

        parent = await self._registry.store(parent_kind).lookup(parent_id)
        if parent is None:
            return await self._unverified_workspace(parent_id, workspace_hint)
        if parent.is_archive:
            raise ConstraintViolation(
                "The Archive board only holds archived items",
                details={"parent_id": parent_id},
            )
        if parent.archived:
            raise ConstraintViolation(
                f"Cannot add to archived {parent_kind.value} {parent_id}",
                details={"parent_id": parent_id},
            )
        return parent.owning_workspace_id

    async def _unverified_workspace(
        self,
        parent_id: str,
        workspace_hint: str | None,
    ) -> str | None:
        """Best-known workspace for children of a parent nobody can read."""
        if self.kind.parent_kind is ContainerKind.WORKSPACE:
            return parent_id
        if workspace_hint:
            return workspace_hint
        for sibling in await self._siblings(parent_id, archived=False):
            if sibling.workspace_id:
                return sibling.workspace_id
        return None

    async def append(
        self,
        parent_id: str | None,
        name: str,
        *,
        workspace_id: str | None,
        is_archive: bool = False,
        container_id: str | None = None,
    ) -> Container:
        """Insert at end-of-list without parent checks (used by create and
        by the ArchiveManager to materialize Archive boards)."""
        lock = await self._scope_lock(parent_id)
        async with lock:
            siblings = await self._siblings(parent_id, archived=False)
            position = self._allocator.end_of_list(s.position for s in siblings)
            now = utcnow_iso()
            row = {
                "parent_id": parent_id,
                "workspace_id": workspace_id,
                "name": name,
                "position": position,
                "archived": False,
                "is_archive": is_archive,
                "restore_parent_id": None,
                "created_at": now,
                "updated_at": now,
            }
            if container_id is not None:
                row["id"] = container_id
            result = await self._gateway.insert(self.kind, row)

        container = result.container()
        self._log.info(
            "container.create",
            id=container.id,
            parent_id=parent_id,
            position=position,
            source=result.source,
        )
        return container

    async def rename(self, container_id: str, name: str) -> Container:
        """Change the display name; position is untouched."""
        name = self._clean_name(name)
        container = await self.get(container_id)
        result = await self._gateway.update(
            self.kind,
            container_id,
            {"name": name, "updated_at": utcnow_iso()},
        )
        self._log.info("container.rename", id=container_id, source=result.source)
        return self._merged(container, result)

    async def move(
        self,
        container_id: str,
        target_parent_id: str | None,
        target_index: int | None = None,
    ) -> Container:
        """Place a container at ``target_index`` among the target's children.

        ``target_index`` is clamped to the number of siblings; ``None``
        means end-of-list.

        Raises:
            ValidationError: Negative index
            NotFoundError: Container or target parent does not exist
            ConstraintViolation: Move would bypass archive/restore or leave
                the workspace
        """
        if target_index is not None and target_index < 0:
            raise ValidationError(
                "target_index must be >= 0",
                details={"target_index": target_index},
            )

        container = await self.get(container_id)

        if self.kind is ContainerKind.WORKSPACE:
            if target_parent_id is not None:
                raise ConstraintViolation("Workspaces cannot be nested")
        else:
            target = await self._resolve_move_target(target_parent_id)
            if target is not None:
                self._check_move(container, target)
            elif container.archived:
                # An unreadable target is never the Archive board
                raise ConstraintViolation(
                    "Restore the container before moving it out of the Archive",
                    details={"id": container_id},
                )

        moved = await self.relocate(container, target_parent_id, target_index)
        self._log.info(
            "container.move",
            id=container_id,
            parent_id=target_parent_id,
            position=moved.position,
            source=moved.source,
        )
        return moved

    async def _resolve_move_target(self, target_parent_id: str | None) -> Container | None:
        if not target_parent_id:
            raise ValidationError(
                f"A {self.kind.value} needs a parent",
                details={"kind": self.kind.value},
            )
        if await self._archives.is_archive(target_parent_id):
            return await self._registry.store(ContainerKind.BOARD).get(target_parent_id)
        return await self._registry.store(self.kind.parent_kind).lookup(target_parent_id)

    def _check_move(self, container: Container, target: Container) -> None:
        if target.owning_workspace_id != container.owning_workspace_id:
            raise ConstraintViolation(
                "Containers cannot move across workspaces",
                details={"id": container.id, "target_parent_id": target.id},
            )
        if target.is_archive and not container.archived:
            raise ConstraintViolation(
                "Use archive to move a container into the Archive",
                details={"id": container.id},
            )
        if container.archived and not target.is_archive:
            raise ConstraintViolation(
                "Restore the container before moving it out of the Archive",
                details={"id": container.id},
            )
        if target.archived:
            raise ConstraintViolation(
                f"Cannot move into archived {target.kind.value} {target.id}",
                details={"target_parent_id": target.id},
            )

    async def move_to_board(
        self,
        card_id: str,
        board_id: str,
        list_id: str | None = None,
        target_index: int | None = None,
    ) -> Container:
        """Move a card onto another board.

        The card lands in ``list_id`` when given, else in the board's first
        list.

        Raises:
            ValidationError: Not a card store, or the board has no lists
            NotFoundError: Card, board or list does not exist
            ConstraintViolation: ``list_id`` is not on ``board_id``, or the
                board is an Archive board (use archive)
        """
        self._require_kind(ContainerKind.CARD)
        board = await self._registry.boards.get(board_id)
        if board.is_archive:
            raise ConstraintViolation(
                "Use archive to move a card into the Archive",
                details={"id": card_id, "board_id": board_id},
            )

        if list_id is None:
            lists = await self._registry.lists.list(board_id)
            if not lists:
                raise ValidationError(
                    f"Board {board_id} has no lists",
                    details={"board_id": board_id},
                )
            list_id = lists[0].id
        else:
            target = await self._registry.lists.get(list_id)
            if target.parent_id != board_id:
                raise ConstraintViolation(
                    f"List {list_id} is not on board {board_id}",
                    details={"list_id": list_id, "board_id": board_id},
                )

        return await self.move(card_id, list_id, target_index)

    def _require_kind(self, kind: ContainerKind) -> None:
        if self.kind is not kind:
            raise ValidationError(
                f"Only available for {kind.table}",
                details={"kind": self.kind.value},
            )

    # ---- board and user views ----

    async def cards_on_board(self, board_id: str) -> list[Container]:
        """Cards of every list on ``board_id``, list by list in display order.

        For an Archive board these are the archived cards it holds.
        """
        self._require_kind(ContainerKind.CARD)
        board = await self._registry.boards.get(board_id)
        if board.is_archive:
            return await self.list(board_id)

        cards: list[Container] = []
        for lst in await self._registry.lists.list(board_id):
            cards.extend(await self._siblings(lst.id, archived=False))
        return cards

    async def archived_cards(self, board_id: str) -> list[Container]:
        """Archived cards belonging to ``board_id``.

        For an Archive board, everything it holds; for any other board, the
        archived cards whose remembered list is on that board.
        """
        self._require_kind(ContainerKind.CARD)
        board = await self._registry.boards.get(board_id)
        if board.is_archive:
            return await self.list(board_id)

        archive = await self._archives.archive_for(board.owning_workspace_id)
        result = await self._gateway.select(ContainerKind.LIST, {"parent_id": board_id})
        list_ids = {row["id"] for row in result.rows}
        return [
            card
            for card in await self._siblings(archive.id, archived=True)
            if card.restore_parent_id in list_ids
        ]

    async def user_workspace(self, user_id: str, name: str = "My Workspace") -> Container:
        """The user's own workspace (id == ``user_id``), created on first use."""
        self._require_kind(ContainerKind.WORKSPACE)
        lock = await self._locks.get(("user_workspace", user_id))
        async with lock:
            existing = await self._gateway.get(self.kind, user_id)
            if existing is not None:
                return existing
            workspace = await self.append(
                None,
                self._clean_name(name),
                workspace_id=None,
                container_id=user_id,
            )
        self._log.info("container.user_workspace_created", user_id=user_id)
        return workspace

    async def workspaces_for_user(self, user_id: str) -> list[Container]:
        """Workspaces a user sees: currently just their own."""
        return [await self.user_workspace(user_id)]

    async def relocate(
        self,
        container: Container,
        parent_id: str | None,
        index: int | None,
        **changes: Any,
    ) -> Container:
        """Write ``parent_id`` and a fresh position together.

        ``changes`` (e.g. ``archived``) are written in the same update. When
        the target slot has no headroom, the whole sibling scope including
        ``container`` is renumbered and written in one atomic call.
        """
        archived = changes.get("archived", container.archived)
        lock = await self._scope_lock(parent_id)
        async with lock:
            siblings = [
                s
                for s in await self._siblings(parent_id, archived=archived)
                if s.id != container.id
            ]
            index = len(siblings) if index is None else min(index, len(siblings))
            values = {
                **changes,
                "parent_id": parent_id,
                "updated_at": utcnow_iso(),
            }
            try:
                values["position"] = self._allocator.at_index(
                    [s.position for s in siblings], index
                )
            except NeedsRebalance:
                return await self._rebalance_into(container, siblings, index, values)

            result = await self._gateway.update(self.kind, container.id, values)
        return self._merged(container, result)

    async def _rebalance_into(
        self,
        container: Container,
        siblings: list[Container],
        index: int,
        values: dict[str, Any],
    ) -> Container:
        ordered = siblings[:index] + [container] + siblings[index:]
        positions = self._allocator.rebalance(ordered)

        rows = []
        for item, position in zip(ordered, positions):
            row = item.to_row()
            if item.id == container.id:
                row.update(values)
            row["position"] = position
            row["updated_at"] = values["updated_at"]
            rows.append(row)

        self._log.info(
            "container.rebalance",
            parent_id=values["parent_id"],
            count=len(rows),
        )
        result = await self._gateway.update_many(self.kind, rows)
        moved = next(r for r in rows if r["id"] == container.id)
        return Container.from_row(self.kind, moved, result.source)

    def _merged(self, container: Container, result: "GatewayResult") -> Container:
        if not result.rows:
            raise self._not_found(container.id)
        row ={**container.to_row(), **result.row}
        return Container.from_row(self.kind, row, result.source)

    # ---- lifecycle (ArchiveManager) ----

    async def archive(self, container_id: str) -> Container:
        """Move into the workspace's Archive board and flag as archived."""
        return await self._archives.archive(self.kind, container_id)

    async def restore(
        self,
        container_id: str,
        target_parent_id: str | None = None,
    ) -> Container:
        """Clear the archived flag and move to ``target_parent_id`` (or a default)."""
        return await self._archives.restore(self.kind, container_id, target_parent_id)

    async def delete(self, container_id: str) -> None:
        """Permanently delete an archived container."""
        await self._archives.delete(self.kind, container_id)

    async def delete_archive_container(self, workspace_id: str) -> None:
        """Always rejected: a workspace's Archive board is permanent."""
        self._archives.delete_archive_container(workspace_id)
