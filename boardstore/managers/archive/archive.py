"""ArchiveManager - archive lifecycle of containers.

Each workspace owns exactly one Archive board (``is_archive=True``). It is
created lazily on first need, placed at the end of the workspace's boards
and can never be archived, restored or deleted.

Lifecycle:
    ACTIVE --archive--> ARCHIVED --restore--> ACTIVE
    ARCHIVED --delete--> DELETED (terminal)

Archiving moves the container under the Archive board and remembers the
previous parent in ``restore_parent_id``. Deleting is only possible from
ARCHIVED and removes the container's descendants with it.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, NoReturn

import structlog

from boardstore.errors import ConstraintViolation, ValidationError
from boardstore.models.container import ARCHIVE_NAME, Container, ContainerKind

if TYPE_CHECKING:
    from boardstore.managers.registry import StoreRegistry

logger = structlog.get_logger()


class LifecycleState(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"
    # The Archive board itself
    PERMANENT = "permanent"


class ArchiveManager:
    """Archive, restore and delete, plus the per-workspace Archive board."""

    def __init__(self, registry: "StoreRegistry") -> None:
        self._registry = registry
        self._gateway = registry.gateway
        # workspace_id -> archive board id
        self._archive_ids: dict[str, str] = {}
        self._log = logger.bind(manager="archive")

    @staticmethod
    def state_of(container: Container | None) -> LifecycleState:
        if container is None:
            return LifecycleState.DELETED
        if container.is_archive:
            return LifecycleState.PERMANENT
        if container.archived:
            return LifecycleState.ARCHIVED
        return LifecycleState.ACTIVE

    async def archive_for(self, workspace_id: str) -> Container:
        """Get the workspace's Archive board, creating it if missing.

        Creation is serialized per workspace, so concurrent callers get the
        same board.

        Raises:
            NotFoundError: If the workspace does not exist
        """
        cached_id = self._archive_ids.get(workspace_id)
        if cached_id is not None:
            cached = await self._gateway.get(ContainerKind.BOARD, cached_id)
            if cached is not None and cached.is_archive:
                return cached

        lock = await self._registry.locks.get(("archive", workspace_id))
        async with lock:
            result = await self._gateway.select(
                ContainerKind.BOARD,
                {"parent_id": workspace_id, "is_archive": True},
            )
            found = sorted(result.containers(), key=lambda c: (c.position, c.id))
            if len(found) > 1:
                # Legacy data; keep using the first one in board order
                self._log.warning(
                    "archive.duplicate_archives",
                    workspace_id=workspace_id,
                    ids=[c.id for c in found],
                )

            if found:
                archive = found[0]
            else:
                # Unreadable during an outage; the board is created regardless
                await self._registry.workspaces.lookup(workspace_id)
                archive = await self._registry.boards.append(
                    workspace_id,
                    ARCHIVE_NAME,
                    workspace_id=workspace_id,
                    is_archive=True,
                )
                self._log.info(
                    "archive.created",
                    workspace_id=workspace_id,
                    archive_id=archive.id,
                )

            self._archive_ids[workspace_id] = archive.id
            return archive

    async def is_archive(self, container_id: str | None) -> bool:
        """True if ``container_id`` is a workspace's Archive board."""
        if not container_id:
            return False
        if container_id in self._archive_ids.values():
            return True
        board = await self._gateway.get(ContainerKind.BOARD, container_id)
        return board is not None and board.is_archive

    async def archive(self, kind: ContainerKind, container_id: str) -> Container:
        """Move an active container into its workspace's Archive board.

        Archiving an already archived container, or the Archive board
        itself, changes nothing.

        Raises:
            NotFoundError: If the container does not exist
            ConstraintViolation: For workspaces
        """
        store = self._registry.store(kind)
        container = await store.get(container_id)
        if kind is ContainerKind.WORKSPACE:
            raise ConstraintViolation(
                "Workspaces cannot be archived",
                details={"id": container_id},
            )

        state = self.state_of(container)
        if state is not LifecycleState.ACTIVE:
            self._log.debug("archive.noop", id=container_id, state=state.value)
            return container

        archive = await self.archive_for(container.owning_workspace_id)
        archived = await store.relocate(
            container,
            archive.id,
            None,
            archived=True,
            restore_parent_id=container.parent_id,
        )
        self._log.info(
            "archive.archived",
            kind=kind.value,
            id=container_id,
            from_parent_id=container.parent_id,
            source=archived.source,
        )
        return archived

    async def restore(
        self,
        kind: ContainerKind,
        container_id: str,
        target_parent_id: str | None = None,
    ) -> Container:
        """Bring an archived container back to the end of a live parent.

        The target is ``target_parent_id`` if given, else the remembered
        parent if it is still live, else the kind's default parent.

        Raises:
            NotFoundError: If the container or explicit target does not exist
            ConstraintViolation: If the explicit target is not a live parent
                in the same workspace
            ValidationError: If no target can be found
        """
        store = self._registry.store(kind)
        container = await store.get(container_id)

        state = self.state_of(container)
        if state is not LifecycleState.ARCHIVED:
            self._log.debug("restore.noop", id=container_id, state=state.value)
            return container

        parent_id = await self._restore_target(container, target_parent_id)
        restored = await store.relocate(
            container,
            parent_id,
            None,
            archived=False,
            restore_parent_id=None,
        )
        self._log.info(
            "archive.restored",
            kind=kind.value,
            id=container_id,
            parent_id=parent_id,
            source=restored.source,
        )
        return restored

    async def _restore_target(
        self,
        container: Container,
        explicit_parent_id: str | None,
    ) -> str:
        parent_kind = container.kind.parent_kind
        workspace_id = container.owning_workspace_id

        if explicit_parent_id is not None:
            parent = await self._registry.store(parent_kind).lookup(explicit_parent_id)
            if parent is None:
                return explicit_parent_id
            if not await self._is_live(parent, workspace_id):
                raise ConstraintViolation(
                    "Restore target must be a live container in the same workspace",
                    details={"target_parent_id": explicit_parent_id},
                )
            return parent.id

        remembered_id = container.restore_parent_id
        if remembered_id:
            parent = await self._gateway.get(parent_kind, remembered_id)
            if parent is not None and await self._is_live(parent, workspace_id):
                return parent.id
            self._log.info(
                "restore.parent_gone",
                id=container.id,
                restore_parent_id=remembered_id,
            )

        default_id = await self._default_parent(container.kind, workspace_id)
        if default_id is None:
            raise ValidationError(
                f"No {parent_kind.value} available to restore into",
                details={"id": container.id, "workspace_id": workspace_id},
            )
        return default_id

    async def _is_live(self, container: Container, workspace_id: str) -> bool:
        """Active, not an Archive board, in ``workspace_id``, and so are its ancestors."""
        if (
            container.archived
            or container.is_archive
            or container.owning_workspace_id != workspace_id
        ):
            return False
        parent_kind = container.kind.parent_kind
        if parent_kind is None:
            return True
        parent = await self._gateway.get(parent_kind, container.parent_id)
        return parent is not None and await self._is_live(parent, workspace_id)

    async def _default_parent(
        self,
        kind: ContainerKind,
        workspace_id: str,
    ) -> str | None:
        if kind is ContainerKind.BOARD:
            return workspace_id

        primary = await self._primary_board(workspace_id)
        if primary is None:
            return None
        if kind is ContainerKind.LIST:
            return primary.id

        lists = await self._registry.lists.list(primary.id)
        return lists[0].id if lists else None

    async def _primary_board(self, workspace_id: str) -> Container | None:
        """First active, non-Archive board of the workspace."""
        for board in await self._registry.boards.list(workspace_id):
            if not board.is_archive:
                return board
        return None

    async def delete(self, kind: ContainerKind, container_id: str) -> None:
        """Permanently delete an archived container and its descendants.

        Raises:
            NotFoundError: If the container does not exist
            ConstraintViolation: If the container is active or is the
                Archive board
        """
        container = await self._registry.store(kind).get(container_id)

        state = self.state_of(container)
        if state is LifecycleState.PERMANENT:
            self.delete_archive_container(container.owning_workspace_id)
        if state is not LifecycleState.ARCHIVED or not await self.is_archive(
            container.parent_id
        ):
            raise ConstraintViolation(
                f"Only archived containers can be deleted; archive {container_id} first",
                details={"id": container_id, "state": state.value},
            )

        removed = await self._delete_tree(kind, [container_id])
        self._log.info(
            "archive.deleted",
            kind=kind.value,
            id=container_id,
            removed=removed,
        )

    async def _delete_tree(self, kind: ContainerKind, ids: list[str]) -> int:
        """Delete ``ids`` and everything under them, children first."""
        if not ids:
            return 0
        removed = 0
        child_kind = kind.child_kind
        if child_kind is not None:
            child_ids: list[str] = []
            for parent_id in ids:
                result = await self._gateway.select(child_kind, {"parent_id": parent_id})
                child_ids.extend(r["id"] for r in result.rows)
            removed += await self._delete_tree(child_kind, child_ids)
        await self._gateway.delete(kind, ids)
        for parent_id in ids:
            await self._registry.locks.cleanup((child_kind, parent_id))
        return removed + len(ids)

    def delete_archive_container(self, workspace_id: str) -> NoReturn:
        """The Archive board is permanent; this always raises."""
        raise ConstraintViolation(
            "The Archive board cannot be deleted",
            details={"workspace_id": workspace_id},
        )
