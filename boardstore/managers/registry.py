"""StoreRegistry - one dataset's stores wired together.

A registry bundles the gateway, the position allocator, the scope locks,
the ArchiveManager and one ContainerStore per kind. Everything a session
touches goes through exactly one registry.
"""

from __future__ import annotations

from boardstore.concurrency import ScopeLocks
from boardstore.managers.archive import ArchiveManager
from boardstore.managers.container import ContainerStore
from boardstore.models.container import ContainerKind
from boardstore.ordering import PositionAllocator
from boardstore.services.gateway import PersistenceGateway


class StoreRegistry:
    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        allocator: PositionAllocator | None = None,
    ) -> None:
        self.gateway = gateway
        self.allocator = allocator or PositionAllocator()
        self.locks = ScopeLocks()
        self.archives = ArchiveManager(self)
        self._stores = {kind: ContainerStore(kind, self) for kind in ContainerKind}

    def store(self, kind: ContainerKind) -> ContainerStore:
        return self._stores[kind]

    @property
    def workspaces(self) -> ContainerStore:
        return self._stores[ContainerKind.WORKSPACE]

    @property
    def boards(self) -> ContainerStore:
        return self._stores[ContainerKind.BOARD]

    @property
    def lists(self) -> ContainerStore:
        return self._stores[ContainerKind.LIST]

    @property
    def cards(self) -> ContainerStore:
        return self._stores[ContainerKind.CARD]

    async def close(self) -> None:
        await self.gateway.close()
