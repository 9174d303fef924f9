"""Manager layer - ordered containers and their archive lifecycle."""

from boardstore.managers.archive import ArchiveManager, LifecycleState
from boardstore.managers.container import ContainerStore
from boardstore.managers.registry import StoreRegistry

__all__ = ["ArchiveManager", "ContainerStore", "LifecycleState", "StoreRegistry"]
