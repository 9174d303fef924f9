from boardstore.managers.archive.archive import ArchiveManager, LifecycleState

__all__ = ["ArchiveManager", "LifecycleState"]
