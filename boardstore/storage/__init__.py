"""Local storage."""

from boardstore.storage.mirror import JsonFileMirror, MemoryMirror, Mirror

__all__ = ["JsonFileMirror", "MemoryMirror", "Mirror"]
