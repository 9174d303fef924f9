"""Sibling-scope in-memory locks.

Writes that compute positions (create, move, archive, restore) read the
sibling set and then write to it. Holding the scope lock across both steps
keeps two commands in the same process from handing out the same position
or interleaving with a rebalance.

Note: These locks only work within a single process. Concurrent writers in
other processes (another tab, another user) are not coordinated.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Hashable


class ScopeLocks:
    """Lazily created ``asyncio.Lock`` per scope key.

    Owned by a StoreRegistry, so each backing dataset has its own lock map.
    Entries are weak: a lock nobody holds or waits on is dropped, so the
    map only grows with the scopes in use.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_lock = asyncio.Lock()

    async def get(self, key: Hashable) -> asyncio.Lock:
        """Get or create the lock for ``key``.

        Callers must keep the returned lock referenced while using it.
        """
        async with self._locks_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    async def cleanup(self, key: Hashable) -> None:
        """Drop the lock for a scope that no longer exists."""
        async with self._locks_lock:
            self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
