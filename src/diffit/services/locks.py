"""Per-key asyncio locks.

Serialises work on one build or one baseline tuple inside this process.
Cross-process safety comes from the database (atomic recompute queries and
the baseline pointer compare-and-swap), not from these locks.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key, dropped once no task uses it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._users[key] - 1
        if remaining:
            self._users[key] = remaining
        else:
            del self._users[key]
            del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Wait for and hold the lock for ``key``."""
        lock = self._checkout(key)
        try:
            async with lock:
                yield
        finally:
            self._checkin(key)

    @asynccontextmanager
    async def hold_nowait(self, key: str, on_busy: Callable[[], Exception]) -> AsyncIterator[None]:
        """Hold the lock for ``key`` or raise ``on_busy()`` if another task has it."""
        lock = self._checkout(key)
        try:
            if lock.locked():
                raise on_busy()
            async with lock:
                yield
        finally:
            self._checkin(key)


build_locks = KeyedLocks()
promotion_locks = KeyedLocks()
project_locks = KeyedLocks()
