"""
Per-key asyncio locks
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional


class KeyedLock:
    """
    One asyncio.Lock per key, created on first use and dropped once no
    task holds or waits on it. Different keys never contend.

    Usage:
        locks = KeyedLock()
        async with locks.hold(user_id, timeout=5):
            ...
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """
        Hold the lock for key.

        Raises:
            asyncio.TimeoutError: lock not acquired within timeout seconds
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            acquired = False
            if timeout is None:
                acquired = await lock.acquire()
            else:
                try:
                    async with asyncio.timeout(timeout):
                        acquired = await lock.acquire()
                except (asyncio.TimeoutError, asyncio.CancelledError):
                    # The acquire can complete in the same step the deadline fires
                    if acquired:
                        lock.release()
                    raise
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
