"""
Per-user serialization of task mutations within one process.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog


logger = structlog.get_logger(__name__)


class UserLockRegistry:
    """
    Hands out one asyncio.Lock per user id.

    Allocation, submission and overrides for the same user run one at a
    time; different users never wait on each other. Row locks in the
    database cover deployments with more than one worker process.

    An entry lives only while someone holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        key = str(user_id)
        lock = self.get(key)
        self._users[key] = self._users.get(key, 0) + 1
        try:
            if lock.locked():
                logger.debug("Waiting for user lock", user_id=key)
            async with lock:
                yield
        finally:
            self._release(key)

    def _release(self, key: str) -> None:
        remaining = self._users.get(key, 0) - 1
        if remaining > 0:
            self._users[key] = remaining
            return
        self._users.pop(key, None)
        self._locks.pop(key, None)

    def is_locked(self, user_id: str) -> bool:
        lock = self._locks.get(str(user_id))
        return bool(lock and lock.locked())

    def clear(self) -> None:
        self._locks.clear()
        self._users.clear()


# Global registry instance
user_locks = UserLockRegistry()
