"""
Per-lead locks
Serializes read-modify-write cycles on the same lead id
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class LeadLockRegistry:
    """
    One asyncio.Lock per lead id.

    Webhook handlers and cadence batches run on the same event loop; any
    update to a lead's score, status or last contact goes through lock(id).
    A lock lives only while some task holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, lead_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(lead_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lead_id] = lock
        self._users[lead_id] = self._users.get(lead_id, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._users[lead_id] -= 1
            if self._users[lead_id] == 0:
                del self._users[lead_id]
                del self._locks[lead_id]

    def is_locked(self, lead_id: str) -> bool:
        lock = self._locks.get(lead_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
