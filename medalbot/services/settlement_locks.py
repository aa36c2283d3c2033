"""
Per-(event, medal) mutual exclusion for pot settlements.

Raffle draws and weighted distributions on the same pot must never overlap.
The EventTotals row is also read with SELECT ... FOR UPDATE, which serializes
across processes on PostgreSQL; SQLite ignores FOR UPDATE, so this in-process
lock is what serializes settlements there.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Tuple

logger = logging.getLogger(__name__)

class SettlementLockManager:
    """Hands out one asyncio.Lock per (event_id, medal_id)."""
    
    def __init__(self):
        self._locks: Dict[Tuple[int, int], asyncio.Lock] = {}
        # Holders plus waiters per key; a key is dropped when this reaches zero
        self._users: Dict[Tuple[int, int], int] = {}
    
    def _lock_for(self, event_id: int, medal_id: int) -> asyncio.Lock:
        key = (event_id, medal_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
    
    @asynccontextmanager
    async def hold(self, event_id: int, medal_id: int):
        """Block until the pot is free, then hold it for the duration of the context."""
        key = (event_id, medal_id)
        lock = self._lock_for(event_id, medal_id)
        if lock.locked():
            logger.info(f"Settlement for event {event_id} medal {medal_id} waiting on an in-flight run")
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

# Shared by every settlement service in the process
settlement_locks = SettlementLockManager()
