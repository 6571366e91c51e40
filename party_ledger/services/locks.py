"""
Per-Party Mutation Locks

At most one mutation runs per party at a time. A delete and a concurrent
edit of the same party are serialized instead of interleaving. Different
parties never wait on each other.

Reads do not take these locks.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

import structlog

from party_ledger.errors import StoreTimeoutError


logger = structlog.get_logger(__name__)


class PartyLockRegistry:
    """
    One asyncio.Lock per party id, created on demand.

    A lock is dropped once nobody holds or waits for it, so the registry
    does not grow with the number of parties ever touched.
    """

    def __init__(self):
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    def is_locked(self, party_id: UUID) -> bool:
        lock = self._locks.get(party_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(
        self,
        party_id: UUID,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[None]:
        """
        Hold the party's lock for the duration of the block.

        Raises:
            StoreTimeoutError: If the lock is not acquired within `timeout`
        """
        lock = self._locks.setdefault(party_id, asyncio.Lock())
        self._users[party_id] = self._users.get(party_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "party_lock_timeout",
                    party_id=str(party_id),
                    timeout=timeout,
                )
                raise StoreTimeoutError(
                    f"Timed out waiting for another change to party {party_id}",
                    details={"party_id": str(party_id), "timeout": timeout},
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[party_id] -= 1
            if self._users[party_id] == 0:
                del self._users[party_id]
                self._locks.pop(party_id, None)
