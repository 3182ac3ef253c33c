"""
Per-owner write locks.

A settlement's ceiling spans every period of every participant, and an
income edit must not race a settlement that is about to freeze it. Writers
therefore hold the lock of every owner they touch. Locks are always taken
in sorted owner order so two group settlements cannot deadlock.

Reads take no locks.
"""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Iterable


class OwnerLocks:
    """One asyncio.Lock per owner id, created on first use."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, owner_id: str) -> asyncio.Lock:
        if owner_id not in self._locks:
            self._locks[owner_id] = asyncio.Lock()
        return self._locks[owner_id]

    @asynccontextmanager
    async def hold(self, owner_ids: Iterable[str]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for owner_id in sorted(set(owner_ids)):
                await stack.enter_async_context(self._lock_for(owner_id))
            yield
