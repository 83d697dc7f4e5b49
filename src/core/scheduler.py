"""Scheduler used by the dispatch loop for its fixed delays."""

from __future__ import annotations

import asyncio


class AsyncioScheduler:
    """Sleep on the running event loop; cancellation propagates to the caller."""

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
