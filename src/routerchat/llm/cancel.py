"""Helpers that race awaitables against a caller-supplied cancel handle."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from routerchat.llm.codec import cancelled_error

T = TypeVar("T")


async def run_cancellable(awaitable: Awaitable[T], cancel: asyncio.Event | None) -> T:
    if cancel is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    if cancel.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise cancelled_error()

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _pending = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done() and not cancel.is_set():
            # Outer cancellation; don't leave the request running.
            task.cancel()
    if task in done:
        return task.result()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise cancelled_error()


async def cancellable_sleep(delay: float, cancel: asyncio.Event | None) -> bool:
    """Sleep for ``delay`` seconds; return True if the cancel handle fired first."""
    if cancel is None:
        await asyncio.sleep(delay)
        return False
    if cancel.is_set():
        return True
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return False
    return True
