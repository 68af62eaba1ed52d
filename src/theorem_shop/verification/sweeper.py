"""Periodic expiry sweep for the in-memory stores."""

import asyncio
from typing import Protocol

from theorem_shop.common.logging import get_logger

logger = get_logger("verification.sweeper")


class Sweepable(Protocol):
    def sweep(self) -> int: ...


def sweep_all(stores: dict[str, Sweepable]) -> dict[str, int]:
    """Run one sweep over every store; returns removed counts by name."""
    removed = {}
    for name, store in stores.items():
        try:
            removed[name] = store.sweep()
        except Exception:
            logger.exception("Sweep failed for %s", name)
            removed[name] = 0
    return removed


async def run_sweeper(stores: dict[str, Sweepable], interval_seconds: float) -> None:
    """Sweep forever, independent of request traffic. Cancel to stop."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = sweep_all(stores)
        if any(removed.values()):
            logger.info("Swept expired entries", extra={"removed": removed})


def start_sweeper(stores: dict[str, Sweepable], interval_seconds: float) -> asyncio.Task:
    return asyncio.create_task(run_sweeper(stores, interval_seconds), name="store-sweeper")


async def stop_sweeper(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
