"""Periodic sweep of empty, inactive rooms.

Started and stopped by the application lifespan. A failing sweep is
logged and the loop keeps going; nothing propagates to the event loop.
"""
import asyncio
import logging
from typing import List, Optional

from .registry import RoomRegistry

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5 * 60


class Janitor:
    """Runs RoomRegistry.sweep_empty() every ``interval`` seconds."""

    def __init__(self, registry: RoomRegistry, interval: float = DEFAULT_INTERVAL_SECONDS) -> None:
        self.registry = registry
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"[Janitor] Started (interval={self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[Janitor] Stopped")

    def sweep(self) -> List[str]:
        removed = self.registry.sweep_empty()
        if removed:
            logger.info(f"[Janitor] Removed {len(removed)} empty room(s): {', '.join(removed)}")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("[Janitor] Sweep failed")
