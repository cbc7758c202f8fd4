"""
Side-effect queue for non-critical work (notifications, commentary).
The trading cycle publishes and moves on; failures never reach it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from paper_trader.utils.time import now_market

logger = logging.getLogger(__name__)


@dataclass
class SideEffect:
    kind: str
    action: Callable[[], Awaitable[Any]]
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: Any = field(default_factory=now_market)


class SideEffectQueue:
    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[SideEffect] = asyncio.Queue(maxsize=maxsize)

    def publish(self, effect: SideEffect) -> bool:
        """Non-blocking; drops (and logs) the effect when the queue is full"""
        try:
            self._queue.put_nowait(effect)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Side-effect queue full, dropping {effect.kind}")
            return False

    async def get(self) -> SideEffect:
        return await self._queue.get()

    def size(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        await self._queue.join()

    def task_done(self) -> None:
        self._queue.task_done()


class SideEffectWorker:
    def __init__(self, queue: SideEffectQueue):
        self._queue = queue
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self.failures = 0

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                return

    async def _run(self) -> None:
        while not self._stop.is_set():
            effect = await self._queue.get()
            try:
                await effect.action()
            except Exception as exc:
                # Best-effort: the book is already persisted by the time this runs
                self.failures += 1
                logger.error(f"Side effect {effect.kind} failed: {exc}")
            finally:
                self._queue.task_done()
