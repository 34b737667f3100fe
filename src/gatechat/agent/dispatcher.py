"""Turn queue: serializes user inputs into the session runner.

``enqueue()`` may be called from any event source (the initial message,
interactive input) at any time. A single background drain task pops
entries in arrival order and awaits the runner for each, so at most one
exchange is ever in flight.

Usage:
    queue = TurnQueue(runner.process)
    queue.enqueue("first")
    queue.enqueue("second")    # runs after "first" completes
    await queue.join()
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from gatechat.lib.events import Subscribers, Unsubscribe

logger = logging.getLogger(__name__)

type Processor = Callable[[str], Awaitable[object]]


class TurnQueue:
    """FIFO of pending inputs with a single consumer."""

    def __init__(self, process: Processor) -> None:
        self._process = process
        self._pending: deque[str] = deque()
        self._draining = False
        self._drain_task: asyncio.Task[None] | None = None
        self._current: asyncio.Task[object] | None = None
        self._cancel_requested = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._depth_subscribers: Subscribers[int] = Subscribers()

    @property
    def depth(self) -> int:
        """Entries waiting to be processed (excluding the one in flight)."""
        return len(self._pending)

    @property
    def busy(self) -> bool:
        return self._current is not None

    def subscribe_depth(self, callback: Callable[[int], None]) -> Unsubscribe:
        return self._depth_subscribers.add(callback)

    def _depth_changed(self) -> None:
        self._depth_subscribers.publish(self.depth)

    def enqueue(self, text: str) -> None:
        """Queue *text* and make sure a drain task is running."""
        self._pending.append(text)
        self._idle.clear()
        self._depth_changed()
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(
                self._drain(), name="turn-queue-drain"
            )

    async def _drain(self) -> None:
        if self._draining:
            return
        self._draining = True
        try:
            while self._pending:
                text = self._pending.popleft()
                self._depth_changed()
                await self._run_one(text)
        finally:
            self._draining = False
            if not self._pending:
                self._idle.set()

    async def _run_one(self, text: str) -> None:
        self._current = asyncio.ensure_future(self._process(text))
        try:
            await self._current
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            logger.debug("Turn cancelled; continuing with %d queued", self.depth)
        except Exception:
            logger.exception("Turn failed")
        finally:
            self._current = None
            self._cancel_requested = False

    def cancel_current(self) -> bool:
        """Cancel the in-flight turn. Queued entries still run.

        Returns:
            True if a turn was in flight.
        """
        if self._current is None or self._current.done():
            return False
        self._cancel_requested = True
        self._current.cancel()
        return True

    async def join(self) -> None:
        """Wait until the queue is empty and nothing is in flight."""
        await self._idle.wait()

    async def close(self) -> None:
        """Drop pending entries and stop the drain task."""
        self._pending.clear()
        self._depth_changed()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        self._drain_task = None
        self._idle.set()
