"""Per-conversation FIFO that serializes inbound message processing."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


@dataclass
class _QueueEntry:
    """One unit of work plus its completion signal."""

    factory: TaskFactory
    future: asyncio.Future


class ConversationQueue:
    """Runs tasks for the same conversation strictly one after another.

    Each active conversation gets one worker task draining its FIFO. A task
    starts only after every earlier task for the same key has settled; a
    failure is delivered to the future of the task that raised it and never
    blocks the next entry. Different keys run concurrently.
    """

    def __init__(self) -> None:
        """Initialize an empty queue."""
        self._pending: dict[Hashable, deque[_QueueEntry]] = {}
        self._workers: dict[Hashable, asyncio.Task] = {}

    def enqueue(self, key: Hashable, task: TaskFactory) -> asyncio.Future:
        """Schedule ``task`` behind all earlier tasks for ``key``.

        Args:
            key: Conversation identity
            task: Zero-argument callable returning an awaitable

        Returns:
            Future resolved with the task's result or failed with its exception
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.setdefault(key, deque()).append(_QueueEntry(task, future))

        if key not in self._workers:
            self._workers[key] = loop.create_task(self._drain(key), name=f"queue-{key}")

        return future

    async def _drain(self, key: Hashable) -> None:
        """Run queued entries for ``key`` until its FIFO is empty."""
        entries = self._pending[key]
        try:
            while entries:
                entry = entries.popleft()
                if entry.future.cancelled():
                    continue
                try:
                    result = await entry.factory()
                except asyncio.CancelledError:
                    entry.future.cancel()
                    raise
                except Exception as e:
                    logger.debug(f"Queued task for {key} failed: {e}")
                    if not entry.future.done():
                        entry.future.set_exception(e)
                else:
                    if not entry.future.done():
                        entry.future.set_result(result)
        finally:
            self._workers.pop(key, None)
            if not entries:
                self._pending.pop(key, None)

    def pending(self, key: Hashable) -> int:
        """Number of tasks waiting (not yet started) for ``key``."""
        return len(self._pending.get(key, ()))

    def is_busy(self, key: Hashable) -> bool:
        """Check if a task for ``key`` is running or waiting."""
        return key in self._workers

    async def close(self) -> None:
        """Cancel all workers and every task still waiting to run."""
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

        for entries in self._pending.values():
            for entry in entries:
                entry.future.cancel()
        self._pending.clear()
        self._workers.clear()
