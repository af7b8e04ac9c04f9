"""Unit tests for the per-conversation queue."""

import asyncio

import pytest

from inkbridge.platforms.models import ConversationKey
from inkbridge.platforms.queue import ConversationQueue


def key(conversation_id: str) -> ConversationKey:
    return ConversationKey(adapter_key="test", conversation_id=conversation_id)


class TestConversationQueue:
    """Tests for ConversationQueue."""

    @pytest.mark.asyncio
    async def test_returns_task_result(self):
        """Test that the future resolves with the task's result."""
        queue = ConversationQueue()

        async def task():
            return 42

        assert await queue.enqueue(key("c1"), task) == 42

    @pytest.mark.asyncio
    async def test_same_key_never_overlaps(self):
        """Test that tasks for one conversation run strictly in order."""
        queue = ConversationQueue()
        log: list[str] = []

        def make(name: str):
            async def task():
                log.append(f"start {name}")
                await asyncio.sleep(0.01)
                log.append(f"end {name}")
                return name

            return task

        futures = [queue.enqueue(key("c1"), make(n)) for n in ("a", "b", "c")]
        results = await asyncio.gather(*futures)

        assert results == ["a", "b", "c"]
        assert log == [
            "start a", "end a",
            "start b", "end b",
            "start c", "end c",
        ]

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        """Test that one conversation does not wait for another."""
        queue = ConversationQueue()
        release = asyncio.Event()

        async def blocked():
            await release.wait()
            return "slow"

        async def quick():
            return "fast"

        slow = queue.enqueue(key("c1"), blocked)
        fast = queue.enqueue(key("c2"), quick)

        assert await asyncio.wait_for(fast, timeout=1) == "fast"
        assert not slow.done()

        release.set()
        assert await slow == "slow"

    @pytest.mark.asyncio
    async def test_failure_does_not_block_next_task(self):
        """Test that a failed task reports its error and the FIFO continues."""
        queue = ConversationQueue()

        async def failing():
            raise RuntimeError("boom")

        async def ok():
            return "ok"

        first = queue.enqueue(key("c1"), failing)
        second = queue.enqueue(key("c1"), ok)

        with pytest.raises(RuntimeError, match="boom"):
            await first
        assert await second == "ok"

    @pytest.mark.asyncio
    async def test_busy_and_pending(self):
        """Test queue introspection while a task is running."""
        queue = ConversationQueue()
        release = asyncio.Event()

        async def blocked():
            await release.wait()

        first = queue.enqueue(key("c1"), blocked)
        second = queue.enqueue(key("c1"), blocked)
        await asyncio.sleep(0)

        assert queue.is_busy(key("c1"))
        assert queue.pending(key("c1")) == 1
        assert not queue.is_busy(key("c2"))

        release.set()
        await asyncio.gather(first, second)
        await asyncio.sleep(0)

        assert not queue.is_busy(key("c1"))
        assert queue.pending(key("c1")) == 0

    @pytest.mark.asyncio
    async def test_close_cancels_waiting_tasks(self):
        """Test that close cancels the running task and everything queued."""
        queue = ConversationQueue()

        async def forever():
            await asyncio.Event().wait()

        running = queue.enqueue(key("c1"), forever)
        waiting = queue.enqueue(key("c1"), forever)
        await asyncio.sleep(0)

        await queue.close()

        assert running.cancelled()
        assert waiting.cancelled()
        assert not queue.is_busy(key("c1"))
