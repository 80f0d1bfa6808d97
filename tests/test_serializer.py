"""Unit tests for serializer.py - PerKeySerializer."""

import asyncio

import pytest

from serializer import PerKeySerializer


def tracked(log, label, delay=0, error=None):
    """Operation factory appending start/end markers to log."""

    async def operation():
        log.append(("start", label))
        for _ in range(delay):
            await asyncio.sleep(0)
        log.append(("end", label))
        if error is not None:
            raise error
        return label

    return operation


@pytest.mark.asyncio
class TestPerKeySerializer:
    """Tests for PerKeySerializer."""

    async def test_same_key_runs_in_order_without_overlap(self):
        serializer = PerKeySerializer()
        log = []

        tasks = [
            serializer.enqueue("q", tracked(log, i, delay=3 - i)) for i in range(3)
        ]
        results = await asyncio.gather(*tasks)

        assert results == [0, 1, 2]
        assert log == [
            ("start", 0),
            ("end", 0),
            ("start", 1),
            ("end", 1),
            ("start", 2),
            ("end", 2),
        ]

    async def test_different_keys_interleave(self):
        serializer = PerKeySerializer()
        log = []

        first = serializer.enqueue("a", tracked(log, "a", delay=3))
        second = serializer.enqueue("b", tracked(log, "b", delay=0))
        await asyncio.gather(first, second)

        # b does not wait for a to finish
        assert log.index(("end", "b")) < log.index(("end", "a"))

    async def test_failure_does_not_block_later_operations(self):
        serializer = PerKeySerializer()
        log = []

        failing = serializer.enqueue("q", tracked(log, 1, error=RuntimeError("boom")))
        following = serializer.enqueue("q", tracked(log, 2))

        with pytest.raises(RuntimeError):
            await failing
        assert await following == 2
        assert log == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]

    async def test_caller_sees_own_outcome(self):
        serializer = PerKeySerializer()
        log = []

        ok = serializer.enqueue("q", tracked(log, "ok"))
        bad = serializer.enqueue("q", tracked(log, "bad", error=ValueError("x")))

        assert await ok == "ok"
        with pytest.raises(ValueError):
            await bad

    async def test_settled_chains_are_evicted(self):
        serializer = PerKeySerializer()
        task = serializer.enqueue("q", tracked([], 1))
        assert serializer.keys() == ["q"]

        await task
        await asyncio.sleep(0)

        assert serializer.keys() == []
        assert serializer.pending_count() == 0

    async def test_settled_chains_retained_without_eviction(self):
        serializer = PerKeySerializer(evict_settled=False)
        await serializer.enqueue("q", tracked([], 1))
        await asyncio.sleep(0)

        assert serializer.keys() == ["q"]

    async def test_chain_continues_after_eviction(self):
        serializer = PerKeySerializer()
        log = []
        await serializer.enqueue("q", tracked(log, 1))
        await asyncio.sleep(0)
        await serializer.enqueue("q", tracked(log, 2))

        assert log == [("start", 1), ("end", 1), ("start", 2), ("end", 2)]

    async def test_join_waits_for_all_operations(self):
        serializer = PerKeySerializer()
        log = []
        for i in range(3):
            serializer.enqueue("q", tracked(log, i, delay=2))
        serializer.enqueue("r", tracked(log, "r", delay=5))

        assert serializer.pending_count() == 4
        await serializer.join()

        assert serializer.pending_count() == 0
        assert len(log) == 8

    async def test_cancel_all(self):
        serializer = PerKeySerializer()
        gate = asyncio.Event()

        async def blocked():
            await gate.wait()

        first = serializer.enqueue("q", blocked)
        second = serializer.enqueue("q", blocked)
        await asyncio.sleep(0)

        assert serializer.cancel_all() == 2
        await asyncio.gather(first, second, return_exceptions=True)
        assert first.cancelled()
        assert second.cancelled()
