from __future__ import annotations

import asyncio

import pytest

from src.pipeline.queue import InferenceQueue, InferenceTimeout


def test_queue_runs_one_call_at_a_time_in_submission_order() -> None:
    queue = InferenceQueue()
    order: list[int] = []
    active = {"now": 0, "peak": 0}

    async def call(value: int) -> int:
        active["now"] += 1
        active["peak"] = max(active["peak"], active["now"])
        await asyncio.sleep(0.01)
        order.append(value)
        active["now"] -= 1
        return value * 10

    async def scenario() -> list[int]:
        return list(await asyncio.gather(*(queue.submit(call, i) for i in range(5))))

    assert asyncio.run(scenario()) == [0, 10, 20, 30, 40]
    assert order == [0, 1, 2, 3, 4]
    assert active["peak"] == 1


def test_queue_timeout_and_errors_reach_the_caller() -> None:
    queue = InferenceQueue(timeout_sec=0.05)

    async def slow() -> str:
        await asyncio.sleep(1)
        return "late"

    async def broken() -> str:
        raise ValueError("bad image")

    async def fine() -> str:
        return "ok"

    async def scenario() -> None:
        with pytest.raises(InferenceTimeout):
            await queue.submit(slow)
        with pytest.raises(ValueError):
            await queue.submit(broken)
        assert await queue.submit(fine) == "ok"
        assert queue.in_flight == 0
        assert queue.pending == 0

    asyncio.run(scenario())
