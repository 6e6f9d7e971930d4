# tests/test_task_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from atlas_os.tasks.processor import SweepSummary
from atlas_os.tasks.task_scheduler import run_task_scheduler


class CountingProcessor:
    def __init__(self, *, fail_first: bool = False) -> None:
        self.calls = 0
        self.fail_first = fail_first

    def background_sweep(self) -> SweepSummary:
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("db locked")
        return SweepSummary(processed=1, skipped=0)


@pytest.mark.asyncio
async def test_scheduler_sweeps_until_cancelled() -> None:
    processor = CountingProcessor()
    runner = asyncio.create_task(run_task_scheduler(processor, interval_seconds=0.01))

    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert processor.calls >= 2


@pytest.mark.asyncio
async def test_scheduler_survives_a_failing_sweep() -> None:
    processor = CountingProcessor(fail_first=True)
    runner = asyncio.create_task(run_task_scheduler(processor, interval_seconds=0.01))

    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert processor.calls >= 2
