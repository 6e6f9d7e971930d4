# src/atlas_os/tasks/task_scheduler.py

from __future__ import annotations

"""
Background sweeper.

A small polling loop that runs TaskProcessor.background_sweep in a worker
thread (the processor does blocking SQLite + HTTP work) every interval.
To stop it, cancel the coroutine/task.
"""

import asyncio
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class SweepRunner(Protocol):
    def background_sweep(self): ...


async def run_task_scheduler(
        processor: SweepRunner,
        *,
        interval_seconds: float = 60.0,
) -> None:
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        try:
            summary = await asyncio.to_thread(processor.background_sweep)
            processed = getattr(summary, "processed", 0)
            skipped = getattr(summary, "skipped", 0)
            if processed or skipped:
                logger.info("Background sweep: processed=%s skipped=%s", processed, skipped)
        except Exception:
            logger.exception("background_sweep failed")

        await asyncio.sleep(sleep_s)
