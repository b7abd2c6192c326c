"""Bounded, staggered execution of slide generation jobs.

A fixed pool of workers pulls slide indices from a shared FIFO queue. Each
slide waits until its scheduled start offset, ``min(index * stride, cap)``,
measured from pipeline start (a slide dequeued late is not delayed again),
then runs its job to completion. Every result slot is written exactly once by
the worker that dequeued it; completion may arrive out of slide order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from core.config import Settings
from services.ai.backend import InferenceBackend
from services.generation.job import GenerationJob, JobOptions, SlideResult
from services.streaming.delta_parsers import DeltaEvent


logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Receiver for orchestrator progress; pushes may interleave across slides."""

    def delta(self, event: DeltaEvent) -> None: ...

    def slide_completed(self, result: SlideResult, completed: int, total: int) -> None: ...


class SlotAlreadyWrittenError(RuntimeError):
    """A second write to a slide's result slot; indicates a scheduling bug."""


def compute_start_delay_ms(index: int, stride_ms: int, cap_ms: int) -> int:
    return min(index * stride_ms, cap_ms)


def compute_concurrency(max_workers: int, slide_count: int) -> int:
    if slide_count <= 0:
        return 0
    return max(1, min(max_workers, slide_count))


@dataclass(frozen=True, slots=True)
class OrchestratorOptions:
    max_workers: int = 10
    start_delay_ms: int = 40
    max_start_delay_ms: int = 400
    job: JobOptions = field(default_factory=JobOptions)

    @classmethod
    def from_settings(cls, settings: Settings) -> OrchestratorOptions:
        return cls(
            max_workers=settings.MAX_STREAM_SLIDE_CONCURRENCY,
            start_delay_ms=settings.PRIORITY_START_DELAY_MS,
            max_start_delay_ms=settings.MAX_PRIORITY_START_DELAY_MS,
            job=JobOptions.from_settings(settings),
        )


class SlideOrchestrator:
    def __init__(
        self,
        backend: InferenceBackend,
        sink: EventSink,
        options: OrchestratorOptions | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.sink = sink
        self.options = options or OrchestratorOptions()
        self._sleep = sleep
        self._clock = clock
        # slide index -> name of the worker that wrote its result, for the last run
        self.writers: dict[int, str] = {}

    async def run(self, jobs: list[GenerationJob]) -> list[SlideResult]:
        """Run every job and return results in slide order.

        Cancelling the task running this coroutine cancels all workers at
        their next suspension point.
        """
        self.writers = {}
        total = len(jobs)
        results: list[SlideResult | None] = [None] * total
        queue: asyncio.Queue[int] = asyncio.Queue()
        for index in range(total):
            queue.put_nowait(index)

        started_at = self._clock()
        completed = 0

        async def worker(name: str) -> None:
            nonlocal completed
            while True:
                try:
                    index = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await self._wait_for_start(index, started_at)
                result = await jobs[index].run(
                    self.backend, self.sink.delta, self.options.job
                )
                self._store(results, index, result, name)
                completed += 1
                self.sink.slide_completed(result, completed, total)

        concurrency = compute_concurrency(self.options.max_workers, total)
        logger.info("Generating %d slides with %d workers", total, concurrency)
        async with asyncio.TaskGroup() as group:
            for n in range(concurrency):
                group.create_task(worker(f"slide-worker-{n}"), name=f"slide-worker-{n}")

        return [result for result in results if result is not None]

    async def _wait_for_start(self, index: int, started_at: float) -> None:
        offset = (
            compute_start_delay_ms(
                index, self.options.start_delay_ms, self.options.max_start_delay_ms
            )
            / 1000.0
        )
        remaining = started_at + offset - self._clock()
        if remaining > 0:
            await self._sleep(remaining)

    def _store(
        self,
        results: list[SlideResult | None],
        index: int,
        result: SlideResult,
        writer: str,
    ) -> None:
        if index in self.writers:
            raise SlotAlreadyWrittenError(
                f"slide {index} already written by {self.writers[index]}"
            )
        self.writers[index] = writer
        results[index] = result
