"""Bounded worker pool for section synthesis."""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from audio_export.jobs.models import Section

logger = logging.getLogger(__name__)

SectionWorker = Callable[[Section], Awaitable[Path]]
SettledCallback = Callable[[Section, Optional[BaseException]], Awaitable[None]]


@dataclass
class GateOutcome:
    """Result of running every section through the gate.

    ``results`` is indexed by ``Section.order``; a slot stays None when its
    section failed or was never admitted.
    """
    results: List[Optional[Path]]
    error: Optional[BaseException] = None
    failed_section: Optional[Section] = None
    completed: int = 0
    skipped: List[Section] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class ConcurrencyGate:
    """Runs at most ``limit`` section tasks at once.

    A fixed set of consumers pull sections from one shared queue. After the
    first failure the gate stops handing out sections; tasks already running
    are left to finish.
    """

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError(f"Concurrency limit must be >= 1, got {limit}")
        self.limit = limit
        self.in_flight = 0
        self.peak_in_flight = 0
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def run(
        self,
        sections: Sequence[Section],
        worker: SectionWorker,
        on_settled: Optional[SettledCallback] = None,
    ) -> GateOutcome:
        outcome = GateOutcome(results=[None] * len(sections))
        queue: asyncio.Queue = asyncio.Queue()
        for section in sections:
            queue.put_nowait(section)

        async def consume(section: Section) -> None:
            while True:
                self.in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
                error: Optional[BaseException] = None
                try:
                    outcome.results[section.order] = await worker(section)
                    outcome.completed += 1
                except Exception as exc:
                    error = exc
                    if outcome.error is None:
                        outcome.error = exc
                        outcome.failed_section = section
                    self._aborted = True
                    logger.error("Section %s failed, no further sections will start: %s", section.label, exc)
                finally:
                    self.in_flight -= 1

                if on_settled is not None:
                    await on_settled(section, error)

                if self._aborted:
                    return
                try:
                    section = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

        # The first min(limit, N) sections are admitted before any consumer runs.
        initial = [queue.get_nowait() for _ in range(min(self.limit, len(sections)))]
        consumers = [asyncio.create_task(consume(section)) for section in initial]
        try:
            await asyncio.gather(*consumers)
        except asyncio.CancelledError:
            for task in consumers:
                task.cancel()
            await asyncio.gather(*consumers, return_exceptions=True)
            raise

        while not queue.empty():
            outcome.skipped.append(queue.get_nowait())
        return outcome
