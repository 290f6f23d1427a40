"""Job base classes and the job registry.

``Job`` is anything the orchestrator and the cron routes can invoke with a
batch index and size. ``BatchJob`` is the common case: a thin policy (filter
plus per-document transform) over the shared ``BatchProcessor``.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterator, Optional

import logfire

from scriptvoid.batch.budget import Timer
from scriptvoid.batch.exceptions import UnknownJobError
from scriptvoid.batch.mutations import MutationPlan
from scriptvoid.batch.processor import BatchContext, BatchProcessor
from scriptvoid.batch.results import BatchResult
from scriptvoid.config import Settings
from scriptvoid.storage.collections import DocumentStore, Sort
from scriptvoid.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)


class Job(ABC):
    """A named unit of periodic recomputation."""

    name: str = ""
    description: str = ""

    def __init__(
        self,
        settings: Settings,
        clock: Clock = utcnow,
        timer: Timer = time.monotonic,
    ):
        self.settings = settings
        self._clock = clock
        self._timer = timer

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.max_batch_size

    @abstractmethod
    async def run(
        self,
        store: DocumentStore,
        batch: int = 0,
        batch_size: Optional[int] = None,
    ) -> BatchResult:
        ...


class BatchJob(Job):
    """Paginated job: filter + transform executed one page per call."""

    collection: str = ""
    sort: Optional[Sort] = None
    # Collections written first when a transform touches several.
    apply_order: tuple[str, ...] = ()
    # Counters always present in the result, zero when nothing was staged.
    counter_names: tuple[str, ...] = ()

    @abstractmethod
    def build_filter(self, now: datetime) -> dict[str, Any]:
        ...

    @abstractmethod
    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        ...

    async def finalize(self, store: DocumentStore, now: datetime, result: BatchResult) -> None:
        """Hook run after a successful page, with the same ``now``."""
        return None

    async def run(
        self,
        store: DocumentStore,
        batch: int = 0,
        batch_size: Optional[int] = None,
    ) -> BatchResult:
        now = self._clock()
        size = batch_size or self.default_batch_size
        processor = BatchProcessor(
            store,
            max_execution_ms=self.settings.batch.max_execution_ms,
            timer=self._timer,
        )

        with logfire.span("batch job {job}", job=self.name, batch=batch, batch_size=size):
            result = await processor.process(
                job=self.name,
                collection=self.collection,
                filter=self.build_filter(now),
                transform=self.transform,
                now=now,
                page_size=size,
                batch_index=batch,
                sort=self.sort,
                apply_order=self.apply_order,
            )
            for counter in self.counter_names:
                result.counters.setdefault(counter, 0)
            if result.success:
                await self.finalize(store, now, result)

        logger.info(
            f"{self.name}: batch {result.batch}/{max(result.total_batches - 1, 0)} "
            f"processed={result.processed} counters={result.counters} "
            f"hasMore={result.has_more} in {result.execution_time}ms"
        )
        return result

    async def drain(
        self,
        store: DocumentStore,
        start: int = 0,
        batch_size: Optional[int] = None,
        max_batches: Optional[int] = None,
    ) -> list[BatchResult]:
        """Follow ``next_batch`` until the snapshot is exhausted or a call fails.

        For jobs whose filter excludes the documents they mutate (expiry
        jobs), the matching set shrinks as pages are applied; restarting
        from batch 0 on a later tick picks up anything skipped.
        """
        results: list[BatchResult] = []
        batch: Optional[int] = start
        while batch is not None:
            if max_batches is not None and len(results) >= max_batches:
                break
            result = await self.run(store, batch=batch, batch_size=batch_size)
            results.append(result)
            if not result.success:
                break
            batch = result.next_batch
        return results


class JobRegistry:
    """Registry mapping job names to job instances, in run-all order."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    def register(self, job: Job) -> None:
        if job.name in self._jobs:
            raise ValueError(f"Job '{job.name}' is already registered")
        self._jobs[job.name] = job

    def get(self, name: str) -> Job:
        try:
            return self._jobs[name]
        except KeyError:
            raise UnknownJobError(
                f"No job registered as '{name}'. Available: {sorted(self._jobs)}",
                job=name,
            ) from None

    def names(self) -> tuple[str, ...]:
        return tuple(self._jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, name: str) -> bool:
        return name in self._jobs
