"""Generic time-boxed, resumable batch processor.

One ``process()`` call is one bounded unit of work:

1. count the documents matching the filter (a point-in-time snapshot)
2. compute the cursor for the requested batch index
3. fetch exactly one page
4. run the transform per document, checking the time budget before each
5. apply the merged plan, one bulk write per collection
6. report counts, timing and the resumption cursor

Callers persist ``next_batch`` and resubmit it to continue. Documents inserted
or deleted between calls can shift page windows, so processing is
at-least-once only under a stable count; every mutation is idempotent so
retrying from the same or an earlier batch is always safe.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Sequence

from scriptvoid.batch.budget import TimeBudget, Timer
from scriptvoid.batch.cursor import BatchCursor
from scriptvoid.batch.exceptions import MutationApplyError
from scriptvoid.batch.mutations import MutationPlan
from scriptvoid.batch.results import BatchResult, WriteCounts

if TYPE_CHECKING:
    from scriptvoid.storage.collections import DocumentStore, Sort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchContext:
    """What a transform sees besides the document itself."""

    job: str
    store: "DocumentStore"
    now: datetime
    cursor: BatchCursor
    # Per-call lookup cache, discarded with the page.
    scratch: dict[str, Any] = field(default_factory=dict)


Transform = Callable[[dict[str, Any], BatchContext], Awaitable[Optional[MutationPlan]]]


class BatchProcessor:
    """Runs one page of a job against a document store."""

    def __init__(
        self,
        store: "DocumentStore",
        max_execution_ms: int = 8000,
        timer: Timer = time.monotonic,
    ):
        self.store = store
        self.max_execution_ms = max_execution_ms
        self._timer = timer

    async def process(
        self,
        *,
        job: str,
        collection: str,
        filter: dict[str, Any],
        transform: Transform,
        now: datetime,
        page_size: int,
        batch_index: int = 0,
        sort: Optional["Sort"] = None,
        apply_order: Sequence[str] = (),
    ) -> BatchResult:
        budget = TimeBudget(self.max_execution_ms, self._timer).start()
        source = self.store.collection(collection)

        total = await source.count(filter)
        cursor = BatchCursor(batch_index=batch_index, page_size=page_size, total_matching=total)
        page = await source.find(filter, sort=sort, skip=cursor.skip, limit=cursor.limit)

        ctx = BatchContext(job=job, store=self.store, now=now, cursor=cursor)
        plan = MutationPlan(order=apply_order)
        truncated = False
        transform_error: Optional[Exception] = None

        for index, doc in enumerate(page):
            if budget.exceeded():
                truncated = True
                logger.info(
                    f"{job}: time budget of {self.max_execution_ms}ms exceeded after "
                    f"{index}/{len(page)} documents in batch {batch_index}"
                )
                break
            try:
                doc_plan = await transform(doc, ctx)
            except Exception as e:
                # The failing document's plan is dropped; earlier documents are still applied.
                logger.exception(f"{job}: transform failed on document {doc.get('_id')!r}")
                transform_error = e
                break
            if doc_plan:
                plan.extend(doc_plan)

        writes, apply_error = await self._apply(plan)

        result = BatchResult(
            job=job,
            batch=batch_index,
            batch_size=page_size,
            total_matching=total,
            total_batches=cursor.total_batches,
            progress=cursor.progress_percent,
            has_more=cursor.has_more,
            next_batch=cursor.next_batch_index,
            processed=len(page),
            counters=dict(plan.tallies),
            truncated=truncated,
            writes=writes,
        )

        error = apply_error or transform_error
        if error is not None:
            result.success = False
            result.error = f"Failed to process {job}"
            result.details = str(error)

        result.execution_time = budget.elapsed_ms
        return result

    async def _apply(self, plan: MutationPlan) -> tuple[WriteCounts, Optional[MutationApplyError]]:
        """Write each collection group in order; stop at the first failed group."""
        writes = WriteCounts()
        for name, mutations in plan.groups():
            try:
                writes = writes + await self.store.collection(name).bulk_apply(mutations)
            except MutationApplyError as e:
                writes = writes + e.applied
                return writes, e
        return writes, None
