"""Run-all orchestration: every registered job once, sequentially."""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Literal, Optional

import logfire
from pydantic import BaseModel, Field

from scriptvoid.batch.budget import Timer
from scriptvoid.batch.results import BatchResult
from scriptvoid.jobs.base import JobRegistry
from scriptvoid.storage.collections import DocumentStore
from scriptvoid.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)


class JobRunRecord(BaseModel):
    """Outcome of one job inside a run-all pass."""

    job: str
    status: Literal["success", "error"]
    duration: int  # ms
    result: Optional[BatchResult] = None
    error: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"job": self.job, "status": self.status, "duration": self.duration}
        if self.result is not None:
            body["result"] = self.result.to_response()
        if self.error is not None:
            body["error"] = self.error
        return body


class RunAllSummary(BaseModel):
    total_jobs: int = 0
    successful: int = 0
    errors: int = 0
    total_duration: int = 0  # ms
    timestamp: datetime
    results: list[JobRunRecord] = Field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return {
            "message": "Cron job execution completed",
            "summary": {
                "totalJobs": self.total_jobs,
                "successful": self.successful,
                "errors": self.errors,
                "totalDuration": f"{self.total_duration}ms",
                "timestamp": self.timestamp.isoformat(),
            },
            "results": [r.to_response() for r in self.results],
        }


async def run_all(
    store: DocumentStore,
    registry: JobRegistry,
    inter_job_delay_ms: int = 100,
    clock: Clock = utcnow,
    timer: Timer = time.monotonic,
) -> RunAllSummary:
    """Run each job once from batch 0 with its default batch size.

    A failing job is recorded and the next job still runs; nothing is
    retried here. Jobs with more than one page left report ``hasMore`` and are
    drained by later ticks.
    """
    started = timer()
    records: list[JobRunRecord] = []
    jobs = list(registry)
    logger.info(f"Run-all starting: {', '.join(j.name for j in jobs)}")

    for index, job in enumerate(jobs):
        job_started = timer()
        with logfire.span("run-all job {job}", job=job.name):
            try:
                result = await job.run(store, batch=0)
                status = "success" if result.success else "error"
                records.append(
                    JobRunRecord(
                        job=job.name,
                        status=status,
                        duration=int((timer() - job_started) * 1000),
                        result=result,
                        error=None if result.success else result.details,
                    )
                )
                if not result.success:
                    logger.error(f"{job.name} failed: {result.details}")
            except Exception as e:
                logger.error(f"{job.name} failed: {e}")
                records.append(
                    JobRunRecord(
                        job=job.name,
                        status="error",
                        duration=int((timer() - job_started) * 1000),
                        error=str(e),
                    )
                )

        if index < len(jobs) - 1 and inter_job_delay_ms > 0:
            await asyncio.sleep(inter_job_delay_ms / 1000)

    successful = sum(1 for r in records if r.status == "success")
    summary = RunAllSummary(
        total_jobs=len(records),
        successful=successful,
        errors=len(records) - successful,
        total_duration=int((timer() - started) * 1000),
        timestamp=clock(),
        results=records,
    )
    logger.info(
        f"Run-all complete: {summary.successful}/{summary.total_jobs} succeeded "
        f"in {summary.total_duration}ms"
    )
    return summary
