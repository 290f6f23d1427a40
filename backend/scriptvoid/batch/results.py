"""Result models returned by batch calls."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class WriteCounts(BaseModel):
    """Counts reported by the store for applied bulk writes."""

    matched: int = 0
    modified: int = 0
    upserted: int = 0
    deleted: int = 0

    def __add__(self, other: "WriteCounts") -> "WriteCounts":
        return WriteCounts(
            matched=self.matched + other.matched,
            modified=self.modified + other.modified,
            upserted=self.upserted + other.upserted,
            deleted=self.deleted + other.deleted,
        )


class BatchResult(BaseModel):
    """Outcome of one bounded batch call, including the resumption cursor."""

    job: str
    success: bool = True
    batch: int = 0
    batch_size: int = 0
    total_matching: int = 0
    total_batches: int = 0
    progress: float = 100.0
    has_more: bool = False
    next_batch: Optional[int] = None
    processed: int = 0
    counters: dict[str, int] = Field(default_factory=dict)
    truncated: bool = False
    writes: WriteCounts = Field(default_factory=WriteCounts)
    execution_time: int = 0
    error: Optional[str] = None
    details: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        """JSON body in the shape the cron callers expect."""
        if not self.success:
            body: dict[str, Any] = {
                "error": self.error or f"Failed to process {self.job}",
                "details": self.details,
                "batch": self.batch,
                "processed": self.processed,
            }
            body.update(self.counters)
            body["applied"] = self.writes.model_dump()
            body["executionTime"] = self.execution_time
            return body

        body = {
            "success": True,
            "job": self.job,
            "batch": self.batch,
            "batchSize": self.batch_size,
            "totalMatching": self.total_matching,
            "totalBatches": self.total_batches,
            "progress": self.progress,
            "hasMore": self.has_more,
            "nextBatch": self.next_batch,
            "processed": self.processed,
        }
        body.update(self.counters)
        body["truncated"] = self.truncated
        body["executionTime"] = self.execution_time
        return body
