"""Batch cursor: pure pagination arithmetic for one resumable batch call."""

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, computed_field, model_validator


class BatchCursor(BaseModel):
    """Skip/limit window for ``batch_index`` over a snapshot of ``total_matching`` docs.

    The total is a point-in-time count taken at the start of the call. It is
    not re-verified between calls, so writes between calls can shift which
    documents land in a given window.
    """

    model_config = ConfigDict(frozen=True)

    batch_index: int
    page_size: int
    total_matching: int

    @model_validator(mode="after")
    def _check_bounds(self) -> "BatchCursor":
        if self.batch_index < 0:
            raise ValueError(f"batch_index must be >= 0, got {self.batch_index}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")
        if self.total_matching < 0:
            raise ValueError(f"total_matching must be >= 0, got {self.total_matching}")
        return self

    @computed_field
    @property
    def skip(self) -> int:
        return self.batch_index * self.page_size

    @computed_field
    @property
    def limit(self) -> int:
        return self.page_size

    @computed_field
    @property
    def total_batches(self) -> int:
        return math.ceil(self.total_matching / self.page_size)

    @computed_field
    @property
    def has_more(self) -> bool:
        return (self.batch_index + 1) * self.page_size < self.total_matching

    @computed_field
    @property
    def next_batch_index(self) -> Optional[int]:
        return self.batch_index + 1 if self.has_more else None

    @computed_field
    @property
    def progress_percent(self) -> float:
        # An empty snapshot is complete, not a division by zero.
        if self.total_matching == 0:
            return 100.0
        covered = (self.batch_index + 1) * self.page_size
        progress = min(100.0, covered / self.total_matching * 100)
        return round(progress, 2)
