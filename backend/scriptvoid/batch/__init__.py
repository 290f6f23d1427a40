"""Time-boxed, resumable batch-mutation engine."""

from .budget import TimeBudget
from .cursor import BatchCursor
from .exceptions import BatchJobError, MutationApplyError, StoreError, UnknownJobError
from .mutations import Mutation, MutationPlan
from .processor import BatchContext, BatchProcessor, Transform
from .results import BatchResult, WriteCounts

__all__ = [
    "TimeBudget",
    "BatchCursor",
    "BatchJobError",
    "MutationApplyError",
    "StoreError",
    "UnknownJobError",
    "Mutation",
    "MutationPlan",
    "BatchContext",
    "BatchProcessor",
    "Transform",
    "BatchResult",
    "WriteCounts",
]
