from scriptvoid.batch.results import WriteCounts


class BatchJobError(Exception):
    """Base exception for batch job errors."""

    def __init__(self, message: str, job: str | None = None):
        super().__init__(message)
        self.job = job


class UnknownJobError(BatchJobError):
    """No job registered under the requested name."""

    pass


class StoreError(BatchJobError):
    """Count or fetch against the document store failed."""

    pass


class MutationApplyError(BatchJobError):
    """Bulk write failed part-way.

    ``applied`` holds the write counts the store reported before the failure.
    """

    def __init__(
        self,
        message: str,
        collection: str,
        applied: WriteCounts | None = None,
        job: str | None = None,
    ):
        super().__init__(message, job=job)
        self.collection = collection
        self.applied = applied or WriteCounts()
