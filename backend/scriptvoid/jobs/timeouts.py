"""Lift moderation timeouts whose end time has passed."""

from datetime import datetime
from typing import Any, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import USERS
from scriptvoid.timeutils import parse_datetime

TIMEOUT_FIELDS = (
    "isTimeouted",
    "timeoutEnd",
    "timeoutReason",
    "timeoutAt",
    "timeoutDuration",
    "timeoutDurationUnit",
)


class TimeoutExpiryJob(BatchJob):
    name = "process-timeouts"
    description = "Clear expired user timeouts"
    collection = USERS
    counter_names = ("updated",)

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.timeout_batch_size

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {"isTimeouted": True, "timeoutEnd": {"$lt": now}}

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        timeout_end = parse_datetime(doc.get("timeoutEnd"))
        if timeout_end is None or timeout_end >= ctx.now:
            return None

        plan = MutationPlan()
        plan.add(USERS, Mutation.update({"_id": doc["_id"]}, unset_fields=TIMEOUT_FIELDS))
        plan.tally("updated")
        return plan
