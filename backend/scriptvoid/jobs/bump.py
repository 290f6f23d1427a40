"""Bump expiry: clear the boosted flag once ``bumpExpire`` has passed."""

from datetime import datetime
from typing import Any, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import SCRIPTS
from scriptvoid.timeutils import to_js_iso


class BumpExpiryJob(BatchJob):
    name = "bumpdecay"
    description = "Expire script bumps"
    collection = SCRIPTS
    counter_names = ("updated",)

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.bump_batch_size

    def build_filter(self, now: datetime) -> dict[str, Any]:
        # bumpExpire is an ISO string written by the web tier; compared as text.
        return {
            "isBumped": True,
            "bumpExpire": {"$type": "string", "$ne": "", "$lte": to_js_iso(now)},
        }

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        expire = doc.get("bumpExpire")
        if doc.get("isBumped") is not True or not isinstance(expire, str) or not expire:
            return None
        if expire > to_js_iso(ctx.now):
            return None

        plan = MutationPlan()
        plan.add(SCRIPTS, Mutation.update({"_id": doc["_id"]}, {"isBumped": False, "bumpExpire": ""}))
        plan.tally("updated")
        return plan
