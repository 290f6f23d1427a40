"""Auto-return: refresh ``lastActivity`` on idle top-tier promotions.

Promotion III and IV scripts are kept near the front of activity-sorted
listings by touching them once they have been idle past their tier's
threshold.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import SCRIPTS
from scriptvoid.timeutils import parse_datetime


class AutoReturnJob(BatchJob):
    name = "auto-return"
    description = "Return idle Promotion III/IV scripts to the front"
    collection = SCRIPTS
    counter_names = ("updated", "promotionIIIUpdated", "promotionIVUpdated")

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.auto_return_batch_size

    def _thresholds(self, now: datetime) -> dict[str, datetime]:
        policy = self.settings.auto_return
        return {
            "III": now - timedelta(hours=policy.tier3_idle_hours),
            "IV": now - timedelta(hours=policy.tier4_idle_hours),
        }

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {
            "$or": [
                {"promotionTier": tier, "promotionActive": True, "lastActivity": {"$lt": cutoff}}
                for tier, cutoff in self._thresholds(now).items()
            ]
        }

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        tier = doc.get("promotionTier")
        cutoff = self._thresholds(ctx.now).get(tier)
        last_activity = parse_datetime(doc.get("lastActivity"))
        if cutoff is None or doc.get("promotionActive") is not True:
            return None
        if last_activity is None or last_activity >= cutoff:
            return None

        plan = MutationPlan()
        plan.add(SCRIPTS, Mutation.update({"_id": doc["_id"]}, {"lastActivity": ctx.now}))
        plan.tally("updated")
        plan.tally(f"promotion{tier}Updated")
        return plan
