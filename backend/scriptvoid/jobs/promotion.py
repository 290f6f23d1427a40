"""Promotion expiry: deactivate expired codes and clear every script using them.

The code and its scripts live in different collections and are written by two
bulk calls in the same batch. Scripts are written first: if the script write
fails, the code stays active and the next run retries the whole cascade, so
a reader never finds an inactive code with a script still promoted under it.
Read paths must still check the code's own ``active`` flag rather than trust
``promotionActive`` alone.
"""

from datetime import datetime
from typing import Any, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import CODES, SCRIPTS
from scriptvoid.timeutils import parse_datetime

CLEARED_PROMOTION = {
    "promotionActive": False,
    "promotionTier": None,
    "promotionCode": None,
    "promotionExpiresAt": None,
}


class PromotionExpiryJob(BatchJob):
    name = "promotion-decay"
    description = "Expire promo codes and cascade to scripts"
    collection = CODES
    apply_order = (SCRIPTS, CODES)
    counter_names = ("codesUpdated", "scriptsUpdated")

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.promotion_batch_size

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {"active": True, "expiresAt": {"$type": "date", "$lte": now}}

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        expires_at = parse_datetime(doc.get("expiresAt"))
        if doc.get("active") is not True or expires_at is None or expires_at > ctx.now:
            return None

        plan = MutationPlan(order=self.apply_order)

        code = doc.get("code")
        if code:
            scripts = await ctx.store.collection(SCRIPTS).find(
                {"promotionCode": code, "promotionActive": True},
                projection={"_id": 1},
            )
            for script in scripts:
                plan.add(SCRIPTS, Mutation.update({"_id": script["_id"]}, CLEARED_PROMOTION))
            plan.tally("scriptsUpdated", len(scripts))

        plan.add(CODES, Mutation.update({"_id": doc["_id"]}, {"active": False, "expired": True}))
        plan.tally("codesUpdated")
        return plan
