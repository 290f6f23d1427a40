"""Backfill promo code fields and reset epoch-zero timestamps.

Codes created before these fields existed lack ``codeType`` or
``description``, and some carry ``createdAt``/``usedAt`` values near the
epoch. Anything before 2001-09-09 (1e12 ms) is treated as unset.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import CODES
from scriptvoid.timeutils import parse_datetime, to_epoch_ms

MIN_VALID_EPOCH_MS = 1_000_000_000_000
DEFAULT_CODE_TYPE = "promo"


def _is_bogus(value: Any) -> bool:
    parsed = parse_datetime(value)
    return parsed is not None and to_epoch_ms(parsed) < MIN_VALID_EPOCH_MS


class PromoCodeCleanupJob(BatchJob):
    name = "promo-codes-cleanup"
    description = "Backfill missing promo code fields"
    collection = CODES
    sort = [("_id", 1)]
    counter_names = ("updated",)

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.promo_cleanup_batch_size

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {
            "$or": [
                {"createdAt": {"$exists": False}},
                {"createdAt": None},
                {"createdAt": {"$lt": datetime(2001, 1, 1, tzinfo=timezone.utc)}},
                {"codeType": {"$exists": False}},
                {"description": {"$exists": False}},
            ]
        }

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        fields: dict[str, Any] = {}

        created_at = doc.get("createdAt")
        if not created_at or _is_bogus(created_at):
            fields["createdAt"] = ctx.now
        if not doc.get("codeType"):
            fields["codeType"] = DEFAULT_CODE_TYPE
        if not doc.get("description"):
            fields["description"] = f"Code - Tier {doc.get('tier')}"
        if doc.get("usedAt") and _is_bogus(doc["usedAt"]):
            fields["usedAt"] = None
            fields["active"] = False

        if not fields:
            return None
        plan = MutationPlan()
        plan.add(CODES, Mutation.update({"_id": doc["_id"]}, fields))
        plan.tally("updated")
        return plan
