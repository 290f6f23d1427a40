"""Ranking multiplier per script.

The multiplier is the product of four factors: freshness by age, promotion
tier, a verified owner, and an active bump. Rounded to three decimals.
Owner verification is mirrored onto the script as ``ownerVerified`` and
``isVerified``.
"""

import math
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from bson import ObjectId

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import SCRIPTS, USERS
from scriptvoid.timeutils import parse_datetime

# (max age, multiplier); the first window the age fits in wins.
FRESHNESS_WINDOWS = (
    (timedelta(hours=1), 2.0),
    (timedelta(days=1), 1.6),
    (timedelta(days=3), 1.4),
    (timedelta(days=7), 1.3),
    (timedelta(days=14), 1.15),
    (timedelta(days=30), 1.1),
    (timedelta(days=90), 1.0),
)
STALE_MULTIPLIER = 0.9

PROMOTION_BONUS = {"I": 0.2, "II": 0.35, "III": 0.5, "IV": 0.7}
BUMP_BONUS = {"I": 0.10, "II": 0.15, "III": 0.20, "IV": 0.25}
DEFAULT_BUMP_BONUS = 0.05
VERIFIED_BONUS = 0.4

_NUMERIC_TIERS = {1: "I", 2: "II", 3: "III", 4: "IV"}


def freshness_multiplier(created_at: Any, now: datetime) -> float:
    created = parse_datetime(created_at)
    if created is None:
        return 1.0
    age = now - created
    for max_age, multiplier in FRESHNESS_WINDOWS:
        if age <= max_age:
            return multiplier
    return STALE_MULTIPLIER


def _tier_numeral(tier: Any) -> Optional[str]:
    """Normalize ``"III"``, ``"Promotion III"`` and ``3`` to ``"III"``."""
    if isinstance(tier, bool):
        return None
    if isinstance(tier, int):
        return _NUMERIC_TIERS.get(tier)
    if isinstance(tier, str):
        numeral = tier[len("Promotion "):] if tier.startswith("Promotion ") else tier
        return numeral if numeral in PROMOTION_BONUS else None
    return None


def compute_multiplier(script: dict[str, Any], owner_verified: bool, now: datetime) -> float:
    freshness = freshness_multiplier(script.get("createdAt"), now)

    promotion = 0.0
    tier = script.get("promotionTier")
    # Numeric tiers only count toward the bump bonus.
    if script.get("promotionActive") and isinstance(tier, str):
        promotion = PROMOTION_BONUS.get(_tier_numeral(tier), 0.0)

    verification = VERIFIED_BONUS if owner_verified else 0.0

    bump = 0.0
    if script.get("isBumped"):
        bump = BUMP_BONUS.get(_tier_numeral(tier), DEFAULT_BUMP_BONUS)

    value = freshness * (1 + promotion) * (1 + verification) * (1 + bump)
    return math.floor(value * 1000 + 0.5) / 1000


def _exact_username(name: str) -> dict[str, Any]:
    return {"username": {"$regex": f"^{re.escape(name)}$", "$options": "i"}}


def verified_owner_filter(script: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Query for the script's owner among verified users, or None if it names no owner."""
    owner_user_id = script.get("ownerUserId")
    if isinstance(owner_user_id, str) and len(owner_user_id) == 24:
        clauses: list[dict[str, Any]] = []
        if ObjectId.is_valid(owner_user_id):
            clauses.append({"_id": ObjectId(owner_user_id)})
        clauses.append({"_id": owner_user_id})
        return {"$or": clauses, "verified": True}

    clauses = [
        _exact_username(name)
        for name in (script.get("ownerId"), script.get("ownerUsername"))
        if isinstance(name, str) and name
    ]
    if not clauses:
        return None
    return {"$or": clauses, "verified": True}


def _owner_key(script: dict[str, Any]) -> Any:
    return script.get("ownerUserId") or script.get("ownerId") or script.get("ownerUsername")


class MultiplierJob(BatchJob):
    name = "update-multipliers"
    description = "Recompute script ranking multipliers and owner verification"
    collection = SCRIPTS
    sort = [("_id", 1)]
    counter_names = ("updated", "verifiedUpdated", "verifiedCount", "unverifiedCount")

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.multiplier_batch_size

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {}

    async def _owner_verified(self, script: dict[str, Any], ctx: BatchContext) -> bool:
        owners = ctx.scratch.setdefault("owners", {})
        key = _owner_key(script)
        if key in owners:
            return owners[key]

        query = verified_owner_filter(script)
        verified = False
        if query is not None:
            found = await ctx.store.collection(USERS).find(query, limit=1, projection={"_id": 1})
            verified = bool(found)
        owners[key] = verified
        return verified

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        verified = await self._owner_verified(doc, ctx)
        multiplier = compute_multiplier(doc, verified, ctx.now)

        plan = MutationPlan()
        plan.tally("verifiedCount" if verified else "unverifiedCount")

        verification_changed = doc.get("ownerVerified") is not verified or doc.get("isVerified") is not verified
        if verification_changed or doc.get("multiplier") != multiplier:
            plan.add(
                SCRIPTS,
                Mutation.update(
                    {"_id": doc["_id"]},
                    {"ownerVerified": verified, "isVerified": verified, "multiplier": multiplier},
                ),
            )
            plan.tally("updated")
            if verification_changed and verified:
                plan.tally("verifiedUpdated")
        return plan
