"""Per-user aggregate stats recomputed from the scripts each user owns.

These totals are what the leaderboard rebuild ranks on. Totals are
recomputed from scratch, never incremented.
"""

from datetime import datetime
from typing import Any, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import SCRIPTS, USERS


def owner_filter(user: dict[str, Any]) -> dict[str, Any]:
    """Scripts may reference their owner by user id, username, or legacy ownerId."""
    username = user.get("username")
    clauses: list[dict[str, Any]] = [{"ownerUserId": str(user["_id"])}]
    if username:
        clauses.append({"ownerId": username})
        clauses.append({"ownerUsername": username})
    return {"$or": clauses}


def _number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return value


class UserStatsJob(BatchJob):
    name = "update-user-stats"
    description = "Recompute user script/view/point totals"
    collection = USERS
    sort = [("_id", 1)]
    counter_names = ("updated",)

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.user_stats_batch_size

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {}

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        scripts = await ctx.store.collection(SCRIPTS).find(
            owner_filter(doc), projection={"views": 1, "points": 1}
        )
        stats = {
            "totalScripts": len(scripts),
            "totalViews": sum(_number(s.get("views")) for s in scripts),
            "totalPoints": sum(_number(s.get("points")) for s in scripts),
            "lastStatsUpdate": ctx.now,
        }

        plan = MutationPlan()
        plan.add(USERS, Mutation.update({"_id": doc["_id"]}, stats))
        plan.tally("updated")
        return plan
