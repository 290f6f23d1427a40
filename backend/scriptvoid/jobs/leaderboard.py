"""Leaderboard materialized view: full rebuild job and the read path.

The rebuild ranks every user by ``totalViews`` and upserts the top-N into the
``leaderboard`` collection, then prunes every entry whose username fell out
(upsert-then-prune-by-exclusion). It is not paginated: a partial rebuild
would leave positions that are not dense.

The read path's fallback (used only while the view is empty) ranks by
``(totalPoints, totalViews, totalScripts)`` instead. The two orderings
disagree; they are kept as they are until the intended ranking is confirmed.
"""

import logging
import math
import time
from datetime import datetime
from typing import Any, Optional

import logfire

from scriptvoid.batch.budget import Timer
from scriptvoid.batch.exceptions import MutationApplyError
from scriptvoid.batch.mutations import Mutation
from scriptvoid.batch.results import BatchResult, WriteCounts
from scriptvoid.config import Settings
from scriptvoid.jobs.base import Job
from scriptvoid.storage.cache import TTLCache, shared_cache
from scriptvoid.storage.collections import LEADERBOARD, USERS, DocumentStore
from scriptvoid.timeutils import Clock, utcnow

logger = logging.getLogger(__name__)

USER_PROJECTION = {
    "username": 1,
    "verified": 1,
    "totalViews": 1,
    "totalLikes": 1,
    "totalScripts": 1,
    "totalPoints": 1,
    "accountthumbnail": 1,
    "createdAt": 1,
}

STAMP_FIELDS = ("leaderboardPosition", "lastLeaderboardUpdate")

CACHE_PREFIX = "leaderboard"


def build_entry(user: dict[str, Any], position: int, now: datetime) -> dict[str, Any]:
    """Denormalized leaderboard entry for one ranked user."""
    return {
        "position": position,
        "username": user["username"],
        "verified": bool(user.get("verified", False)),
        "totalViews": user.get("totalViews") or 0,
        "totalLikes": user.get("totalLikes") or 0,
        "totalScripts": user.get("totalScripts") or 0,
        "totalPoints": user.get("totalPoints") or 0,
        "avatar": user.get("accountthumbnail") or "",
        "joinDate": user.get("createdAt"),
        "lastUpdated": now,
    }


class LeaderboardRebuildJob(Job):
    name = "update-leaderboard"
    description = "Rebuild the top-N leaderboard view"

    def __init__(
        self,
        settings: Settings,
        clock: Clock = utcnow,
        timer: Timer = time.monotonic,
        cache: TTLCache = shared_cache,
    ):
        super().__init__(settings, clock=clock, timer=timer)
        self.cache = cache

    async def run(
        self,
        store: DocumentStore,
        batch: int = 0,
        batch_size: Optional[int] = None,
    ) -> BatchResult:
        # batch/batch_size are accepted for a uniform call signature; the
        # rebuild always covers the whole user collection.
        started = self._timer()
        now = self._clock()
        size = self.settings.leaderboard.size
        sort_field = self.settings.leaderboard.sort_field

        with logfire.span("leaderboard rebuild", size=size, sort_field=sort_field):
            users = await store.collection(USERS).find(
                {}, sort=[(sort_field, -1)], projection=USER_PROJECTION
            )
            ranked = [u for u in users if u.get("username")]
            top = ranked[:size]

            entry_mutations: list[Mutation] = []
            stamp_mutations: list[Mutation] = []
            for position, user in enumerate(top, 1):
                entry_mutations.append(
                    Mutation.update(
                        {"username": user["username"]},
                        build_entry(user, position, now),
                        upsert=True,
                    )
                )
                stamp_mutations.append(
                    Mutation.update(
                        {"_id": user["_id"]},
                        {"leaderboardPosition": position, "lastLeaderboardUpdate": now},
                    )
                )

            top_names = [u["username"] for u in top]
            top_ids = [u["_id"] for u in top]
            entry_mutations.append(Mutation.delete_many({"username": {"$nin": top_names}}))
            stamp_mutations.append(
                Mutation.update_many(
                    {"_id": {"$nin": top_ids}, "leaderboardPosition": {"$exists": True}},
                    unset_fields=STAMP_FIELDS,
                )
            )

            result = BatchResult(
                job=self.name,
                batch=0,
                batch_size=len(users),
                total_matching=len(users),
                total_batches=1 if users else 0,
                processed=len(users),
                counters={
                    "leaderboardUsers": len(top),
                    "totalUsers": len(users),
                    "entriesPruned": 0,
                },
            )

            writes = WriteCounts()
            try:
                entry_writes = await store.collection(LEADERBOARD).bulk_apply(entry_mutations)
                writes = writes + entry_writes
                result.counters["entriesPruned"] = entry_writes.deleted
                writes = writes + await store.collection(USERS).bulk_apply(stamp_mutations)
            except MutationApplyError as e:
                writes = writes + e.applied
                result.success = False
                result.error = "Failed to update leaderboard"
                result.details = str(e)

            result.writes = writes
            if result.success:
                cleared = self.cache.clear_by_pattern(CACHE_PREFIX)
                logger.debug(f"Cleared {cleared} cached leaderboard pages")

        result.execution_time = int((self._timer() - started) * 1000)
        logger.info(
            f"{self.name}: {len(top)} ranked of {len(users)} users, "
            f"pruned {result.counters['entriesPruned']} in {result.execution_time}ms"
        )
        return result


async def read_leaderboard(
    store: DocumentStore,
    settings: Settings,
    page: int = 0,
    limit: Optional[int] = None,
    cache: TTLCache = shared_cache,
) -> dict[str, Any]:
    """One page of the leaderboard, cached for ``cache_ttl_seconds``."""
    config = settings.leaderboard
    page = max(0, page)
    limit = min(config.max_page_limit, max(1, limit or config.default_page_limit))
    skip = page * limit

    cache_key = f"{CACHE_PREFIX}:{page}:{limit}"
    cached = cache.get(cache_key)
    if cached is not None:
        return {**cached, "cached": True}

    view = store.collection(LEADERBOARD)
    total = await view.count({})
    if total > 0:
        rows = await view.find({}, sort=[("position", 1)], skip=skip, limit=limit)
        users = [_present(row, row.get("position")) for row in rows]
        source = "leaderboard-collection"
    else:
        fallback_filter = {"$or": [{"totalPoints": {"$gt": 0}}, {"totalViews": {"$gt": 0}}]}
        users_col = store.collection(USERS)
        total = await users_col.count(fallback_filter)
        rows = await users_col.find(
            fallback_filter,
            sort=[("totalPoints", -1), ("totalViews", -1), ("totalScripts", -1)],
            skip=skip,
            limit=limit,
            projection=USER_PROJECTION,
        )
        users = [_present(row, skip + i + 1) for i, row in enumerate(rows)]
        source = "user-collection-fallback"

    data = {
        "users": users,
        "pagination": {
            "page": page,
            "limit": limit,
            "totalUsers": total,
            "totalPages": math.ceil(total / limit),
        },
        "source": source,
    }
    cache.set(cache_key, data, ttl_seconds=config.cache_ttl_seconds)
    return {**data, "cached": False}


def _present(row: dict[str, Any], position: Optional[int]) -> dict[str, Any]:
    return {
        "username": row.get("username"),
        "verified": bool(row.get("verified", False)),
        "totalViews": row.get("totalViews") or 0,
        "totalLikes": row.get("totalLikes") or 0,
        "totalScripts": row.get("totalScripts") or 0,
        "totalPoints": row.get("totalPoints") or 0,
        "leaderboardPosition": position,
        "avatar": row.get("avatar") or row.get("accountthumbnail") or "",
        "joinDate": row.get("joinDate") or row.get("createdAt"),
        "lastUpdated": row.get("lastUpdated"),
    }
