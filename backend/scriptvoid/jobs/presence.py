"""Presence eviction and heartbeat writes for the ``online`` collection.

An entry is stale once ``now - lastPing`` exceeds the threshold (30s), so an
entry pinged exactly 30000ms ago is still online. Eviction and the online
counts share the same ``now``.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.batch.results import BatchResult
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import ONLINE, DocumentStore
from scriptvoid.timeutils import to_epoch_ms, utcnow


class PresenceEvictionJob(BatchJob):
    name = "presence-cleanup"
    description = "Evict stale online heartbeats"
    collection = ONLINE
    counter_names = ("cleanedUp",)

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.presence_batch_size

    def cutoff_ms(self, now: datetime) -> int:
        return to_epoch_ms(now) - self.settings.presence.stale_after_ms

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {"lastPing": {"$lt": self.cutoff_ms(now)}}

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        last_ping = doc.get("lastPing")
        if not isinstance(last_ping, (int, float)) or last_ping >= self.cutoff_ms(ctx.now):
            return None

        plan = MutationPlan()
        plan.add(ONLINE, Mutation.delete({"_id": doc["_id"]}))
        plan.tally("cleanedUp")
        return plan

    async def finalize(self, store: DocumentStore, now: datetime, result: BatchResult) -> None:
        online = store.collection(ONLINE)
        cutoff = self.cutoff_ms(now)
        result.counters["usersOnline"] = await online.count(
            {"type": "user", "lastPing": {"$gte": cutoff}}
        )
        result.counters["guestsOnline"] = await online.count(
            {"type": "guest", "lastPing": {"$gte": cutoff}}
        )


async def record_ping(
    store: DocumentStore,
    *,
    username: Optional[str] = None,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    action: str = "active",
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Upsert a heartbeat. Users are keyed by username or userId, guests by sessionId."""
    now = now or utcnow()
    entry_type: Literal["user", "guest"]
    if username:
        key, entry_type = {"username": username}, "user"
    elif user_id:
        key, entry_type = {"userId": user_id}, "user"
    elif session_id:
        key, entry_type = {"sessionId": session_id}, "guest"
    else:
        raise ValueError("username, user_id or session_id is required")

    fields = {
        **key,
        "lastPing": to_epoch_ms(now),
        "type": entry_type,
        "action": action,
        "updatedAt": now,
    }
    await store.collection(ONLINE).bulk_apply([Mutation.update(key, fields, upsert=True)])
    return fields
