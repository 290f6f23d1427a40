from datetime import timedelta
from typing import Optional

from scriptvoid.batch import BatchResult, StoreError
from scriptvoid.jobs import Job, JobRegistry, default_registry
from scriptvoid.orchestrator import run_all
from scriptvoid.storage.collections import CODES, SCRIPTS, USERS
from scriptvoid.timeutils import to_js_iso

from conftest import NOW


class RecordingJob(Job):
    def __init__(self, settings, name, calls, outcome="ok"):
        super().__init__(settings)
        self.name = name
        self.calls = calls
        self.outcome = outcome

    async def run(self, store, batch: int = 0, batch_size: Optional[int] = None) -> BatchResult:
        self.calls.append((self.name, batch))
        if self.outcome == "raise":
            raise StoreError("connection reset", job=self.name)
        return BatchResult(job=self.name, success=self.outcome == "ok", details=None)


async def test_runs_in_order_and_continues_past_failures(store, settings, clock, timer):
    calls = []
    registry = JobRegistry()
    registry.register(RecordingJob(settings, "first", calls))
    registry.register(RecordingJob(settings, "broken", calls, outcome="raise"))
    registry.register(RecordingJob(settings, "soft-fail", calls, outcome="fail"))
    registry.register(RecordingJob(settings, "last", calls))

    summary = await run_all(store, registry, inter_job_delay_ms=0, clock=clock, timer=timer)

    assert calls == [("first", 0), ("broken", 0), ("soft-fail", 0), ("last", 0)]
    assert (summary.total_jobs, summary.successful, summary.errors) == (4, 2, 2)
    assert [r.status for r in summary.results] == ["success", "error", "error", "success"]
    assert summary.results[1].error == "connection reset"
    assert summary.timestamp == NOW

    body = summary.to_response()
    assert body["summary"]["totalJobs"] == 4
    assert body["summary"]["errors"] == 2
    assert body["results"][0]["result"]["success"] is True


def test_default_registry_order(settings):
    assert default_registry(settings).names() == (
        "update-user-stats",
        "update-leaderboard",
        "process-timeouts",
        "auto-return",
        "bumpdecay",
        "decay",
        "promotion-decay",
        "update-multipliers",
        "promo-codes-cleanup",
        "presence-cleanup",
    )


async def test_full_pass_over_seeded_store(store, settings, clock, timer, cache):
    store.collection(USERS).insert({"_id": 1, "username": "alice"})
    store.collection(SCRIPTS).insert(
        {
            "_id": 10,
            "ownerUsername": "alice",
            "views": 40,
            "points": 100,
            "createdAt": NOW - timedelta(days=60),
            "isBumped": True,
            "bumpExpire": to_js_iso(NOW - timedelta(minutes=1)),
        }
    )
    store.collection(CODES).insert(
        {"_id": "c", "code": "X", "active": True, "expiresAt": NOW - timedelta(days=1)}
    )
    registry = default_registry(settings, clock=clock, timer=timer, cache=cache)

    summary = await run_all(store, registry, inter_job_delay_ms=0, clock=clock, timer=timer)

    assert summary.errors == 0
    assert summary.successful == 10
    # stats ran before the rebuild, so the board sees the fresh total
    entry = store.collection("leaderboard").find_one({"username": "alice"})
    assert entry["totalViews"] == 40
    script = store.collection(SCRIPTS).get(10)
    assert script["points"] == 25
    assert script["isBumped"] is False
    # multipliers ran after bump expiry, so no bump bonus is applied
    assert script["multiplier"] == 1.1
    assert script["ownerVerified"] is False
    assert store.collection(CODES).get("c")["active"] is False
    assert store.collection(CODES).get("c")["codeType"] == "promo"
