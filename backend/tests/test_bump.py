from datetime import timedelta

from scriptvoid.jobs import BumpExpiryJob
from scriptvoid.storage.collections import SCRIPTS
from scriptvoid.timeutils import to_js_iso

from conftest import NOW


def test_js_iso_format():
    assert to_js_iso(NOW) == "2025-06-15T12:00:00.000Z"


async def test_expires_only_past_bumps(store, settings, clock, timer):
    scripts = store.collection(SCRIPTS)
    scripts.insert(
        {"_id": 1, "isBumped": True, "bumpExpire": to_js_iso(NOW - timedelta(hours=1))},
        {"_id": 2, "isBumped": True, "bumpExpire": to_js_iso(NOW)},
        {"_id": 3, "isBumped": True, "bumpExpire": to_js_iso(NOW + timedelta(hours=1))},
        {"_id": 4, "isBumped": True, "bumpExpire": ""},
        {"_id": 5, "isBumped": False, "bumpExpire": to_js_iso(NOW - timedelta(days=1))},
        {"_id": 6, "isBumped": True},
    )

    result = await BumpExpiryJob(settings, clock=clock, timer=timer).run(store)

    assert result.success is True
    assert result.total_matching == 2
    assert result.counters == {"updated": 2}
    for _id in (1, 2):
        assert scripts.get(_id)["isBumped"] is False
        assert scripts.get(_id)["bumpExpire"] == ""
    assert scripts.get(3)["isBumped"] is True
    assert scripts.get(4)["isBumped"] is True
    assert scripts.get(6)["isBumped"] is True


async def test_rerun_matches_nothing(store, settings, clock, timer):
    scripts = store.collection(SCRIPTS)
    scripts.insert({"_id": 1, "isBumped": True, "bumpExpire": to_js_iso(NOW - timedelta(minutes=5))})
    job = BumpExpiryJob(settings, clock=clock, timer=timer)

    await job.run(store)
    again = await job.run(store)

    assert again.total_matching == 0
    assert again.counters == {"updated": 0}
    assert again.progress == 100.0


async def test_drain_follows_next_batch(store, settings, clock, timer):
    scripts = store.collection(SCRIPTS)
    scripts.insert(
        *(
            {"_id": i, "isBumped": True, "bumpExpire": to_js_iso(NOW - timedelta(minutes=i + 1))}
            for i in range(5)
        )
    )
    job = BumpExpiryJob(settings, clock=clock, timer=timer)

    results = await job.drain(store, batch_size=2)

    # the filter excludes cleared scripts, so later windows shift past some
    # matches; a fresh drain from batch 0 always finishes the set
    assert all(r.success for r in results)
    while any(d["isBumped"] for d in scripts.docs):
        await job.drain(store, batch_size=2)
    assert sum(r.counters["updated"] for r in results) >= 2
    assert not any(d["isBumped"] for d in scripts.docs)
