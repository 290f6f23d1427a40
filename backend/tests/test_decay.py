from datetime import timedelta

from scriptvoid.jobs import DecayJob, decayed_points
from scriptvoid.storage.collections import SCRIPTS

from conftest import NOW


def test_decayed_points_two_periods():
    assert decayed_points(NOW - timedelta(days=60), 100, NOW) == 25


def test_decayed_points_inside_first_period():
    assert decayed_points(NOW - timedelta(days=29), 100, NOW) == 100


def test_decayed_points_floors_result():
    assert decayed_points(NOW - timedelta(days=30), 7, NOW) == 3


def test_decayed_points_skips_applied_periods():
    assert decayed_points(NOW - timedelta(days=95), 40, NOW, applied_periods=2) == 20


async def test_decay_job_updates_old_scripts(store, settings, clock, timer):
    scripts = store.collection(SCRIPTS)
    scripts.insert(
        {"_id": 1, "points": 100, "createdAt": NOW - timedelta(days=60)},
        {"_id": 2, "points": 100, "createdAt": NOW - timedelta(days=29)},
        {"_id": 3, "points": 100},
        {"_id": 4, "points": 80, "createdAt": (NOW - timedelta(days=31)).isoformat()},
    )

    result = await DecayJob(settings, clock=clock, timer=timer).run(store)

    assert result.success is True
    assert result.processed == 4
    assert result.counters == {"updated": 2, "decayed": 2, "totalDecayAmount": 115}
    assert scripts.get(1)["points"] == 25
    assert scripts.get(1)["decayPeriods"] == 2
    assert scripts.get(2)["points"] == 100
    assert scripts.get(3) == {"_id": 3, "points": 100}
    assert scripts.get(4)["points"] == 40


async def test_second_run_is_a_no_op(store, settings, clock, timer):
    scripts = store.collection(SCRIPTS)
    scripts.insert({"_id": 1, "points": 100, "createdAt": NOW - timedelta(days=60)})
    job = DecayJob(settings, clock=clock, timer=timer)

    await job.run(store)
    second = await job.run(store)

    assert second.success is True
    assert second.counters == {"updated": 0, "decayed": 0, "totalDecayAmount": 0}
    assert len(scripts.bulk_calls) == 1
    assert scripts.get(1)["points"] == 25


async def test_next_period_decays_once_more(store, settings, timer):
    scripts = store.collection(SCRIPTS)
    scripts.insert({"_id": 1, "points": 100, "createdAt": NOW - timedelta(days=60)})

    await DecayJob(settings, clock=lambda: NOW, timer=timer).run(store)
    later = NOW + timedelta(days=30)
    await DecayJob(settings, clock=lambda: later, timer=timer).run(store)

    assert scripts.get(1)["points"] == 12
    assert scripts.get(1)["decayPeriods"] == 3


async def test_non_numeric_points_count_as_zero(store, settings, clock, timer):
    scripts = store.collection(SCRIPTS)
    scripts.insert({"_id": 1, "points": "lots", "createdAt": NOW - timedelta(days=90)})

    result = await DecayJob(settings, clock=clock, timer=timer).run(store)

    assert result.counters["updated"] == 1
    assert result.counters["decayed"] == 0
    assert scripts.get(1)["points"] == 0


async def test_budget_truncation_resumes_from_next_batch(store, settings, clock):
    from conftest import FakeTimer

    scripts = store.collection(SCRIPTS)
    scripts.insert(
        *({"_id": i, "points": 64, "createdAt": NOW - timedelta(days=30)} for i in range(6))
    )
    # every timer read moves 3s forward: checks at 3s and 6s pass, 9s stops
    job = DecayJob(settings, clock=clock, timer=FakeTimer(step=3.0))

    result = await job.run(store, batch=0, batch_size=6)

    assert result.truncated is True
    assert result.processed == 6
    assert result.counters["updated"] == 2
    assert result.has_more is False

    # a later run from batch 0 covers the rest without re-decaying the first two
    retry = await DecayJob(settings, clock=clock, timer=FakeTimer()).run(store, batch=0, batch_size=6)
    assert retry.counters["updated"] == 4
    assert all(d["points"] == 32 for d in scripts.docs)
