"""Point decay: halve a script's points for every full 30 days of age.

Each script records how many periods have already been applied
(``decayPeriods``), so a run only decays by the periods elapsed since the
last one. Two runs inside the same period leave the document untouched.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Optional

from scriptvoid.batch.mutations import Mutation, MutationPlan
from scriptvoid.batch.processor import BatchContext
from scriptvoid.jobs.base import BatchJob
from scriptvoid.storage.collections import SCRIPTS
from scriptvoid.timeutils import parse_datetime

APPLIED_FIELD = "decayPeriods"


def elapsed_periods(created_at: datetime, now: datetime, period: timedelta = timedelta(days=30)) -> int:
    return max(0, math.floor((now - created_at) / period))


def decayed_points(
    created_at: datetime,
    current_points: int,
    now: datetime,
    applied_periods: int = 0,
    period: timedelta = timedelta(days=30),
    factor: float = 0.5,
) -> int:
    """Points after decaying for the periods not yet applied."""
    pending = elapsed_periods(created_at, now, period) - applied_periods
    if pending > 0:
        return math.floor(current_points * factor ** pending)
    return current_points


def _applied(doc: dict[str, Any]) -> int:
    value = doc.get(APPLIED_FIELD)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


class DecayJob(BatchJob):
    name = "decay"
    description = "Exponential point decay by script age"
    collection = SCRIPTS
    counter_names = ("updated", "decayed", "totalDecayAmount")

    @property
    def default_batch_size(self) -> int:
        return self.settings.batch.decay_batch_size

    def build_filter(self, now: datetime) -> dict[str, Any]:
        return {}

    async def transform(self, doc: dict[str, Any], ctx: BatchContext) -> Optional[MutationPlan]:
        created_at = parse_datetime(doc.get("createdAt"))
        if created_at is None:
            return None

        period = timedelta(days=self.settings.decay.period_days)
        periods = elapsed_periods(created_at, ctx.now, period)
        applied = _applied(doc)
        if periods <= applied:
            return None

        points = doc.get("points")
        current = points if isinstance(points, (int, float)) and not isinstance(points, bool) else 0
        new_points = decayed_points(
            created_at,
            current,
            ctx.now,
            applied_periods=applied,
            period=period,
            factor=self.settings.decay.factor,
        )

        plan = MutationPlan()
        plan.add(
            SCRIPTS,
            Mutation.update({"_id": doc["_id"]}, {"points": new_points, APPLIED_FIELD: periods}),
        )
        plan.tally("updated")
        if new_points != current:
            plan.tally("decayed").tally("totalDecayAmount", int(current - new_points))
        return plan
