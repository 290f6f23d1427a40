"""Job policies over the shared batch engine.

``default_registry()`` returns every job in run-all order. User stats run
before the leaderboard rebuild so the ranking sees fresh totals, and
multipliers run after the expiry jobs so they see cleared promotion and bump
flags.
"""

import time

from scriptvoid.batch.budget import Timer
from scriptvoid.config import Settings
from scriptvoid.storage.cache import TTLCache, shared_cache
from scriptvoid.timeutils import Clock, utcnow

from .auto_return import AutoReturnJob
from .base import BatchJob, Job, JobRegistry
from .bump import BumpExpiryJob
from .decay import DecayJob, decayed_points
from .leaderboard import LeaderboardRebuildJob, read_leaderboard
from .multipliers import MultiplierJob, compute_multiplier
from .presence import PresenceEvictionJob, record_ping
from .promo_cleanup import PromoCodeCleanupJob
from .promotion import PromotionExpiryJob
from .timeouts import TimeoutExpiryJob
from .user_stats import UserStatsJob


def default_registry(
    settings: Settings,
    clock: Clock = utcnow,
    timer: Timer = time.monotonic,
    cache: TTLCache = shared_cache,
) -> JobRegistry:
    """Create a registry pre-loaded with every job, in run-all order."""
    registry = JobRegistry()
    registry.register(UserStatsJob(settings, clock=clock, timer=timer))
    registry.register(LeaderboardRebuildJob(settings, clock=clock, timer=timer, cache=cache))
    registry.register(TimeoutExpiryJob(settings, clock=clock, timer=timer))
    registry.register(AutoReturnJob(settings, clock=clock, timer=timer))
    registry.register(BumpExpiryJob(settings, clock=clock, timer=timer))
    registry.register(DecayJob(settings, clock=clock, timer=timer))
    registry.register(PromotionExpiryJob(settings, clock=clock, timer=timer))
    registry.register(MultiplierJob(settings, clock=clock, timer=timer))
    registry.register(PromoCodeCleanupJob(settings, clock=clock, timer=timer))
    registry.register(PresenceEvictionJob(settings, clock=clock, timer=timer))
    return registry


__all__ = [
    "AutoReturnJob",
    "BatchJob",
    "Job",
    "JobRegistry",
    "BumpExpiryJob",
    "DecayJob",
    "decayed_points",
    "LeaderboardRebuildJob",
    "read_leaderboard",
    "MultiplierJob",
    "compute_multiplier",
    "PresenceEvictionJob",
    "record_ping",
    "PromoCodeCleanupJob",
    "PromotionExpiryJob",
    "TimeoutExpiryJob",
    "UserStatsJob",
    "default_registry",
]
