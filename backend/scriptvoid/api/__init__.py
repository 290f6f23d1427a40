"""HTTP surface for the batch engine."""

from .server import app, parse_batch_params, verify_cron_secret

__all__ = ["app", "parse_batch_params", "verify_cron_secret"]
