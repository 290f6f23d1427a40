"""ScriptVoid batch engine CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from scriptvoid import __version__
from scriptvoid.config import Settings, get_settings
from scriptvoid.jobs import BatchJob, default_registry
from scriptvoid.orchestrator import run_all
from scriptvoid.scheduler import start_scheduler
from scriptvoid.storage.connection import ensure_indexes, open_store, sanitize_mongodb_url

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from scriptvoid.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _run_job(settings: Settings, args: argparse.Namespace) -> bool:
    job = default_registry(settings).get(args.name)
    async with open_store(settings) as store:
        if args.drain and isinstance(job, BatchJob):
            results = await job.drain(store, start=args.batch, batch_size=args.batch_size)
        else:
            results = [await job.run(store, batch=args.batch, batch_size=args.batch_size)]
    for result in results:
        _print_json(result.to_response())
    return all(r.success for r in results)


def cmd_run_job(args: argparse.Namespace) -> int:
    """Run one job for one batch (or drain it with --drain)."""
    _init_logfire()

    try:
        settings = get_settings()
        print(f"\n=== {args.name} ===\n")
        ok = asyncio.run(_run_job(settings, args))
        return 0 if ok else 1

    except Exception as e:
        logger.error(f"{args.name} failed: {e}", exc_info=True)
        print(f"\n❌ {args.name} failed: {e}\n")
        return 1


async def _run_all(settings: Settings):
    async with open_store(settings) as store:
        return await run_all(
            store,
            default_registry(settings),
            inter_job_delay_ms=settings.orchestrator.inter_job_delay_ms,
        )


def cmd_run_all(args: argparse.Namespace) -> int:
    """Run every job once, in order."""
    _init_logfire()

    try:
        settings = get_settings()
        summary = asyncio.run(_run_all(settings))
        _print_json(summary.to_response())
        return 0 if summary.errors == 0 else 1

    except Exception as e:
        logger.error(f"Run-all failed: {e}", exc_info=True)
        print(f"\n❌ Run-all failed: {e}\n")
        return 1


def cmd_schedule(args: argparse.Namespace) -> int:
    """Start the periodic run-all scheduler."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()
        print("\n=== ScriptVoid Batch Scheduler ===\n")
        print(f"Version: {__version__}")
        print(f"Environment: {settings.environment}")
        print(f"Interval: every {settings.orchestrator.interval_minutes} min\n")

        start_scheduler(settings)
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from scriptvoid.api.server import app
    from scriptvoid.observability import initialize_logfire

    settings = get_settings()
    initialize_logfire(settings, app=app)
    uvicorn.run(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level="debug" if args.debug else "info",
    )
    return 0


def cmd_init_indexes(args: argparse.Namespace) -> int:
    """Create the indexes the jobs rely on."""

    async def _ensure() -> None:
        async with open_store(settings) as store:
            await ensure_indexes(store)

    try:
        settings = get_settings()
        asyncio.run(_ensure())
        print("\n✓ Indexes ensured\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")
        print(f"\n❌ Failed to create indexes: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== ScriptVoid Configuration ===\n")
        print(f"Environment: {settings.environment}")
        print(f"Config File: {settings.config_file}\n")

        print("MongoDB:")
        print(f"  URL: {sanitize_mongodb_url(settings.mongo.url)}")
        print(f"  Scripts DB: {settings.mongo.scripts_database}")
        print(f"  Users DB: {settings.mongo.users_database}\n")

        print("Batch:")
        print(f"  Max Execution: {settings.batch.max_execution_ms}ms")
        print(f"  Max Batch Size: {settings.batch.max_batch_size}")
        print(f"  Decay / Bump: {settings.batch.decay_batch_size} / {settings.batch.bump_batch_size}")
        print(f"  Promotion: {settings.batch.promotion_batch_size}")
        print(f"  Presence: {settings.batch.presence_batch_size}\n")

        print("Decay:")
        print(f"  Period: {settings.decay.period_days} days")
        print(f"  Factor: {settings.decay.factor}\n")

        print("Leaderboard:")
        print(f"  Size: {settings.leaderboard.size} by {settings.leaderboard.sort_field}")
        print(f"  Cache TTL: {settings.leaderboard.cache_ttl_seconds}s\n")

        print("Presence:")
        print(f"  Stale After: {settings.presence.stale_after_ms}ms\n")

        print("Orchestrator:")
        print(f"  Inter-job Delay: {settings.orchestrator.inter_job_delay_ms}ms")
        print(f"  Interval: {settings.orchestrator.interval_minutes} min\n")

        print("Secrets:")
        print(f"  Cron Secret: {'✓ Set' if settings.cron_secret else '✗ Not set'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="ScriptVoid: time-boxed batch jobs over the script catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"ScriptVoid {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_job = subparsers.add_parser(
        "run-job",
        help="Run a single job (one batch, or all with --drain)",
    )
    parser_job.add_argument("name", help="Job name, e.g. decay or promotion-decay")
    parser_job.add_argument("--batch", type=int, default=0, help="Batch index to start at")
    parser_job.add_argument("--batch-size", type=int, default=None, help="Page size")
    parser_job.add_argument(
        "--drain",
        action="store_true",
        help="Keep calling with nextBatch until nothing is left",
    )
    parser_job.set_defaults(func=cmd_run_job)

    parser_all = subparsers.add_parser(
        "run-all",
        help="Run every job once, in order",
    )
    parser_all.set_defaults(func=cmd_run_all)

    parser_schedule = subparsers.add_parser(
        "schedule",
        help="Start the periodic run-all scheduler",
    )
    parser_schedule.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_schedule.set_defaults(func=cmd_schedule)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Serve the cron and leaderboard HTTP API",
    )
    parser_serve.add_argument("--host", default=None)
    parser_serve.add_argument("--port", type=int, default=None)
    parser_serve.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_serve.set_defaults(func=cmd_serve)

    parser_indexes = subparsers.add_parser(
        "init-indexes",
        help="Create the MongoDB indexes the jobs rely on",
    )
    parser_indexes.set_defaults(func=cmd_init_indexes)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
