"""Command-line entry point for journey-sync.

Subcommands:

- ``sync`` -- run the orchestrator once.
- ``history`` -- print stored history entries.
- ``rollback`` -- delete a record's remote workflow and mark it Failed.
- ``diff`` -- step-level diff between a record's remote copy and local steps.
- ``init`` -- write a starter config file.

``sync`` exits 0 only when the run succeeded and no blocking conflict
remains; every other command exits 0 on success and 1 on failure.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from . import __version__
from .config import Config, load_config
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import build_config
from .core.client import WorkflowAPI
from .errors import ConfigError
from .logger import setup_logging
from .sync.engine import SyncOrchestrator
from .sync.models import SyncOptions
from .sync.rate_limiter import RateLimiter
from .sync.reporter import (
    format_collection_diff,
    format_history,
    format_run_report,
    run_result_to_json,
)
from .sync.store import JsonRecordStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journey-sync",
        description="Reconcile locally authored journeys with a remote workflow engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what would be pushed
  journey-sync sync --dry-run

  # Sync one tenant and emit machine-readable output (cron)
  journey-sync --scheduled sync --owner acme --json

  # Undo a bad push
  journey-sync rollback --record rec_42
        """,
    )
    parser.add_argument("--config", type=Path, help="Config file to use instead of discovery")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        default="text",
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--scheduled",
        action="store_true",
        help="Unattended mode: log to file only (LOG_FILE, default /tmp/journey-sync.log)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"journey-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sync_p = sub.add_parser("sync", help="Run one reconciliation pass")
    sync_p.add_argument("--dry-run", action="store_true", help="Evaluate without remote writes")
    sync_p.add_argument("--owner", help="Only sync records of this owner")
    sync_p.add_argument("--record", help="Only sync this record")
    sync_p.add_argument("--json", action="store_true", help="Print the run result as JSON")

    history_p = sub.add_parser("history", help="Show sync history")
    history_p.add_argument("--record", help="Only entries for this record")
    history_p.add_argument("--limit", type=int, help="Show only the last N entries")

    rollback_p = sub.add_parser("rollback", help="Delete a record's remote workflow")
    rollback_p.add_argument("--record", required=True, help="Record to roll back")
    rollback_p.add_argument("--remote-id", help="Remote workflow id (default: the record's)")

    diff_p = sub.add_parser("diff", help="Compare a record with its remote workflow")
    diff_p.add_argument("--record", required=True, help="Record to compare")

    sub.add_parser("init", help="Write a starter config file")

    return parser


def _load(args: argparse.Namespace, require_remote: bool) -> Config:
    unified = build_config(load_hierarchical_config(args.config))
    return load_config(
        debug=args.debug,
        owner_id=getattr(args, "owner", None),
        dry_run=getattr(args, "dry_run", False),
        unified=unified,
        require_remote=require_remote,
    )


def build_orchestrator(config: Config) -> SyncOrchestrator:
    """Wire the file store, HTTP API and rate limiter from *config*."""
    return SyncOrchestrator(
        store=JsonRecordStore(config.store_path),
        remote=WorkflowAPI.from_config(config),
        rate_limiter=RateLimiter.from_config(config.rate_limit),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_sync(args: argparse.Namespace) -> int:
    config = _load(args, require_remote=True)
    orchestrator = build_orchestrator(config)
    options = SyncOptions(
        record_id=args.record,
        owner_id=config.owner_id,
        dry_run=config.dry_run,
    )
    result = asyncio.run(orchestrator.run(options))

    if args.json:
        print(json.dumps(run_result_to_json(result), indent=2))
    else:
        print(format_run_report(result))

    return 0 if result.success and not result.blocking_conflicts else 1


def _cmd_history(args: argparse.Namespace) -> int:
    config = _load(args, require_remote=False)
    entries = JsonRecordStore(config.store_path).fetch_history(args.record)
    if args.limit is not None:
        entries = entries[-args.limit:] if args.limit > 0 else []
    print(format_history(entries))
    return 0


def _cmd_rollback(args: argparse.Namespace) -> int:
    config = _load(args, require_remote=True)
    orchestrator = build_orchestrator(config)
    result = asyncio.run(orchestrator.rollback(args.record, args.remote_id))
    if not result.success:
        print(f"Rollback failed: {result.error}", file=sys.stderr)
        return 1
    print(f"Rolled back record {args.record}")
    return 0


def _cmd_diff(args: argparse.Namespace) -> int:
    config = _load(args, require_remote=True)
    orchestrator = build_orchestrator(config)
    try:
        diff = asyncio.run(orchestrator.diff_remote(args.record))
    except LookupError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(format_collection_diff(diff, args.record))
    return 0


def _cmd_init(args: argparse.Namespace) -> int:
    path = ensure_config(args.config)
    print(f"Config file: {path}")
    return 0


_COMMANDS = {
    "sync": _cmd_sync,
    "history": _cmd_history,
    "rollback": _cmd_rollback,
    "diff": _cmd_diff,
    "init": _cmd_init,
}


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the selected command and return its exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    setup_logging(
        mode="scheduled" if args.scheduled else "cli",
        debug=args.debug,
        log_file=args.log_file,
        debug_format=args.log_format,
    )

    try:
        return _COMMANDS[args.command](args)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
