"""Command line entry point for the notification jobs.

Usage:
    python -m jobs.cli run-overdue-sweep [--batch-size N] [--type T]
    python -m jobs.cli run-cleanup [--batch-size N]
    python -m jobs.cli run-batch (--ids ID... | --from-pending | --from-failed)
                                 [--batch-size N] [--type T]
    python -m jobs.cli health-check

Each command prints its report as JSON. The exit status is 1 when the run
raised, and 2 when the health check reports degraded.
"""

import argparse
import json
import sys
from typing import List, Optional

import structlog
from dotenv import load_dotenv

from infrastructure.logging import configure_logging
from modules.notifications import NotificationEngine, NotificationType, get_engine

logger = structlog.get_logger()

EXIT_ERROR = 1
EXIT_DEGRADED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobs.cli", description="Notification engine jobs"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sweep = commands.add_parser("run-overdue-sweep", help="Run the overdue sweep")
    sweep.add_argument("--batch-size", type=int, default=None)
    sweep.add_argument("--type", dest="type_filter", type=NotificationType, default=None)

    cleanup = commands.add_parser("run-cleanup", help="Run retention cleanup")
    cleanup.add_argument("--batch-size", type=int, default=None)

    batch = commands.add_parser("run-batch", help="Process a batch of notifications")
    source = batch.add_mutually_exclusive_group(required=True)
    source.add_argument("--ids", nargs="+", metavar="ID")
    source.add_argument("--from-pending", action="store_true")
    source.add_argument("--from-failed", action="store_true")
    batch.add_argument("--batch-size", type=int, default=None)
    batch.add_argument("--type", dest="type_filter", type=NotificationType, default=None)

    commands.add_parser("health-check", help="Report engine health")
    return parser


def run_command(args: argparse.Namespace, engine: NotificationEngine):
    if args.command == "run-overdue-sweep":
        return engine.sweeper.run(batch_size=args.batch_size, type_filter=args.type_filter)
    if args.command == "run-cleanup":
        return engine.cleanup.run(batch_size=args.batch_size)
    if args.command == "run-batch":
        if args.ids:
            return engine.batch.run(args.ids)
        if args.from_failed:
            return engine.batch.run_from_failed(batch_size=args.batch_size)
        return engine.batch.run_from_pending(
            batch_size=args.batch_size, type_filter=args.type_filter
        )
    return engine.health.run()


def main(argv: Optional[List[str]] = None, engine: Optional[NotificationEngine] = None) -> int:
    load_dotenv()
    configure_logging()
    args = build_parser().parse_args(argv)
    engine = engine or get_engine()

    try:
        report = run_command(args, engine)
    except Exception as e:  # pylint: disable=broad-except
        logger.error("job_failed", command=args.command, error=str(e), exc_info=True)
        print(json.dumps({"command": args.command, "error": str(e)}))
        return EXIT_ERROR

    print(json.dumps(report.to_dict(), default=str))
    if args.command == "health-check" and not report.is_healthy:
        return EXIT_DEGRADED
    return 0


if __name__ == "__main__":
    sys.exit(main())
