"""Command-line sync runner.

Usage:
    orders-sync full [--dry-run] [--batch-size N] [--max-pages N] [--max-retries N]
    orders-sync incremental [--hours N]
    orders-sync validate [--autofix]
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from orders_api.config.constants import DEFAULT_INCREMENTAL_WINDOW_HOURS, UPSERT_BATCH_SIZE
from orders_api.config.settings import settings
from orders_api.core.logger import setup_logger
from orders_worker.services.container import build_services, prepare_database
from orders_worker.services.reconciliation_service import STATUS_CRITICAL
from orders_worker.services.sync_monitor import STATUS_FAILED, STATUS_SKIPPED

logger = setup_logger("orders_worker.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="orders-sync", description="Order store sync tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    full = subparsers.add_parser("full", help="Fetch every order and upsert it")
    full.add_argument("--dry-run", action="store_true", help="Fetch and transform only, write nothing")
    full.add_argument("--batch-size", type=int, default=UPSERT_BATCH_SIZE, help="Rows per upsert batch")
    full.add_argument("--max-pages", type=int, default=None, help="Page ceiling for the walk")
    full.add_argument("--max-retries", type=int, default=None, help="Retries per call")

    incremental = subparsers.add_parser("incremental", help="Sync recently updated orders")
    incremental.add_argument(
        "--hours", type=int, default=DEFAULT_INCREMENTAL_WINDOW_HOURS, help="Look-back window in hours"
    )

    validate = subparsers.add_parser("validate", help="Detect drift between upstream and the store")
    validate.add_argument("--autofix", action="store_true", help="Repair missing and outdated orders")

    return parser


async def run_command(args: argparse.Namespace) -> int:
    """Execute one command. Returns the process exit code."""
    services = build_services(
        settings,
        max_retries=getattr(args, "max_retries", None),
        batch_size=getattr(args, "batch_size", None),
    )
    try:
        await prepare_database(services)

        if args.command == "full":
            logger.info(f"[CLI] Starting full sync (dry_run={args.dry_run})")
            report = await services.orchestrator.run_full_sync(
                max_pages=args.max_pages, dry_run=args.dry_run
            )
            print(json.dumps(report.to_dict(), indent=2, default=str))
            return 1 if report.status in (STATUS_FAILED, STATUS_SKIPPED) else 0

        if args.command == "incremental":
            logger.info(f"[CLI] Starting incremental sync (last {args.hours} hours)")
            report = await services.orchestrator.run_incremental_sync(window_hours=args.hours)
            print(json.dumps(report.to_dict(), indent=2, default=str))
            return 1 if report.status in (STATUS_FAILED, STATUS_SKIPPED) else 0

        if args.command == "validate":
            logger.info(f"[CLI] Starting validation (autofix={args.autofix})")
            report = await services.reconciler.run_validation(auto_fix=args.autofix)
            print(json.dumps(report.to_dict(), indent=2, default=str))
            return 1 if report.status == STATUS_CRITICAL else 0

        logger.error(f"[CLI] Unsupported command: {args.command}")
        return 2
    finally:
        await services.close()


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        exit_code = asyncio.run(run_command(args))
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
