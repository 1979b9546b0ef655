#!/usr/bin/env python3
"""
Operator commands for the Gmail relay.

Usage:
    python manage.py renew-watches [--within-hours N]
    python manage.py list
    python manage.py show-gaps [--limit N]

renew-watches should run at least daily (Gmail watches expire after seven days).
"""

import argparse
import asyncio
import logging
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv(override=True)
from app.container import ApplicationContainer  # noqa: E402
from app.db import fastapi_sqlalchemy_context  # noqa: E402
from logging_config import setup_logging  # noqa: E402

setup_logging()

logger = logging.getLogger(__name__)

container = ApplicationContainer()


async def renew_watches(within_hours: int) -> int:
    """Re-register expiring watches; returns the process exit code."""
    async with fastapi_sqlalchemy_context():
        controller = container.controllers.watch_renewal_controller()
        try:
            summary = await controller.renew_expiring(timedelta(hours=within_hours))
        finally:
            await container.controllers.google_client().close_session()

    logger.info(
        f"Watch renewal finished; renewed: {len(summary.renewed)}, "
        f"reauthorization required: {len(summary.reauthorization_required)}, failed: {len(summary.failed)}"
    )
    for email in summary.failed:
        logger.warning(f"Watch renewal failed for {email}")
    return 1 if summary.failed else 0


async def list_accounts() -> int:
    """List all accounts in the database."""
    async with fastapi_sqlalchemy_context():
        accounts = (await container.repos.account().get_all()).all()
        if not accounts:
            logger.info("No accounts found in database.")
            return 0

        logger.info(f"Found {len(accounts)} accounts:")
        logger.info("-" * 100)
        for i, account in enumerate(accounts, 1):
            flag = " (re-authorization required)" if account.reauthorization_required else ""
            logger.info(
                f"{i:3d}. {account.email:35} {account.status.value:11} {account.automation_mode.value:10} "
                f"cursor: {account.sync_cursor} watch until: {account.watch_expires_at}{flag}"
            )
        logger.info("-" * 100)
    return 0


async def show_gaps(limit: int) -> int:
    """List relay attempts whose messages never reached the automation endpoint."""
    async with fastapi_sqlalchemy_context():
        gaps = (await container.repos.relay_log().get_undelivered(limit)).all()
        if not gaps:
            logger.info("No delivery gaps recorded.")
            return 0

        logger.info(f"Found {len(gaps)} delivery gaps (oldest first):")
        for gap in gaps:
            logger.info(
                f"{gap.created_at:%Y-%m-%d %H:%M:%S} {gap.account.email:35} "
                f"cursor {gap.start_cursor}->{gap.end_cursor} status: {gap.status_code} "
                f"messages: {', '.join(gap.message_ids)}"
            )
    return 0


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Gmail relay operator commands")
    commands = parser.add_subparsers(dest="command", required=True)

    renew = commands.add_parser("renew-watches", help="Re-register Gmail watches that expire soon")
    renew.add_argument("--within-hours", type=int, default=48, help="Renew watches expiring within this window")
    commands.add_parser("list", help="List monitored accounts")
    gaps = commands.add_parser("show-gaps", help="List relay attempts that were never delivered")
    gaps.add_argument("--limit", type=int, default=100, help="Maximum number of rows to show")

    args = parser.parse_args()

    if args.command == "renew-watches":
        exit_code = asyncio.run(renew_watches(args.within_hours))
    elif args.command == "list":
        exit_code = asyncio.run(list_accounts())
    else:
        exit_code = asyncio.run(show_gaps(args.limit))
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
