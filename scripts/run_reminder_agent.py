#!/usr/bin/env python3
"""
Headless reminder client.

Runs the client-side scheduler against the API for one user and logs
every reminder it would show. Useful for checking reminder timing without
a browser.

Usage:
    python scripts/run_reminder_agent.py --once
    python scripts/run_reminder_agent.py --timezone Europe/Sofia

Environment Variables:
    API_URL: Base API URL (default: http://localhost:8000)
    ACCESS_TOKEN: Bearer token of the user
    USER_ID: Id of the same user
"""

import argparse
import asyncio
import os
import sys

import dotenv
import structlog

from app.client import ReminderScheduler
from app.client.api import CalendarApiClient
from app.client.platform import LoggingNotificationDisplay
from app.core.reminders import get_timezone

dotenv.load_dotenv()
logger = structlog.get_logger()


async def run(once: bool, timezone: str) -> int:
    access_token = os.getenv("ACCESS_TOKEN")
    user_id = os.getenv("USER_ID")
    if not access_token or not user_id:
        print("Error: ACCESS_TOKEN and USER_ID must be set", file=sys.stderr)
        return 1

    display = LoggingNotificationDisplay()
    api_url = os.getenv("API_URL", "http://localhost:8000")

    async with CalendarApiClient(api_url, access_token) as api:
        scheduler = ReminderScheduler(api, display, tz=get_timezone(timezone))
        if not await scheduler.setup(user_id):
            return 1

        try:
            if once:
                shown = await scheduler.check(force=True)
                logger.info("reminder_agent_finished", shown=shown)
            else:
                # Runs until interrupted
                await asyncio.Event().wait()
        finally:
            await scheduler.destroy()

    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Run the reminder scheduler headless")
    parser.add_argument("--once", action="store_true", help="Run a single check and exit")
    parser.add_argument("--timezone", default="UTC", help="IANA timezone of the events")
    args = parser.parse_args()

    try:
        sys.exit(asyncio.run(run(args.once, args.timezone)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
