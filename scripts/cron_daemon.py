"""
Daemon that runs the scheduled sweeps (reminders, webhook renewal, bank sync)
for hosts without a platform scheduler.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from homebase.config import Settings, get_settings
from homebase.dependencies import Resources, build_resources
from homebase.relay import (
    check_reminders,
    renew_expiring_subscriptions,
    sync_all_plaid_items,
)

logger = logging.getLogger(__name__)

JOBS = ("reminders", "renew-webhooks", "sync-plaid")


def run_job(name: str, resources: Resources, settings: Settings) -> dict:
    if name == "reminders":
        return check_reminders(
            resources.db,
            interval=timedelta(minutes=settings.reminder_interval_minutes),
        )
    if name == "renew-webhooks":
        return renew_expiring_subscriptions(
            resources.db,
            resources.calendars,
            window=timedelta(hours=settings.webhook_renewal_window_hours),
        )
    if name == "sync-plaid":
        return sync_all_plaid_items(resources.db, resources.financial)
    raise ValueError(f"Unknown job: {name}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Homebase cron daemon")
    parser.add_argument(
        "-j",
        "--job",
        action="append",
        choices=JOBS,
        default=None,
        help="Job to run each loop (repeatable; default: all)",
    )
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=None,
        help="Seconds between runs (default: reminder interval)",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=15,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run each job a single time and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    resources = build_resources(settings)
    jobs = args.job or list(JOBS)
    interval = args.interval_seconds or settings.reminder_interval_minutes * 60

    while True:
        for name in jobs:
            try:
                result = run_job(name, resources, settings)
                logger.info("Job %s complete: %s", name, result)
            except Exception as exc:
                logger.exception("Job %s failed: %s", name, exc)

        if args.once:
            return 0

        sleep_for = interval + random.uniform(0, args.jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        time.sleep(sleep_for)


if __name__ == "__main__":
    raise SystemExit(main())
