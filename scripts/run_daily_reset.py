#!/usr/bin/env python
"""
Run Daily Reset
Nightly job: generate scheduled doses, detect missed doses and archive the
previous local day for every patient (or one patient).

Usage:
    python scripts/run_daily_reset.py
    python scripts/run_daily_reset.py --patient p-123 --date 2024-03-11 --dry-run
    python scripts/run_daily_reset.py --as-of 2024-03-12T06:00:00Z --detect-missed
"""

import sys
import os
import argparse
import asyncio
import logging
from datetime import date, datetime
from typing import List, Optional

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings
from database import SessionLocal, init_db
from exceptions import MedicationError
from services.clock import FixedClock
from services.container import ServiceContainer, build_container


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def reset_patient(
    container: ServiceContainer,
    patient_id: str,
    summary_date: Optional[date],
    timezone: Optional[str],
    dry_run: bool,
    generate: bool,
    detect_missed: bool,
) -> bool:
    """Run every requested step for one patient; returns False on failure"""
    try:
        if detect_missed and not dry_run:
            missed = await container.events.detect_missed_doses(patient_id)
            logger.info(f"[{patient_id}] recorded {len(missed)} missed doses")

        result = await container.daily_reset.run_daily_reset(
            patient_id,
            summary_date=summary_date,
            timezone=timezone,
            dry_run=dry_run,
        )
        summary = result.summary
        state = "already archived" if result.already_archived else ("dry run" if dry_run else "archived")
        logger.info(
            f"[{patient_id}] {result.summary_date} ({result.timezone}) {state}: "
            f"{summary.total_taken}/{summary.total_scheduled} taken, "
            f"{result.archived_event_count} events"
        )

        if generate and not dry_run:
            created = await container.events.generate_daily_dose_events(patient_id)
            logger.info(f"[{patient_id}] generated {len(created)} scheduled doses for today")
        return True
    except MedicationError as e:
        logger.error(f"[{patient_id}] daily reset failed: {e.error_code}: {e.message}")
        return False


async def run_daily_reset(
    patient_ids: Optional[List[str]] = None,
    summary_date: Optional[date] = None,
    as_of: Optional[datetime] = None,
    timezone: Optional[str] = None,
    dry_run: bool = False,
    generate: bool = False,
    detect_missed: bool = False,
) -> int:
    """Reset every patient; returns the number of failures"""
    init_db()
    container = build_container(SessionLocal, clock=FixedClock(as_of) if as_of else None)

    patient_ids = patient_ids or await container.repository.list_patient_ids()
    logger.info(f"Daily reset for {len(patient_ids)} patients (dry_run={dry_run})")

    failures = 0
    for patient_id in patient_ids:
        ok = await reset_patient(
            container, patient_id, summary_date, timezone, dry_run, generate, detect_missed
        )
        if not ok:
            failures += 1

    await container.notifier.drain()
    logger.info(f"Daily reset finished: {len(patient_ids) - failures} ok, {failures} failed")
    return failures


def main():
    parser = argparse.ArgumentParser(
        description="Archive the previous day for each patient"
    )
    parser.add_argument(
        "--patient",
        action="append",
        dest="patients",
        help="Patient id to reset (repeatable; default: every patient with commands)"
    )
    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        help="Local day to archive (default: the day that just ended)"
    )
    parser.add_argument(
        "--as-of",
        type=lambda value: datetime.fromisoformat(value.replace("Z", "+00:00")),
        help="Pretend the job runs at this ISO timestamp"
    )
    parser.add_argument(
        "--timezone",
        help="IANA timezone overriding each patient's preference"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute summaries without writing"
    )
    parser.add_argument(
        "--generate",
        action="store_true",
        help="Also generate today's scheduled dose events"
    )
    parser.add_argument(
        "--detect-missed",
        action="store_true",
        help="Record missed doses before archiving"
    )

    args = parser.parse_args()

    failures = asyncio.run(run_daily_reset(
        patient_ids=args.patients,
        summary_date=args.date,
        as_of=args.as_of,
        timezone=args.timezone,
        dry_run=args.dry_run,
        generate=args.generate,
        detect_missed=args.detect_missed,
    ))
    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
