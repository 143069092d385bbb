"""Run the deadline sweeps on APScheduler, or once from the command line."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from wagers.core.config import get_settings
from wagers.db import init_db

from .base import Sweep, SweepContext, SweepSummary
from .deadlines import CloseExpiredWagersSweep, ProcessResolvableWagersSweep
from .reminders import BETTING_TRACK, RESOLUTION_TRACK, ReminderSweep

SWEEP_NAMES = (
    "close_expired",
    "process_resolvable",
    "resolution_reminders",
    "betting_reminders",
)


def build_sweeps(context: SweepContext) -> dict[str, Sweep]:
    sweeps: list[Sweep] = [
        CloseExpiredWagersSweep(context),
        ProcessResolvableWagersSweep(context),
        ReminderSweep(context, RESOLUTION_TRACK),
        ReminderSweep(context, BETTING_TRACK),
    ]
    return {sweep.name: sweep for sweep in sweeps}


def build_scheduler(
    context: SweepContext,
    *,
    scheduler: BaseScheduler | None = None,
    sweeps: dict[str, Sweep] | None = None,
) -> BaseScheduler:
    """Register every sweep on its own interval; a sweep never overlaps itself."""

    scheduler = scheduler or BlockingScheduler(timezone="UTC")
    sweeps = sweeps or build_sweeps(context)
    intervals = context.settings.sweep_intervals_seconds

    for name, sweep in sweeps.items():
        seconds = intervals[name]
        scheduler.add_job(
            sweep.run,
            IntervalTrigger(seconds=seconds),
            id=f"sweep-{name}",
            name=f"Sweep: {name}",
            max_instances=1,
            coalesce=True,
        )
        logger.info("Registered sweep {} (every {:.0f}s)", name, seconds)
    return scheduler


def run_once(context: SweepContext, names: Sequence[str]) -> list[SweepSummary]:
    sweeps = build_sweeps(context)
    return [sweeps[name].run() for name in names]


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Close, resolve and remind wagers as their deadlines pass",
    )
    parser.add_argument(
        "--once",
        dest="once",
        action="append",
        choices=[*SWEEP_NAMES, "all"],
        help="Run the named sweep a single time instead of scheduling (repeatable)",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary of --once runs is written",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    _configure_logging(settings.log_level)
    init_db()
    context = SweepContext.from_settings(settings)

    if args.once:
        names = list(SWEEP_NAMES) if "all" in args.once else list(dict.fromkeys(args.once))
        summaries = run_once(context, names)
        payload = [summary.to_dict() for summary in summaries]
        if args.summary_path:
            args.summary_path.parent.mkdir(parents=True, exist_ok=True)
            args.summary_path.write_text(json.dumps(payload, default=str, indent=2))
            logger.info("Sweep summary written to {}", args.summary_path)
        else:
            logger.info("Sweep summary: {}", json.dumps(payload, default=str))
        return 1 if any(summary.failures for summary in summaries) else 0

    scheduler = build_scheduler(context)
    logger.info("Scheduler starting with {} sweeps", len(scheduler.get_jobs()))
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Received interrupt signal")
        scheduler.shutdown(wait=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
