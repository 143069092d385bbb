from __future__ import annotations

import json
from datetime import timedelta

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from sweeps.runner import SWEEP_NAMES, _parse_args, build_scheduler, build_sweeps, main, run_once
from wagers.models import WagerStatus

from conftest import NOW


def test_build_sweeps_covers_every_named_sweep(sweep_context):
    assert set(build_sweeps(sweep_context)) == set(SWEEP_NAMES)


def test_scheduler_registers_one_non_overlapping_job_per_sweep(sweep_context):
    scheduler = build_scheduler(sweep_context, scheduler=BackgroundScheduler(timezone="UTC"))

    jobs = {job.id: job for job in scheduler.get_jobs()}

    assert set(jobs) == {f"sweep-{name}" for name in SWEEP_NAMES}
    assert jobs["sweep-close_expired"].trigger.interval == timedelta(seconds=60)
    assert jobs["sweep-process_resolvable"].trigger.interval == timedelta(seconds=120)
    assert jobs["sweep-resolution_reminders"].trigger.interval == timedelta(minutes=15)
    assert jobs["sweep-betting_reminders"].trigger.interval == timedelta(minutes=15)
    for job in jobs.values():
        assert job.max_instances == 1
        assert job.coalesce is True


def test_run_once_runs_requested_sweeps_in_order(sweep_context, factory):
    wager_id = factory.create(betting_deadline=NOW - timedelta(minutes=1))

    summaries = run_once(sweep_context, ["close_expired", "betting_reminders"])

    assert [summary.sweep for summary in summaries] == ["close_expired", "betting_reminders"]
    assert summaries[0].transitioned == 1
    assert factory.get(wager_id).status == WagerStatus.CLOSED.value


def test_parse_args_rejects_unknown_sweeps():
    assert _parse_args(["--once", "close_expired", "--once", "all"]).once == ["close_expired", "all"]
    with pytest.raises(SystemExit):
        _parse_args(["--once", "archive"])


def test_main_once_writes_summary(tmp_path):
    summary_path = tmp_path / "out" / "summary.json"

    exit_code = main(["--once", "all", "--summary-path", str(summary_path)])

    assert exit_code == 0
    payload = json.loads(summary_path.read_text())
    assert [item["sweep"] for item in payload] == list(SWEEP_NAMES)
    assert all(item["failures"] == [] for item in payload)
