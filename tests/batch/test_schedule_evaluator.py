"""
Pure schedule evaluation: should_fire() and compute_next_run().
"""

from datetime import datetime, timedelta, timezone

import pytest

from stock_batch.domain.schedule import compute_next_run, should_fire
from stock_batch.domain.types import BatchRunStatus, JobSchedule, ScheduleFrequency

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _schedule(frequency=ScheduleFrequency.DAILY, **overrides):
    return JobSchedule(
        job_name="nightly",
        task_type="bulk_normalization",
        frequency=frequency,
        **overrides,
    )


class TestShouldFire:

    def test_never_run_is_due(self):
        assert should_fire(_schedule(), NOW)

    def test_due_at_next_run(self):
        assert should_fire(_schedule(next_run_at=NOW), NOW)

    def test_not_yet_due(self):
        assert not should_fire(_schedule(next_run_at=NOW + timedelta(seconds=1)), NOW)

    def test_inactive(self):
        assert not should_fire(_schedule(is_active=False), NOW)

    def test_on_demand_never_fires(self):
        assert not should_fire(_schedule(ScheduleFrequency.ON_DEMAND), NOW)

    def test_once_fires_once(self):
        assert should_fire(_schedule(ScheduleFrequency.ONCE), NOW)
        ran = _schedule(
            ScheduleFrequency.ONCE,
            last_run_at=NOW,
            last_run_status=BatchRunStatus.COMPLETED,
        )
        assert not should_fire(ran, NOW + timedelta(days=7))

    def test_once_waits_for_its_time(self):
        assert not should_fire(
            _schedule(ScheduleFrequency.ONCE, next_run_at=NOW + timedelta(hours=2)), NOW,
        )


class TestComputeNextRun:

    @pytest.mark.parametrize(
        "frequency, interval",
        [
            (ScheduleFrequency.HOURLY, timedelta(hours=1)),
            (ScheduleFrequency.DAILY, timedelta(days=1)),
            (ScheduleFrequency.WEEKLY, timedelta(weeks=1)),
        ],
    )
    def test_recurring(self, frequency, interval):
        assert compute_next_run(frequency, NOW) == NOW + interval

    @pytest.mark.parametrize(
        "frequency", [ScheduleFrequency.ONCE, ScheduleFrequency.ON_DEMAND],
    )
    def test_non_recurring(self, frequency):
        assert compute_next_run(frequency, NOW) is None

    def test_never_run(self):
        assert compute_next_run(ScheduleFrequency.DAILY, None) is None
