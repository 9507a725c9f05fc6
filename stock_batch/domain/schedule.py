"""
Pure schedule evaluation functions.

Contract:
    ``should_fire(schedule, as_of)`` and ``compute_next_run()`` are PURE --
    no I/O, no side effects, no clock reads.  The caller supplies every
    timestamp.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from stock_batch.domain.types import JobSchedule, ScheduleFrequency

_INTERVALS: dict[ScheduleFrequency, timedelta] = {
    ScheduleFrequency.HOURLY: timedelta(hours=1),
    ScheduleFrequency.DAILY: timedelta(days=1),
    ScheduleFrequency.WEEKLY: timedelta(weeks=1),
}


def should_fire(schedule: JobSchedule, as_of: datetime) -> bool:
    """Determine if a schedule should fire at the given time.

    Rules:
        - Inactive schedules never fire.
        - ON_DEMAND never fires automatically.
        - ONCE fires if never run before and ``next_run_at`` (if set) is due.
        - Recurring frequencies fire when ``as_of >= next_run_at``; a
          schedule with no ``next_run_at`` is due immediately.
    """
    if not schedule.is_active:
        return False

    if schedule.frequency == ScheduleFrequency.ON_DEMAND:
        return False

    if schedule.frequency == ScheduleFrequency.ONCE and schedule.last_run_at is not None:
        return False

    if schedule.next_run_at is not None and as_of < schedule.next_run_at:
        return False

    return True


def compute_next_run(
    frequency: ScheduleFrequency,
    last_run_at: datetime | None,
) -> datetime | None:
    """Compute the next run time for a schedule.

    Returns:
        ``last_run_at`` plus the frequency interval, or None for ONCE and
        ON_DEMAND schedules and for schedules that never ran.
    """
    interval = _INTERVALS.get(frequency)
    if interval is None or last_run_at is None:
        return None
    return last_run_at + interval
