from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from ..config import DEFAULT_SCHEDULE_CONFIG, DEFAULT_TIME_CONFIG, ScheduleConfig, TimeConfig
from .entities import Therapist, WorkSchedule


@dataclass(frozen=True)
class ScheduleValidation:
    valid: bool
    reason: Optional[str] = None


def validate_work_schedule(
    start_hour: int,
    end_hour: int,
    break_hours: Iterable[int] = (),
    time_config: TimeConfig = DEFAULT_TIME_CONFIG,
    schedule_config: ScheduleConfig = DEFAULT_SCHEDULE_CONFIG,
) -> ScheduleValidation:
    breaks = list(break_hours)

    if start_hour < time_config.business_start:
        return ScheduleValidation(False, f"Work cannot start before the practice opens at {time_config.business_start}:00")
    if end_hour > time_config.business_end:
        return ScheduleValidation(False, f"Work cannot end after the practice closes at {time_config.business_end}:00")
    if end_hour <= start_hour:
        return ScheduleValidation(False, "End hour must be after start hour")
    if len(breaks) > schedule_config.max_break_hours:
        return ScheduleValidation(False, f"Maximum {schedule_config.max_break_hours} breaks allowed")
    if len(set(breaks)) != len(breaks):
        return ScheduleValidation(False, "Duplicate break hours are not allowed")
    for hour in breaks:
        if not start_hour <= hour < end_hour:
            return ScheduleValidation(False, f"Break at {hour}:00 must be within work hours")

    working = end_hour - start_hour - len(breaks)
    if working < schedule_config.min_working_hours:
        return ScheduleValidation(
            False,
            f"At least {schedule_config.min_working_hours} working hours are required, got {working}",
        )
    return ScheduleValidation(True)


def create_work_schedule(
    start_hour: int,
    end_hour: int,
    break_hours: Iterable[int] = (),
    time_config: TimeConfig = DEFAULT_TIME_CONFIG,
) -> WorkSchedule:
    breaks = list(break_hours)
    check = validate_work_schedule(start_hour, end_hour, breaks, time_config=time_config)
    if not check.valid:
        raise ValueError(check.reason)
    return WorkSchedule(start_hour=start_hour, end_hour=end_hour, break_hours=frozenset(breaks))


def update_work_schedule(
    therapist: Therapist,
    start_hour: Optional[int] = None,
    end_hour: Optional[int] = None,
    break_hours: Optional[Iterable[int]] = None,
) -> Therapist:
    """Return a copy of the therapist with a validated schedule; unspecified fields are kept."""
    current = therapist.work_schedule
    schedule = create_work_schedule(
        current.start_hour if start_hour is None else start_hour,
        current.end_hour if end_hour is None else end_hour,
        sorted(current.break_hours) if break_hours is None else break_hours,
    )
    return replace(therapist, work_schedule=schedule)


def is_break(schedule: WorkSchedule, hour: int) -> bool:
    return hour in schedule.break_hours


def is_within_work_hours(schedule: WorkSchedule, hour: int) -> bool:
    return schedule.start_hour <= hour < schedule.end_hour and not is_break(schedule, hour)


def working_hours(schedule: WorkSchedule) -> List[int]:
    return [h for h in range(schedule.start_hour, schedule.end_hour) if h not in schedule.break_hours]


def total_working_hours(schedule: WorkSchedule) -> int:
    return len(working_hours(schedule))
