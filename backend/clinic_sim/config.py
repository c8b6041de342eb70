from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TimeConfig:
    business_start: int = 8
    business_end: int = 17  # end boundary, first hour that is closed
    minutes_per_real_second: int = 2  # at 1x speed
    tick_rate_ms: float = 100.0


@dataclass(frozen=True)
class ScheduleConfig:
    max_sessions_per_day: int = 8
    min_working_hours: int = 3
    max_break_hours: int = 3
    suggestion_days_ahead: int = 14
    due_soon_days: int = 3
    max_recurring_suggestion: int = 20


DEFAULT_TIME_CONFIG = TimeConfig()
DEFAULT_SCHEDULE_CONFIG = ScheduleConfig()

SESSION_DURATIONS = (50, 80, 180)
DEFAULT_DURATION = 50

FREQUENCY_DAYS = {
    "once": 0,  # no follow-up
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday")
