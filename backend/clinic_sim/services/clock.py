from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..config import DEFAULT_TIME_CONFIG, TimeConfig

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True, order=True)
class SimTime:
    """A point on the simulated calendar. Ordered by (day, hour, minute)."""
    day: int
    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if self.day < 1:
            raise ValueError(f"day must be >= 1, got {self.day}")
        if not 0 <= self.minute < 60:
            raise ValueError(f"minute must be in [0, 60), got {self.minute}")


@dataclass(frozen=True)
class AdvanceResult:
    previous_time: SimTime
    new_time: SimTime
    minute_changed: bool = False
    hour_changed: bool = False
    day_ended: bool = False
    day_started: bool = False


def advance(current: SimTime, minutes: int, config: TimeConfig = DEFAULT_TIME_CONFIG) -> AdvanceResult:
    """
    Advance the clock by whole minutes.
    Reaching the end of the business day rolls over to the next day's opening
    at minute 0; minutes left over past closing are dropped.
    """
    if minutes <= 0:
        return AdvanceResult(previous_time=current, new_time=current)

    day, hour, minute = current.day, current.hour, current.minute + minutes
    hour_changed = day_rolled = False

    while minute >= 60:
        minute -= 60
        hour += 1
        hour_changed = True

        if hour >= config.business_end:
            day += 1
            hour = config.business_start
            minute = 0
            day_rolled = True

    return AdvanceResult(
        previous_time=current,
        new_time=SimTime(day, hour, minute),
        minute_changed=True,
        hour_changed=hour_changed,
        day_ended=day_rolled,
        day_started=day_rolled,
    )


def skip_to(current: SimTime, target: SimTime) -> AdvanceResult:
    # Atomic jump: intermediate boundaries are not reported one by one.
    if not is_after(target, current):
        return AdvanceResult(previous_time=current, new_time=current)

    day_changed = current.day != target.day
    return AdvanceResult(
        previous_time=current,
        new_time=target,
        minute_changed=True,
        hour_changed=day_changed or current.hour != target.hour,
        day_ended=day_changed,
        day_started=day_changed,
    )


def calculate_minutes_to_advance(
    delta_ms: float,
    speed: int,
    carry: float,
    config: TimeConfig = DEFAULT_TIME_CONFIG,
) -> Tuple[int, float]:
    """
    Convert elapsed real milliseconds into whole simulated minutes.
    Returns (minutes, carry) where carry is the fractional remainder to feed
    into the next call, so truncation never loses time.
    """
    if speed < 0:
        raise ValueError(f"speed must be >= 0, got {speed}")
    if speed == 0:
        return 0, carry

    gained = max(delta_ms, 0) / 1000 * config.minutes_per_real_second * speed
    total = carry + gained
    whole = int(total)
    return whole, total - whole


def is_after(a: SimTime, b: SimTime) -> bool:
    return a > b


def is_business_hours(time: SimTime, config: TimeConfig = DEFAULT_TIME_CONFIG) -> bool:
    return config.business_start <= time.hour < config.business_end


def minutes_until_day_end(time: SimTime, config: TimeConfig = DEFAULT_TIME_CONFIG) -> int:
    return max(0, config.business_end * 60 - (time.hour * 60 + time.minute))


def to_total_minutes(time: SimTime) -> int:
    return time.day * MINUTES_PER_DAY + time.hour * 60 + time.minute


def diff_minutes(start: SimTime, end: SimTime) -> int:
    return to_total_minutes(end) - to_total_minutes(start)


def next_day_start(time: SimTime, config: TimeConfig = DEFAULT_TIME_CONFIG) -> SimTime:
    return SimTime(time.day + 1, config.business_start, 0)


def format_hour(hour: int, minute: int = 0) -> str:
    period = "PM" if hour >= 12 else "AM"
    display = 12 if hour % 12 == 0 else hour % 12
    return f"{display}:{minute:02d} {period}"


def format_time(time: SimTime) -> str:
    """e.g. "Day 5, 2:30 PM"."""
    return f"Day {time.day}, {format_hour(time.hour, time.minute)}"
