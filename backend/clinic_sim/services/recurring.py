from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..config import DEFAULT_SCHEDULE_CONFIG, ScheduleConfig
from .booking import check_placement
from .clock import SimTime
from .constraints import BookingCheck, BookingRequest
from .entities import Facility, Session, Therapist
from .slots import ScheduleIndex
from .work_schedule import working_hours

PAST_REASON = "first occurrence is in the past"


@dataclass(frozen=True)
class PlannedSlot:
    day: int
    hour: int


@dataclass(frozen=True)
class RecurringFailure:
    index: int  # 0-based position in the series
    target_day: int
    preferred_hour: int
    reason: str


@dataclass
class RecurringPlan:
    planned: List[PlannedSlot] = field(default_factory=list)
    failures: List[RecurringFailure] = field(default_factory=list)


def _closest_hours(hours: Sequence[int], preferred_hour: int) -> List[int]:
    return sorted(hours, key=lambda h: (abs(h - preferred_hour), h))


def plan_recurring_bookings(
    index: ScheduleIndex,
    sessions: Sequence[Session],
    facility: Facility,
    therapist: Therapist,
    client_id: str,
    now: SimTime,
    start_day: int,
    start_hour: int,
    duration_minutes: int,
    is_virtual: bool,
    count: int,
    interval_days: int,
    config: ScheduleConfig = DEFAULT_SCHEDULE_CONFIG,
) -> RecurringPlan:
    """
    Plan `count` sessions every `interval_days` starting at (start_day, start_hour).

    The first occurrence must be exactly the requested slot, strictly in the
    future, or the whole series is rejected. Later occurrences keep the same
    hour when possible, otherwise move to the closest legal hour on the same
    day; a day with no legal hour is recorded as a failure and planning goes on.
    Neither `index` nor `sessions` is modified.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    if interval_days < 0:
        raise ValueError("interval_days must be 0 or greater")

    working_index = index.copy()
    working_sessions = list(sessions)
    plan = RecurringPlan()

    def attempt(day: int, hour: int) -> BookingCheck:
        if not SimTime(day, hour, 0) > now:
            return BookingCheck.rejected("slot is in the past")
        request = BookingRequest(day, hour, duration_minutes, is_virtual)
        return check_placement(
            working_index, working_sessions, facility, therapist, client_id, request, config
        )

    def reserve(occurrence: int, day: int, hour: int) -> None:
        stub = Session(
            id=f"planned-{client_id}-{therapist.id}-{day}-{hour}-{occurrence}",
            therapist_id=therapist.id,
            client_id=client_id,
            scheduled_day=day,
            scheduled_hour=hour,
            duration_minutes=duration_minutes,
            is_virtual=is_virtual,
        )
        working_sessions.append(stub)
        working_index.add_session(stub)
        plan.planned.append(PlannedSlot(day, hour))

    if not SimTime(start_day, start_hour, 0) > now:
        plan.failures.append(RecurringFailure(0, start_day, start_hour, PAST_REASON))
        return plan

    first = attempt(start_day, start_hour)
    if not first.ok:
        plan.failures.append(RecurringFailure(0, start_day, start_hour, first.reason or "slot unavailable"))
        return plan
    reserve(0, start_day, start_hour)

    for occurrence in range(1, count):
        target_day = start_day + occurrence * interval_days
        preferred = attempt(target_day, start_hour)
        if preferred.ok:
            reserve(occurrence, target_day, start_hour)
            continue

        alternatives = [h for h in working_hours(therapist.work_schedule) if h != start_hour]
        chosen: Optional[int] = None
        for hour in _closest_hours(alternatives, start_hour):
            if attempt(target_day, hour).ok:
                chosen = hour
                break

        if chosen is None:
            plan.failures.append(
                RecurringFailure(
                    occurrence,
                    target_day,
                    start_hour,
                    f"no legal slot on day {target_day} ({preferred.reason})",
                )
            )
        else:
            reserve(occurrence, target_day, chosen)

    return plan
