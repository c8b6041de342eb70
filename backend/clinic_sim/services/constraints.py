from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .entities import Facility, WorkSchedule
from .slots import ScheduleIndex, span_hours


@dataclass(frozen=True)
class BookingRequest:
    day: int
    hour: int
    duration_minutes: int = 50
    is_virtual: bool = False


@dataclass(frozen=True)
class BookingCheck:
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def allowed(cls) -> "BookingCheck":
        return cls(True)

    @classmethod
    def rejected(cls, reason: str) -> "BookingCheck":
        return cls(False, reason)


def can_book(
    facility: Facility,
    index: ScheduleIndex,
    work_schedule: WorkSchedule,
    request: BookingRequest,
) -> BookingCheck:
    """
    Decide whether a session type can be placed at (day, hour).
    - Virtual sessions need telehealth and ignore room capacity.
    - In-person sessions need a free room in every hour they span.
    - Every spanned hour must be a working, non-break hour for the therapist.
    A multi-hour request fails as a whole; the reason names the first bad hour.
    """
    hours = span_hours(request.hour, request.duration_minutes)

    if request.is_virtual and not facility.telehealth_unlocked:
        return BookingCheck.rejected("telehealth locked")

    if not request.is_virtual:
        for hour in hours:
            if index.in_person_count(request.day, hour) >= facility.room_count:
                return BookingCheck.rejected(f"no rooms available at hour {hour}")

    for hour in hours:
        if hour in work_schedule.break_hours:
            return BookingCheck.rejected(f"therapist is on break at hour {hour}")
        if not work_schedule.start_hour <= hour < work_schedule.end_hour:
            return BookingCheck.rejected(f"outside work hours at hour {hour}")

    return BookingCheck.allowed()
