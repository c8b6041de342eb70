from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..config import DEFAULT_SCHEDULE_CONFIG, ScheduleConfig
from .clock import SimTime
from .constraints import BookingCheck, BookingRequest, can_book
from .entities import Facility, Session, Therapist
from .sessions import cancel_session
from .slots import (
    ScheduleIndex,
    can_schedule_more_today,
    client_has_conflict,
    slot_conflicts,
    validate_not_in_past,
)


@dataclass(frozen=True)
class BookingOutcome:
    ok: bool
    session: Optional[Session] = None
    reason: Optional[str] = None


def new_session_id() -> str:
    return "sess_" + uuid.uuid4().hex[:12]


def check_placement(
    index: ScheduleIndex,
    sessions: Iterable[Session],
    facility: Facility,
    therapist: Therapist,
    client_id: str,
    request: BookingRequest,
    config: ScheduleConfig = DEFAULT_SCHEDULE_CONFIG,
) -> BookingCheck:
    """Resource checks shared by direct bookings, suggestions and recurring plans."""
    conflicts = slot_conflicts(index, therapist.id, request.day, request.hour, request.duration_minutes)
    if conflicts:
        hour, _ = conflicts[0]
        return BookingCheck.rejected(f"therapist already booked at hour {hour}")

    if client_has_conflict(sessions, client_id, request.day, request.hour, request.duration_minutes):
        return BookingCheck.rejected("client has a conflicting session")

    if not can_schedule_more_today(index, therapist.id, request.day, config):
        return BookingCheck.rejected("therapist has reached the daily session limit")

    return can_book(facility, index, therapist.work_schedule, request)


def book_session(
    index: ScheduleIndex,
    sessions: Sequence[Session],
    facility: Facility,
    therapist: Therapist,
    client_id: str,
    now: SimTime,
    request: BookingRequest,
    session_id: Optional[str] = None,
    config: ScheduleConfig = DEFAULT_SCHEDULE_CONFIG,
) -> BookingOutcome:
    """
    Place one session. Rejections come back as a BookingOutcome, never raised.
    On success the new session is already reserved in `index`.
    """
    timing = validate_not_in_past(now, request.day, request.hour)
    if not timing.valid:
        return BookingOutcome(False, reason=timing.reason)

    check = check_placement(index, sessions, facility, therapist, client_id, request, config)
    if not check.ok:
        return BookingOutcome(False, reason=check.reason)

    session = Session(
        id=session_id or new_session_id(),
        therapist_id=therapist.id,
        client_id=client_id,
        scheduled_day=request.day,
        scheduled_hour=request.hour,
        duration_minutes=request.duration_minutes,
        is_virtual=request.is_virtual,
    )
    index.add_session(session)
    return BookingOutcome(True, session=session)


def cancel_booking(index: ScheduleIndex, session: Session) -> Session:
    cancelled = cancel_session(session)
    index.remove_session(session)
    return cancelled


def commit_recurring(
    index: ScheduleIndex,
    planned: Iterable,
    therapist_id: str,
    client_id: str,
    duration_minutes: int,
    is_virtual: bool,
) -> List[Session]:
    """Turn planned (day, hour) slots from the recurring planner into sessions."""
    created = []
    for slot in planned:
        session = Session(
            id=new_session_id(),
            therapist_id=therapist_id,
            client_id=client_id,
            scheduled_day=slot.day,
            scheduled_hour=slot.hour,
            duration_minutes=duration_minutes,
            is_virtual=is_virtual,
        )
        index.add_session(session)
        created.append(session)
    return created
