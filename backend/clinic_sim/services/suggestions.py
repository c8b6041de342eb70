from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import DEFAULT_DURATION, DEFAULT_SCHEDULE_CONFIG, FREQUENCY_DAYS, ScheduleConfig
from .booking import check_placement
from .clock import SimTime
from .constraints import BookingRequest
from .entities import (
    ClientStatus,
    Client,
    Facility,
    Session,
    SessionStatus,
    Therapist,
)
from .slots import ScheduleIndex, is_preferred_hour, validate_not_in_past
from .work_schedule import working_hours


class Urgency(str, Enum):
    overdue = "overdue"
    due_soon = "due_soon"
    normal = "normal"


URGENCY_RANK = {Urgency.overdue: 0, Urgency.due_soon: 1, Urgency.normal: 2}


class SuggestionReason(str, Enum):
    overdue_followup = "overdue_followup"
    due_soon = "due_soon"
    first_session = "first_session"
    therapist_continuity = "therapist_continuity"
    good_slot_available = "good_slot_available"


@dataclass(frozen=True)
class FollowUpInfo:
    last_session_day: Optional[int]
    next_due_day: Optional[int]
    days_until_due: Optional[int]  # negative when overdue
    is_overdue: bool
    has_upcoming_session: bool
    remaining_sessions: int


@dataclass(frozen=True)
class BookingSuggestion:
    id: str
    client_id: str
    therapist_id: str
    suggested_day: int
    suggested_hour: int
    duration: int
    is_virtual: bool
    urgency: Urgency
    reason: SuggestionReason
    days_until_due: Optional[int] = None
    is_preferred_slot: bool = False
    suggested_recurring_count: int = 1
    suggested_interval_days: int = 7


@dataclass(frozen=True)
class UnschedulableClient:
    client_id: str
    reason: str


@dataclass
class SuggestionResult:
    suggestions: List[BookingSuggestion] = field(default_factory=list)
    unschedulable: List[UnschedulableClient] = field(default_factory=list)


def get_follow_up_info(client: Client, sessions: Sequence[Session], current_day: int) -> FollowUpInfo:
    own = [s for s in sessions if s.client_id == client.id]
    completed = [s for s in own if s.status == SessionStatus.completed and s.completed_at is not None]
    has_upcoming = any(
        s.status == SessionStatus.in_progress
        or (s.status == SessionStatus.scheduled and s.scheduled_day >= current_day)
        for s in own
    )
    remaining = client.remaining_sessions

    if not completed:
        return FollowUpInfo(None, None, None, False, has_upcoming, remaining)

    last_day = max(s.completed_at for s in completed).day
    cadence = FREQUENCY_DAYS[client.preferred_frequency.value]
    if cadence == 0 or remaining <= 0:
        return FollowUpInfo(last_day, None, None, False, has_upcoming, remaining)

    due_day = last_day + cadence
    days_until_due = due_day - current_day
    return FollowUpInfo(
        last_session_day=last_day,
        next_due_day=due_day,
        days_until_due=days_until_due,
        is_overdue=days_until_due < 0 and not has_upcoming,
        has_upcoming_session=has_upcoming,
        remaining_sessions=remaining,
    )


def determine_urgency(follow_up: FollowUpInfo, config: ScheduleConfig = DEFAULT_SCHEDULE_CONFIG) -> Urgency:
    if follow_up.is_overdue:
        return Urgency.overdue
    if follow_up.days_until_due is not None and follow_up.days_until_due <= config.due_soon_days:
        return Urgency.due_soon
    return Urgency.normal


def _urgency_key(urgency: Urgency, days_until_due: Optional[int]) -> Tuple[int, bool, int]:
    return URGENCY_RANK[urgency], days_until_due is None, days_until_due or 0


def _order_therapists(
    client: Client, therapists: Sequence[Therapist], sessions: Sequence[Session]
) -> List[Therapist]:
    eligible = [
        t for t in therapists
        if client.required_certification is None or client.required_certification in t.certifications
    ]
    assigned = [t for t in eligible if t.id == client.assigned_therapist_id]

    load: Dict[str, int] = {}
    for s in sessions:
        if s.status == SessionStatus.scheduled:
            load[s.therapist_id] = load.get(s.therapist_id, 0) + 1

    others = sorted(
        (t for t in eligible if t.id != client.assigned_therapist_id and t.accepts_bookings),
        key=lambda t: (load.get(t.id, 0), t.id),
    )
    return assigned + others


def _best_slot(
    index: ScheduleIndex,
    sessions: Sequence[Session],
    facility: Facility,
    therapist: Therapist,
    client: Client,
    now: SimTime,
    is_virtual: bool,
    days_ahead: int,
    config: ScheduleConfig,
) -> Optional[Tuple[int, int]]:
    """
    Earliest legal slot in the window that suits the client (availability and
    time of day); failing that, the earliest legal slot at all.
    """
    earliest = None
    for day in range(now.day, now.day + days_ahead):
        for hour in working_hours(therapist.work_schedule):
            if not validate_not_in_past(now, day, hour).valid:
                continue
            request = BookingRequest(day, hour, DEFAULT_DURATION, is_virtual)
            if not check_placement(index, sessions, facility, therapist, client.id, request, config).ok:
                continue
            if is_preferred_hour(client, day, hour):
                return day, hour
            if earliest is None:
                earliest = day, hour
    return earliest


def generate_booking_suggestions(
    clients: Sequence[Client],
    therapists: Sequence[Therapist],
    sessions: Sequence[Session],
    index: ScheduleIndex,
    facility: Facility,
    now: SimTime,
    max_suggestions: int = 10,
    days_ahead: Optional[int] = None,
    config: ScheduleConfig = DEFAULT_SCHEDULE_CONFIG,
) -> SuggestionResult:
    """
    Suggest the next booking for every client that still needs one.

    Clients are handled most urgent first and each accepted suggestion holds
    its slot in a scratch copy of the index, so two suggestions never compete
    for the same therapist hour. Output order: overdue, due soon, normal, then
    by how close the due day is. Deterministic for a given snapshot.
    """
    days_ahead = config.suggestion_days_ahead if days_ahead is None else days_ahead
    working_index = index.copy()
    working_sessions = list(sessions)
    result = SuggestionResult()

    candidates = []
    for client in clients:
        if client.status not in (ClientStatus.waiting, ClientStatus.in_treatment):
            continue
        follow_up = get_follow_up_info(client, sessions, now.day)
        if follow_up.has_upcoming_session or follow_up.remaining_sessions <= 0:
            continue
        urgency = determine_urgency(follow_up, config)
        candidates.append((_urgency_key(urgency, follow_up.days_until_due), client.id, client, follow_up, urgency))
    candidates.sort(key=lambda c: (c[0], c[1]))

    for _, _, client, follow_up, urgency in candidates:
        ordered = _order_therapists(client, therapists, working_sessions)
        if not ordered:
            reason = (
                f"no therapist holds the {client.required_certification} certification"
                if client.required_certification
                else "no eligible therapist available"
            )
            result.unschedulable.append(UnschedulableClient(client.id, reason))
            continue

        modes = [client.prefers_virtual, not client.prefers_virtual]
        if not facility.telehealth_unlocked:
            modes = [False]

        found = None
        for therapist in ordered:
            for is_virtual in modes:
                slot = _best_slot(
                    working_index, working_sessions, facility, therapist, client, now,
                    is_virtual, days_ahead, config,
                )
                if slot:
                    found = therapist, is_virtual, slot
                    break
            if found:
                break

        if not found:
            result.unschedulable.append(
                UnschedulableClient(client.id, f"no available slot in the next {days_ahead} days")
            )
            continue

        therapist, is_virtual, (day, hour) = found
        if urgency == Urgency.overdue:
            reason = SuggestionReason.overdue_followup
        elif urgency == Urgency.due_soon:
            reason = SuggestionReason.due_soon
        elif follow_up.last_session_day is None:
            reason = SuggestionReason.first_session
        elif therapist.id == client.assigned_therapist_id:
            reason = SuggestionReason.therapist_continuity
        else:
            reason = SuggestionReason.good_slot_available

        cadence = FREQUENCY_DAYS[client.preferred_frequency.value]
        suggestion = BookingSuggestion(
            id=f"sug_{client.id}_{therapist.id}_{day}_{hour}",
            client_id=client.id,
            therapist_id=therapist.id,
            suggested_day=day,
            suggested_hour=hour,
            duration=DEFAULT_DURATION,
            is_virtual=is_virtual,
            urgency=urgency,
            reason=reason,
            days_until_due=follow_up.days_until_due,
            is_preferred_slot=is_preferred_hour(client, day, hour),
            suggested_recurring_count=max(1, min(follow_up.remaining_sessions, config.max_recurring_suggestion)),
            suggested_interval_days=cadence or 7,
        )
        result.suggestions.append(suggestion)

        hold = Session(
            id=suggestion.id,
            therapist_id=therapist.id,
            client_id=client.id,
            scheduled_day=day,
            scheduled_hour=hour,
            duration_minutes=DEFAULT_DURATION,
            is_virtual=is_virtual,
        )
        working_index.add_session(hold)
        working_sessions.append(hold)

    result.suggestions.sort(key=lambda s: (_urgency_key(s.urgency, s.days_until_due), s.client_id))
    del result.suggestions[max_suggestions:]
    return result
