from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..config import DEFAULT_SCHEDULE_CONFIG, WEEKDAYS, ScheduleConfig
from .clock import SimTime
from .entities import ACTIVE_STATUSES, Client, Session, Therapist, TimePreference, WorkSchedule
from .work_schedule import ScheduleValidation, is_within_work_hours

HOURS_PER_DAY = 24


class OccupantKind(str, Enum):
    session = "session"
    break_ = "break"
    training = "training"


@dataclass(frozen=True)
class Occupant:
    kind: OccupantKind
    session_id: Optional[str] = None
    is_virtual: bool = False

    @classmethod
    def for_session(cls, session: Session) -> "Occupant":
        return cls(OccupantKind.session, session.id, session.is_virtual)

    @classmethod
    def on_break(cls) -> "Occupant":
        return cls(OccupantKind.break_)

    @classmethod
    def in_training(cls) -> "Occupant":
        return cls(OccupantKind.training)


def span_hours(start_hour: int, duration_minutes: int) -> List[int]:
    """Hours touched by a session; a partial hour counts as a whole one."""
    if duration_minutes <= 0:
        raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")
    return [start_hour + i for i in range(math.ceil(duration_minutes / 60))]


class ScheduleIndex:
    """
    Derived lookup table: day -> hour (0..23) -> therapist_id -> Occupant.
    Always rebuildable from sessions; never the source of truth.
    """

    def __init__(self) -> None:
        self._days: Dict[int, List[Dict[str, Occupant]]] = {}

    def _hour(self, day: int, hour: int, create: bool = False) -> Optional[Dict[str, Occupant]]:
        if not 0 <= hour < HOURS_PER_DAY:
            if create:
                raise ValueError(f"hour {hour} is outside the day")
            return None
        hours = self._days.get(day)
        if hours is None:
            if not create:
                return None
            hours = [{} for _ in range(HOURS_PER_DAY)]
            self._days[day] = hours
        return hours[hour]

    def get(self, day: int, hour: int, therapist_id: str) -> Optional[Occupant]:
        slot = self._hour(day, hour)
        return slot.get(therapist_id) if slot else None

    def add_session(self, session: Session) -> None:
        occupant = Occupant.for_session(session)
        for hour in span_hours(session.scheduled_hour, session.duration_minutes):
            self._hour(session.scheduled_day, hour, create=True)[session.therapist_id] = occupant

    def remove_session(self, session: Session) -> None:
        for hour in span_hours(session.scheduled_hour, session.duration_minutes):
            slot = self._hour(session.scheduled_day, hour)
            if slot is None:
                continue
            current = slot.get(session.therapist_id)
            if current is not None and current.session_id == session.id:
                del slot[session.therapist_id]

    def block(self, day: int, hours: Iterable[int], therapist_id: str, occupant: Occupant) -> None:
        for hour in hours:
            self._hour(day, hour, create=True)[therapist_id] = occupant

    def in_person_count(self, day: int, hour: int) -> int:
        slot = self._hour(day, hour) or {}
        return sum(1 for o in slot.values() if o.kind == OccupantKind.session and not o.is_virtual)

    def session_ids_on_day(self, day: int, therapist_id: Optional[str] = None) -> Set[str]:
        ids: Set[str] = set()
        for slot in self._days.get(day, ()):
            for tid, occupant in slot.items():
                if occupant.session_id and (therapist_id is None or tid == therapist_id):
                    ids.add(occupant.session_id)
        return ids

    def days(self) -> List[int]:
        return sorted(self._days)

    def copy(self) -> "ScheduleIndex":
        clone = ScheduleIndex()
        clone._days = {day: [dict(slot) for slot in hours] for day, hours in self._days.items()}
        return clone

    def to_dict(self) -> Dict[int, Dict[int, Dict[str, Occupant]]]:
        out: Dict[int, Dict[int, Dict[str, Occupant]]] = {}
        for day in self.days():
            hours = {h: dict(slot) for h, slot in enumerate(self._days[day]) if slot}
            if hours:
                out[day] = hours
        return out

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScheduleIndex):
            return NotImplemented
        return self.to_dict() == other.to_dict()


def rebuild_from_sessions(sessions: Iterable[Session]) -> ScheduleIndex:
    # Completed, cancelled and conflicting sessions never occupy a slot.
    index = ScheduleIndex()
    for session in sorted((s for s in sessions if s.status in ACTIVE_STATUSES), key=lambda s: s.id):
        index.add_session(session)
    return index


def is_occupied(
    index: ScheduleIndex,
    day: int,
    hour: int,
    therapist_id: str,
    work_schedule: Optional[WorkSchedule] = None,
) -> Optional[Occupant]:
    occupant = index.get(day, hour, therapist_id)
    if occupant is None and work_schedule is not None and hour in work_schedule.break_hours:
        return Occupant.on_break()
    return occupant


def slot_conflicts(
    index: ScheduleIndex, therapist_id: str, day: int, hour: int, duration_minutes: int
) -> List[Tuple[int, Occupant]]:
    conflicts = []
    for h in span_hours(hour, duration_minutes):
        occupant = index.get(day, h, therapist_id)
        if occupant is not None:
            conflicts.append((h, occupant))
    return conflicts


def is_slot_available(
    index: ScheduleIndex, therapist: Therapist, day: int, hour: int, duration_minutes: int
) -> bool:
    for h in span_hours(hour, duration_minutes):
        if not is_within_work_hours(therapist.work_schedule, h):
            return False
        if index.get(day, h, therapist.id) is not None:
            return False
    return True


def client_has_conflict(
    sessions: Iterable[Session], client_id: str, day: int, hour: int, duration_minutes: int
) -> bool:
    proposed = span_hours(hour, duration_minutes)
    start, end = proposed[0], proposed[-1] + 1
    for s in sessions:
        if s.client_id != client_id or s.scheduled_day != day or s.status not in ACTIVE_STATUSES:
            continue
        taken = span_hours(s.scheduled_hour, s.duration_minutes)
        if start < taken[-1] + 1 and taken[0] < end:
            return True
    return False


def count_sessions_for_day(index: ScheduleIndex, therapist_id: str, day: int) -> int:
    return len(index.session_ids_on_day(day, therapist_id))


def can_schedule_more_today(
    index: ScheduleIndex,
    therapist_id: str,
    day: int,
    config: ScheduleConfig = DEFAULT_SCHEDULE_CONFIG,
) -> bool:
    return count_sessions_for_day(index, therapist_id, day) < config.max_sessions_per_day


def validate_not_in_past(now: SimTime, day: int, hour: int) -> ScheduleValidation:
    """Sessions start on the hour, so the current hour is only bookable at minute 0."""
    if day < now.day:
        return ScheduleValidation(False, "Cannot schedule for a previous day")
    if day == now.day:
        if hour < now.hour:
            return ScheduleValidation(False, "Cannot schedule for a past hour")
        if hour == now.hour and now.minute > 0:
            return ScheduleValidation(False, "Cannot schedule for an hour already in progress")
    return ScheduleValidation(True)


def day_of_week(day: int) -> str:
    # Day 1 is a Monday; the practice runs Monday to Friday.
    return WEEKDAYS[(day - 1) % len(WEEKDAYS)]


def matches_time_preference(hour: int, preference: TimePreference) -> bool:
    if preference == TimePreference.morning:
        return 8 <= hour < 12
    if preference == TimePreference.afternoon:
        return 12 <= hour < 16
    if preference == TimePreference.evening:
        return 16 <= hour < 18
    return True


def is_preferred_hour(client: Client, day: int, hour: int) -> bool:
    available = client.availability.get(day_of_week(day))
    if client.availability and (not available or hour not in available):
        return False
    return matches_time_preference(hour, client.preferred_time)
