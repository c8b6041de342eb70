from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from ..config import DEFAULT_TIME_CONFIG, SESSION_DURATIONS
from .clock import SimTime


class SessionStatus(str, Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    conflict = "conflict"


class TherapistStatus(str, Enum):
    available = "available"
    in_session = "in_session"
    on_break = "on_break"
    in_training = "in_training"
    burned_out = "burned_out"


class ClientStatus(str, Enum):
    waiting = "waiting"
    in_treatment = "in_treatment"
    completed = "completed"
    dropped = "dropped"


class Frequency(str, Enum):
    once = "once"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"


class TimePreference(str, Enum):
    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"
    any = "any"


ACTIVE_STATUSES = (SessionStatus.scheduled, SessionStatus.in_progress)
FINAL_STATUSES = (SessionStatus.completed, SessionStatus.cancelled)


@dataclass(frozen=True)
class WorkSchedule:
    start_hour: int = DEFAULT_TIME_CONFIG.business_start
    end_hour: int = DEFAULT_TIME_CONFIG.business_end
    break_hours: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class Facility:
    room_count: int = 1
    telehealth_unlocked: bool = False


@dataclass(frozen=True)
class Therapist:
    id: str
    name: str = ""
    certifications: FrozenSet[str] = frozenset()
    work_schedule: WorkSchedule = field(default_factory=WorkSchedule)
    status: TherapistStatus = TherapistStatus.available

    @property
    def accepts_bookings(self) -> bool:
        return self.status not in (TherapistStatus.in_training, TherapistStatus.burned_out)


@dataclass(frozen=True)
class Client:
    id: str
    name: str = ""
    status: ClientStatus = ClientStatus.waiting
    sessions_required: int = 8
    sessions_completed: int = 0
    prefers_virtual: bool = False
    preferred_frequency: Frequency = Frequency.weekly
    preferred_time: TimePreference = TimePreference.any
    # weekday name -> available hours; empty means no stated availability
    availability: Dict[str, Tuple[int, ...]] = field(default_factory=dict)
    required_certification: Optional[str] = None
    assigned_therapist_id: Optional[str] = None

    @property
    def remaining_sessions(self) -> int:
        return self.sessions_required - self.sessions_completed


@dataclass(frozen=True)
class Session:
    id: str
    therapist_id: str
    client_id: str
    scheduled_day: int
    scheduled_hour: int
    duration_minutes: int = 50
    is_virtual: bool = False
    status: SessionStatus = SessionStatus.scheduled
    progress: float = 0.0
    completed_at: Optional[SimTime] = None

    def __post_init__(self) -> None:
        if self.duration_minutes not in SESSION_DURATIONS:
            raise ValueError(
                f"duration_minutes must be one of {SESSION_DURATIONS}, got {self.duration_minutes}"
            )

    @property
    def start_time(self) -> SimTime:
        return SimTime(self.scheduled_day, self.scheduled_hour, 0)


@dataclass(frozen=True)
class SimulationState:
    """Snapshot pulled by the simulation loop at the start of every tick."""
    time: SimTime
    speed: int = 1
    paused: bool = False
    sessions: Tuple[Session, ...] = ()
    therapists: Tuple[Therapist, ...] = ()
