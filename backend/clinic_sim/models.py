from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, Index

from .services.entities import (
    ClientStatus,
    Frequency,
    SessionStatus,
    TherapistStatus,
    TimePreference,
)


class PracticeRecord(SQLModel, table=True):
    id: int = Field(default=1, primary_key=True)
    day: int = 1
    hour: int = 8
    minute: int = 0
    speed: int = 1
    paused: bool = True
    room_count: int = 1
    telehealth_unlocked: bool = False


class TherapistRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    certifications: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    work_start_hour: int = 8
    work_end_hour: int = 17
    break_hours: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    status: TherapistStatus = TherapistStatus.available


class ClientRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    status: ClientStatus = ClientStatus.waiting
    sessions_required: int = 8
    sessions_completed: int = 0
    prefers_virtual: bool = False
    preferred_frequency: Frequency = Frequency.weekly
    preferred_time: TimePreference = TimePreference.any
    availability: Dict[str, List[int]] = Field(default_factory=dict, sa_column=Column(JSON))
    required_certification: Optional[str] = None
    assigned_therapist_id: Optional[str] = Field(default=None, foreign_key="therapistrecord.id")


class SessionRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    therapist_id: str = Field(foreign_key="therapistrecord.id")
    client_id: str = Field(foreign_key="clientrecord.id")
    scheduled_day: int
    scheduled_hour: int
    duration_minutes: int = 50
    is_virtual: bool = False
    status: SessionStatus = SessionStatus.scheduled
    progress: float = 0.0

    completed_day: Optional[int] = None
    completed_hour: Optional[int] = None
    completed_minute: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


Index("idx_session_day_hour_status", SessionRecord.scheduled_day, SessionRecord.scheduled_hour, SessionRecord.status)


class SimulationEvent(SQLModel, table=True):
    id: str = Field(primary_key=True)
    event_type: str
    day: int
    hour: int
    minute: int
    payload_json: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
