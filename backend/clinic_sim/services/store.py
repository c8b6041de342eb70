from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlmodel import Session, select

from ..config import DEFAULT_TIME_CONFIG
from ..models import ClientRecord, PracticeRecord, SessionRecord, SimulationEvent, TherapistRecord
from . import entities
from .clock import SimTime
from .slots import ScheduleIndex, rebuild_from_sessions

logger = logging.getLogger(__name__)


@dataclass
class PracticeSnapshot:
    time: SimTime
    speed: int
    paused: bool
    facility: entities.Facility
    therapists: Tuple[entities.Therapist, ...]
    clients: Tuple[entities.Client, ...]
    sessions: Tuple[entities.Session, ...]
    index: ScheduleIndex

    def simulation_state(self) -> entities.SimulationState:
        return entities.SimulationState(
            time=self.time,
            speed=self.speed,
            paused=self.paused,
            sessions=self.sessions,
            therapists=self.therapists,
        )

    def therapist(self, therapist_id: str) -> Optional[entities.Therapist]:
        return next((t for t in self.therapists if t.id == therapist_id), None)

    def client(self, client_id: str) -> Optional[entities.Client]:
        return next((c for c in self.clients if c.id == client_id), None)


def therapist_from_record(rec: TherapistRecord) -> entities.Therapist:
    return entities.Therapist(
        id=rec.id,
        name=rec.name,
        certifications=frozenset(rec.certifications or []),
        work_schedule=entities.WorkSchedule(
            start_hour=rec.work_start_hour,
            end_hour=rec.work_end_hour,
            break_hours=frozenset(rec.break_hours or []),
        ),
        status=entities.TherapistStatus(rec.status),
    )


def client_from_record(rec: ClientRecord) -> entities.Client:
    return entities.Client(
        id=rec.id,
        name=rec.name,
        status=entities.ClientStatus(rec.status),
        sessions_required=rec.sessions_required,
        sessions_completed=rec.sessions_completed,
        prefers_virtual=rec.prefers_virtual,
        preferred_frequency=entities.Frequency(rec.preferred_frequency),
        preferred_time=entities.TimePreference(rec.preferred_time),
        availability={k: tuple(v) for k, v in (rec.availability or {}).items()},
        required_certification=rec.required_certification,
        assigned_therapist_id=rec.assigned_therapist_id,
    )


def session_from_record(rec: SessionRecord) -> entities.Session:
    completed_at = None
    if rec.completed_day is not None:
        completed_at = SimTime(rec.completed_day, rec.completed_hour or 0, rec.completed_minute or 0)
    return entities.Session(
        id=rec.id,
        therapist_id=rec.therapist_id,
        client_id=rec.client_id,
        scheduled_day=rec.scheduled_day,
        scheduled_hour=rec.scheduled_hour,
        duration_minutes=rec.duration_minutes,
        is_virtual=rec.is_virtual,
        status=entities.SessionStatus(rec.status),
        progress=rec.progress,
        completed_at=completed_at,
    )


def get_practice(session: Session) -> PracticeRecord:
    practice = session.get(PracticeRecord, 1)
    if practice is None:
        practice = PracticeRecord(id=1, hour=DEFAULT_TIME_CONFIG.business_start)
        session.add(practice)
        session.commit()
        session.refresh(practice)
    return practice


def load_state(session: Session) -> PracticeSnapshot:
    """
    Read the whole practice. The schedule index is always rebuilt from the
    session rows; a stored index is never trusted.
    """
    practice = get_practice(session)
    sessions = tuple(session_from_record(r) for r in session.exec(select(SessionRecord)).all())
    return PracticeSnapshot(
        time=SimTime(practice.day, practice.hour, practice.minute),
        speed=practice.speed,
        paused=practice.paused,
        facility=entities.Facility(practice.room_count, practice.telehealth_unlocked),
        therapists=tuple(therapist_from_record(r) for r in session.exec(select(TherapistRecord)).all()),
        clients=tuple(client_from_record(r) for r in session.exec(select(ClientRecord)).all()),
        sessions=sessions,
        index=rebuild_from_sessions(sessions),
    )


def save_time(session: Session, time: SimTime) -> None:
    practice = get_practice(session)
    practice.day, practice.hour, practice.minute = time.day, time.hour, time.minute
    session.add(practice)
    session.commit()


def save_session(session: Session, entity: entities.Session) -> SessionRecord:
    rec = session.get(SessionRecord, entity.id) or SessionRecord(
        id=entity.id,
        therapist_id=entity.therapist_id,
        client_id=entity.client_id,
        scheduled_day=entity.scheduled_day,
        scheduled_hour=entity.scheduled_hour,
    )
    rec.scheduled_day = entity.scheduled_day
    rec.scheduled_hour = entity.scheduled_hour
    rec.duration_minutes = entity.duration_minutes
    rec.is_virtual = entity.is_virtual
    rec.status = entity.status
    rec.progress = entity.progress
    if entity.completed_at is not None:
        rec.completed_day = entity.completed_at.day
        rec.completed_hour = entity.completed_at.hour
        rec.completed_minute = entity.completed_at.minute
    session.add(rec)
    session.commit()
    session.refresh(rec)
    return rec


def save_work_schedule(session: Session, therapist: entities.Therapist) -> None:
    rec = session.get(TherapistRecord, therapist.id)
    if rec is None:
        raise KeyError("Therapist not found")
    rec.work_start_hour = therapist.work_schedule.start_hour
    rec.work_end_hour = therapist.work_schedule.end_hour
    rec.break_hours = sorted(therapist.work_schedule.break_hours)
    session.add(rec)
    session.commit()


def record_completion(session: Session, client_id: str) -> None:
    rec = session.get(ClientRecord, client_id)
    if rec is None:
        return
    rec.sessions_completed += 1
    if rec.sessions_completed >= rec.sessions_required:
        rec.status = entities.ClientStatus.completed
    elif rec.status == entities.ClientStatus.waiting:
        rec.status = entities.ClientStatus.in_treatment
    session.add(rec)
    session.commit()


def reset_practice(session: Session) -> None:
    for model in (SimulationEvent, SessionRecord, ClientRecord, TherapistRecord, PracticeRecord):
        for row in session.exec(select(model)).all():
            session.delete(row)
        session.commit()
    seed_demo_practice(session)
    logger.info("Practice reset to demo data")


def seed_demo_practice(session: Session) -> None:
    if session.exec(select(TherapistRecord)).first():
        return

    practice = session.get(PracticeRecord, 1) or PracticeRecord(id=1)
    practice.day, practice.hour, practice.minute = 1, DEFAULT_TIME_CONFIG.business_start, 0
    practice.speed, practice.paused = 1, True
    practice.room_count, practice.telehealth_unlocked = 2, True
    session.add(practice)
    session.add_all([
        TherapistRecord(id="th_1", name="Dr. Maya Patel", break_hours=[12]),
        TherapistRecord(id="th_2", name="Dr. James Lee", certifications=["trauma_certified"],
                        work_start_hour=9, break_hours=[13]),
        TherapistRecord(id="th_3", name="Dr. Sofia Kim", certifications=["couples_certified"],
                        work_end_hour=14),
    ])
    session.commit()

    session.add_all([
        ClientRecord(id="cl_1", name="Client AB", status=entities.ClientStatus.in_treatment,
                     sessions_required=10, assigned_therapist_id="th_1"),
        ClientRecord(id="cl_2", name="Client CD", required_certification="trauma_certified",
                     preferred_time=entities.TimePreference.afternoon),
        ClientRecord(id="cl_3", name="Client EF", required_certification="couples_certified",
                     preferred_frequency=entities.Frequency.biweekly),
        ClientRecord(id="cl_4", name="Client GH", prefers_virtual=True,
                     availability={"monday": [9, 10, 11], "wednesday": [14, 15]}),
    ])
    session.commit()

    session.add(SessionRecord(id="sess_demo_1", therapist_id="th_1", client_id="cl_1",
                              scheduled_day=1, scheduled_hour=9))
    session.commit()
