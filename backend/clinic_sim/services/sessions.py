from __future__ import annotations

from dataclasses import replace

from .clock import SimTime
from .entities import FINAL_STATUSES, Session, SessionStatus


def start_session(session: Session) -> Session:
    if session.status != SessionStatus.scheduled:
        raise ValueError(f"Session {session.id} cannot start from status {session.status.value}")
    return replace(session, status=SessionStatus.in_progress)


def tick_session(session: Session, elapsed_minutes: int, now: SimTime) -> Session:
    """Accumulate progress; the session completes once progress reaches 1."""
    if session.status != SessionStatus.in_progress:
        raise ValueError(f"Session {session.id} is not in progress")
    if elapsed_minutes <= 0:
        return session

    progress = min(1.0, session.progress + elapsed_minutes / session.duration_minutes)
    if progress >= 1.0:
        return replace(session, progress=1.0, status=SessionStatus.completed, completed_at=now)
    return replace(session, progress=progress)


def cancel_session(session: Session) -> Session:
    if session.status in FINAL_STATUSES:
        raise ValueError(f"Session {session.id} is already {session.status.value}")
    return replace(session, status=SessionStatus.cancelled)
