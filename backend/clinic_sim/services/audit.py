from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List

from sqlmodel import Session, select

from ..models import PracticeRecord, SimulationEvent


def log_event(session: Session, event_type: str, payload: Dict[str, Any]) -> None:
    """
    Append-only log of simulation and booking events, stamped with the
    simulated time at which they happened. Payload stored as a JSON string.
    """
    practice = session.get(PracticeRecord, 1)
    day, hour, minute = (practice.day, practice.hour, practice.minute) if practice else (1, 0, 0)

    ev = SimulationEvent(
        id="evt_" + uuid.uuid4().hex[:12],
        event_type=event_type,
        day=day,
        hour=hour,
        minute=minute,
        payload_json=json.dumps(payload, ensure_ascii=False),
    )
    session.add(ev)
    session.commit()


def recent_events(session: Session, limit: int = 50) -> List[SimulationEvent]:
    stmt = select(SimulationEvent).order_by(SimulationEvent.created_at.desc()).limit(limit)
    return list(session.exec(stmt).all())
