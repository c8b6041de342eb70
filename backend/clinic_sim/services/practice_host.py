from __future__ import annotations

import logging
from typing import Any, Dict

from sqlalchemy.engine import Engine
from sqlmodel import Session

from ..models import SessionRecord
from . import store
from .audit import log_event
from .clock import AdvanceResult, SimTime, format_time
from .engine import FrameScheduler, SimulationLoop
from .entities import SessionStatus, SimulationState
from .sessions import start_session, tick_session

logger = logging.getLogger(__name__)


class PracticeHost:
    """
    Database-backed collaborators for the simulation loop: state snapshots,
    time write-back, session progress and the event log.
    Each callback runs in its own short database session.
    """

    def __init__(self, bind: Engine):
        self.bind = bind

    def read_state(self) -> SimulationState:
        with Session(self.bind) as s:
            return store.load_state(s).simulation_state()

    def write_time(self, time: SimTime) -> None:
        with Session(self.bind) as s:
            store.save_time(s, time)

    def on_session_start(self, session_id: str) -> None:
        with Session(self.bind) as s:
            rec = s.get(SessionRecord, session_id)
            if rec is None:
                logger.warning("Start requested for unknown session %s", session_id)
                return
            started = start_session(store.session_from_record(rec))
            store.save_session(s, started)
            log_event(s, "session_started", {"session_id": session_id})

    def on_session_tick(self, session_id: str, elapsed_minutes: int) -> None:
        with Session(self.bind) as s:
            rec = s.get(SessionRecord, session_id)
            if rec is None:
                return
            now = store.load_state(s).time
            updated = tick_session(store.session_from_record(rec), elapsed_minutes, now)
            store.save_session(s, updated)
            if updated.status == SessionStatus.completed:
                store.record_completion(s, updated.client_id)
                log_event(s, "session_completed", {"session_id": session_id, "at": format_time(now)})

    def on_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        # Minute ticks are too chatty for the log.
        if event_type == "minute_changed":
            return
        with Session(self.bind) as s:
            log_event(s, event_type, payload)

    def on_time_advance(self, result: AdvanceResult) -> None:
        logger.debug("Clock %s -> %s", format_time(result.previous_time), format_time(result.new_time))

    def build_loop(self, frame_scheduler: FrameScheduler, **kwargs: Any) -> SimulationLoop:
        return SimulationLoop(
            read_state=self.read_state,
            write_time=self.write_time,
            frame_scheduler=frame_scheduler,
            on_session_tick=self.on_session_tick,
            on_session_start=self.on_session_start,
            on_time_advance=self.on_time_advance,
            on_event=self.on_event,
            **kwargs,
        )
