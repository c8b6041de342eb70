from __future__ import annotations

import json

from fastapi import FastAPI, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from .db import create_db_and_tables, get_session, engine, verify_connection
from .models import SessionRecord, TherapistRecord
from .schemas import (
    SimTimeModel, SkipTargetRequest, PracticeStateResponse, ClockUpdateRequest,
    TickRequest, TickResponse, SkipResponse,
    SessionOut, BookSessionRequest,
    RecurringBookingRequest, RecurringBookingResponse, PlannedSlotOut, RecurringFailureOut,
    SuggestionOut, UnschedulableOut, SuggestionsResponse,
    WorkScheduleRequest, WorkScheduleResponse,
    ScheduleSlotOut, ScheduleDayResponse,
    EventOut, EventsResponse,
)
from .services import store
from .services.audit import log_event, recent_events
from .services.booking import book_session, cancel_booking, commit_recurring
from .services.clock import SimTime, format_time
from .services.constraints import BookingRequest
from .services.engine import AsyncioFrameScheduler
from .services.entities import Session as SessionEntity
from .services.practice_host import PracticeHost
from .services.recurring import plan_recurring_bookings
from .services.suggestions import generate_booking_suggestions
from .services.work_schedule import update_work_schedule


app = FastAPI(title="Therapy Practice Simulation API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.state.engine = engine


@app.on_event("startup")
def on_startup():
    bind = app.state.engine
    verify_connection(bind)
    create_db_and_tables(bind)
    with Session(bind) as s:
        store.seed_demo_practice(s)

    host = PracticeHost(bind)
    app.state.host = host
    app.state.simulation = host.build_loop(AsyncioFrameScheduler())


@app.on_event("shutdown")
def on_shutdown():
    app.state.simulation.stop()


def _time_model(t: SimTime) -> SimTimeModel:
    return SimTimeModel(day=t.day, hour=t.hour, minute=t.minute)


def _session_out(s: SessionEntity) -> SessionOut:
    return SessionOut(
        id=s.id,
        therapist_id=s.therapist_id,
        client_id=s.client_id,
        scheduled_day=s.scheduled_day,
        scheduled_hour=s.scheduled_hour,
        duration_minutes=s.duration_minutes,
        is_virtual=s.is_virtual,
        status=s.status.value,
        progress=s.progress,
    )


def _state_response(session: Session) -> PracticeStateResponse:
    snapshot = store.load_state(session)
    nxt = app.state.simulation.get_next_session_time()
    return PracticeStateResponse(
        time=_time_model(snapshot.time),
        label=format_time(snapshot.time),
        speed=snapshot.speed,
        paused=snapshot.paused,
        running=app.state.simulation.running,
        room_count=snapshot.facility.room_count,
        telehealth_unlocked=snapshot.facility.telehealth_unlocked,
        next_session=_time_model(nxt) if nxt else None,
    )


def _require_participants(snapshot: store.PracticeSnapshot, therapist_id: str, client_id: str):
    therapist = snapshot.therapist(therapist_id)
    if not therapist:
        raise HTTPException(status_code=404, detail="Therapist not found")
    if not snapshot.client(client_id):
        raise HTTPException(status_code=404, detail="Client not found")
    return therapist


@app.get("/api/state", response_model=PracticeStateResponse)
def practice_state(session: Session = Depends(get_session)):
    return _state_response(session)


# Schedule and clock writes are async so they run one at a time on the
# event loop thread that also drives the simulation.
@app.post("/api/practice/reset", response_model=PracticeStateResponse)
async def reset(session: Session = Depends(get_session)):
    app.state.simulation.stop()
    store.reset_practice(session)
    return _state_response(session)


@app.patch("/api/clock", response_model=PracticeStateResponse)
async def update_clock(req: ClockUpdateRequest, session: Session = Depends(get_session)):
    practice = store.get_practice(session)
    if req.speed is not None:
        practice.speed = req.speed
    if req.paused is not None:
        practice.paused = req.paused
    session.add(practice)
    session.commit()
    return _state_response(session)


@app.post("/api/simulation/start", response_model=PracticeStateResponse)
async def start_simulation(session: Session = Depends(get_session)):
    app.state.simulation.start()
    return _state_response(session)


@app.post("/api/simulation/stop", response_model=PracticeStateResponse)
async def stop_simulation(session: Session = Depends(get_session)):
    app.state.simulation.stop()
    return _state_response(session)


@app.post("/api/simulation/tick", response_model=TickResponse)
async def manual_tick(req: TickRequest):
    loop = app.state.simulation
    if loop.running:
        raise HTTPException(status_code=409, detail="Simulation loop is running")

    result = loop.tick(req.elapsed_ms)
    return TickResponse(
        minutes=result.minutes,
        time=_time_model(result.new_time),
        events=[e.kind.value for e in result.effects],
    )


@app.post("/api/simulation/skip-to", response_model=SkipResponse)
async def skip_to(req: SkipTargetRequest):
    result = app.state.simulation.skip_to(SimTime(req.day, req.hour, req.minute))
    now = app.state.host.read_state().time
    return SkipResponse(skipped=result is not None, time=_time_model(now))


@app.post("/api/simulation/skip-next", response_model=SkipResponse)
async def skip_to_next_session():
    skipped = app.state.simulation.skip_to_next_session()
    now = app.state.host.read_state().time
    return SkipResponse(skipped=skipped, time=_time_model(now))


@app.get("/api/schedule/{day}", response_model=ScheduleDayResponse)
def schedule_for_day(day: int, session: Session = Depends(get_session)):
    snapshot = store.load_state(session)
    slots = []
    for hour, occupants in snapshot.index.to_dict().get(day, {}).items():
        for therapist_id, occupant in sorted(occupants.items()):
            slots.append(ScheduleSlotOut(
                hour=hour,
                therapist_id=therapist_id,
                occupant=occupant.kind.value,
                session_id=occupant.session_id,
                is_virtual=occupant.is_virtual,
            ))
    for therapist in snapshot.therapists:
        for hour in sorted(therapist.work_schedule.break_hours):
            slots.append(ScheduleSlotOut(hour=hour, therapist_id=therapist.id, occupant="break"))
    slots.sort(key=lambda s: (s.hour, s.therapist_id))
    return ScheduleDayResponse(day=day, slots=slots)


@app.post("/api/bookings", response_model=SessionOut)
async def create_booking(req: BookSessionRequest, session: Session = Depends(get_session)):
    snapshot = store.load_state(session)
    therapist = _require_participants(snapshot, req.therapist_id, req.client_id)

    outcome = book_session(
        snapshot.index,
        snapshot.sessions,
        snapshot.facility,
        therapist,
        req.client_id,
        snapshot.time,
        BookingRequest(req.day, req.hour, req.duration_minutes, req.is_virtual),
    )
    if not outcome.ok:
        raise HTTPException(status_code=409, detail=outcome.reason)

    store.save_session(session, outcome.session)
    log_event(session, "session_booked", {"session_id": outcome.session.id})
    return _session_out(outcome.session)


@app.post("/api/bookings/recurring", response_model=RecurringBookingResponse)
async def create_recurring_booking(req: RecurringBookingRequest, session: Session = Depends(get_session)):
    snapshot = store.load_state(session)
    therapist = _require_participants(snapshot, req.therapist_id, req.client_id)

    plan = plan_recurring_bookings(
        snapshot.index,
        snapshot.sessions,
        snapshot.facility,
        therapist,
        req.client_id,
        snapshot.time,
        start_day=req.day,
        start_hour=req.hour,
        duration_minutes=req.duration_minutes,
        is_virtual=req.is_virtual,
        count=req.count,
        interval_days=req.interval_days,
    )

    created = []
    if plan.planned and not req.dry_run:
        created = commit_recurring(
            snapshot.index, plan.planned, therapist.id, req.client_id, req.duration_minutes, req.is_virtual
        )
        for s in created:
            store.save_session(session, s)
        log_event(session, "recurring_booked", {"session_ids": [s.id for s in created]})

    return RecurringBookingResponse(
        planned=[PlannedSlotOut(day=p.day, hour=p.hour) for p in plan.planned],
        failures=[
            RecurringFailureOut(index=f.index, target_day=f.target_day, preferred_hour=f.preferred_hour, reason=f.reason)
            for f in plan.failures
        ],
        sessions=[_session_out(s) for s in created],
    )


@app.delete("/api/bookings/{session_id}", response_model=SessionOut)
async def cancel(session_id: str, session: Session = Depends(get_session)):
    rec = session.get(SessionRecord, session_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Session not found")

    snapshot = store.load_state(session)
    try:
        cancelled = cancel_booking(snapshot.index, store.session_from_record(rec))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    store.save_session(session, cancelled)
    log_event(session, "session_cancelled", {"session_id": session_id})
    return _session_out(cancelled)


@app.get("/api/suggestions", response_model=SuggestionsResponse)
def suggestions(max_suggestions: int = 10, days_ahead: int = 14, session: Session = Depends(get_session)):
    snapshot = store.load_state(session)
    result = generate_booking_suggestions(
        snapshot.clients,
        snapshot.therapists,
        snapshot.sessions,
        snapshot.index,
        snapshot.facility,
        snapshot.time,
        max_suggestions=max_suggestions,
        days_ahead=days_ahead,
    )
    return SuggestionsResponse(
        suggestions=[
            SuggestionOut(
                id=s.id,
                client_id=s.client_id,
                therapist_id=s.therapist_id,
                suggested_day=s.suggested_day,
                suggested_hour=s.suggested_hour,
                duration=s.duration,
                is_virtual=s.is_virtual,
                urgency=s.urgency.value,
                reason=s.reason.value,
                days_until_due=s.days_until_due,
                is_preferred_slot=s.is_preferred_slot,
                suggested_recurring_count=s.suggested_recurring_count,
                suggested_interval_days=s.suggested_interval_days,
            )
            for s in result.suggestions
        ],
        unschedulable=[UnschedulableOut(client_id=u.client_id, reason=u.reason) for u in result.unschedulable],
    )


@app.put("/api/therapists/{therapist_id}/work-schedule", response_model=WorkScheduleResponse)
async def set_work_schedule(therapist_id: str, req: WorkScheduleRequest, session: Session = Depends(get_session)):
    rec = session.get(TherapistRecord, therapist_id)
    if not rec:
        raise HTTPException(status_code=404, detail="Therapist not found")

    try:
        updated = update_work_schedule(
            store.therapist_from_record(rec),
            start_hour=req.start_hour,
            end_hour=req.end_hour,
            break_hours=req.break_hours,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    store.save_work_schedule(session, updated)
    ws = updated.work_schedule
    return WorkScheduleResponse(
        therapist_id=therapist_id,
        start_hour=ws.start_hour,
        end_hour=ws.end_hour,
        break_hours=sorted(ws.break_hours),
    )


@app.get("/api/events", response_model=EventsResponse)
def events(limit: int = 50, session: Session = Depends(get_session)):
    return EventsResponse(events=[
        EventOut(
            event_type=e.event_type,
            day=e.day,
            hour=e.hour,
            minute=e.minute,
            payload=json.loads(e.payload_json),
        )
        for e in recent_events(session, limit)
    ])
