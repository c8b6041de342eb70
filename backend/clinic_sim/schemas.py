from __future__ import annotations

from typing import Optional, List, Literal, Dict, Any
from pydantic import BaseModel, Field

from .config import DEFAULT_TIME_CONFIG

SessionDuration = Literal[50, 80, 180]
Urgency = Literal["overdue", "due_soon", "normal"]


class SimTimeModel(BaseModel):
    day: int = Field(..., ge=1)
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(0, ge=0, le=59)


class SkipTargetRequest(SimTimeModel):
    # the clock only ever shows business hours
    hour: int = Field(..., ge=DEFAULT_TIME_CONFIG.business_start, lt=DEFAULT_TIME_CONFIG.business_end)


class PracticeStateResponse(BaseModel):
    time: SimTimeModel
    label: str
    speed: int
    paused: bool
    running: bool
    room_count: int
    telehealth_unlocked: bool
    next_session: Optional[SimTimeModel] = None


class ClockUpdateRequest(BaseModel):
    speed: Optional[int] = Field(None, ge=0, le=5)
    paused: Optional[bool] = None


class TickRequest(BaseModel):
    elapsed_ms: float = Field(..., gt=0)


class TickResponse(BaseModel):
    minutes: int
    time: SimTimeModel
    events: List[str] = []


class SkipResponse(BaseModel):
    skipped: bool
    time: SimTimeModel


class SessionOut(BaseModel):
    id: str
    therapist_id: str
    client_id: str
    scheduled_day: int
    scheduled_hour: int
    duration_minutes: int
    is_virtual: bool
    status: str
    progress: float


class BookSessionRequest(BaseModel):
    therapist_id: str
    client_id: str
    day: int = Field(..., ge=1)
    hour: int = Field(..., ge=0, le=23)
    duration_minutes: SessionDuration = 50
    is_virtual: bool = False


class RecurringBookingRequest(BookSessionRequest):
    count: int = Field(..., ge=1, le=52)
    interval_days: int = Field(7, ge=0, le=90)
    dry_run: bool = False


class PlannedSlotOut(BaseModel):
    day: int
    hour: int


class RecurringFailureOut(BaseModel):
    index: int
    target_day: int
    preferred_hour: int
    reason: str


class RecurringBookingResponse(BaseModel):
    planned: List[PlannedSlotOut]
    failures: List[RecurringFailureOut]
    sessions: List[SessionOut] = []


class SuggestionOut(BaseModel):
    id: str
    client_id: str
    therapist_id: str
    suggested_day: int
    suggested_hour: int
    duration: int
    is_virtual: bool
    urgency: Urgency
    reason: str
    days_until_due: Optional[int] = None
    is_preferred_slot: bool
    suggested_recurring_count: int
    suggested_interval_days: int


class UnschedulableOut(BaseModel):
    client_id: str
    reason: str


class SuggestionsResponse(BaseModel):
    suggestions: List[SuggestionOut]
    unschedulable: List[UnschedulableOut]


class WorkScheduleRequest(BaseModel):
    start_hour: Optional[int] = Field(None, ge=0, le=23)
    end_hour: Optional[int] = Field(None, ge=1, le=24)
    break_hours: Optional[List[int]] = None


class WorkScheduleResponse(BaseModel):
    therapist_id: str
    start_hour: int
    end_hour: int
    break_hours: List[int]


class ScheduleSlotOut(BaseModel):
    hour: int
    therapist_id: str
    occupant: str
    session_id: Optional[str] = None
    is_virtual: bool = False


class ScheduleDayResponse(BaseModel):
    day: int
    slots: List[ScheduleSlotOut]


class EventOut(BaseModel):
    event_type: str
    day: int
    hour: int
    minute: int
    payload: Dict[str, Any]


class EventsResponse(BaseModel):
    events: List[EventOut]
