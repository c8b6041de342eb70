from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..config import DEFAULT_TIME_CONFIG, TimeConfig
from . import clock
from .clock import AdvanceResult, SimTime
from .entities import SessionStatus, SimulationState

logger = logging.getLogger(__name__)


class FrameScheduler(Protocol):
    def request_frame(self, callback: Callable[[], None]) -> Any:
        ...

    def cancel_frame(self, handle: Any) -> None:
        ...


class AsyncioFrameScheduler:
    """Drives the loop from an asyncio event loop, one frame every `frame_interval` seconds."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, frame_interval: float = 1 / 60):
        self._loop = loop
        self.frame_interval = frame_interval

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        return loop.call_later(self.frame_interval, callback)

    def cancel_frame(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


class EffectKind(str, Enum):
    day_ended = "day_ended"
    day_started = "day_started"
    hour_changed = "hour_changed"
    minute_changed = "minute_changed"
    session_tick = "session_tick"
    session_start = "session_start"


@dataclass(frozen=True)
class Effect:
    kind: EffectKind
    session_id: Optional[str] = None
    minutes: int = 0
    payload: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class TickResult:
    new_time: SimTime
    carry: float
    minutes: int = 0
    advance: Optional[AdvanceResult] = None
    effects: List[Effect] = field(default_factory=list)


def boundary_effects(result: AdvanceResult) -> List[Effect]:
    # Fixed order: day ended, day started, hour changed, minute changed.
    effects = []
    if result.day_ended:
        effects.append(Effect(EffectKind.day_ended, payload={"day": result.previous_time.day}))
    if result.day_started:
        effects.append(Effect(EffectKind.day_started, payload={"day": result.new_time.day}))
    if result.hour_changed:
        effects.append(Effect(EffectKind.hour_changed, payload={"hour": result.new_time.hour}))
    if result.minute_changed:
        effects.append(Effect(EffectKind.minute_changed, payload={"minute": result.new_time.minute}))
    return effects


def start_effects(state: SimulationState, now: SimTime) -> List[Effect]:
    if now.minute != 0:
        return []
    return [
        Effect(EffectKind.session_start, session_id=s.id)
        for s in state.sessions
        if s.status == SessionStatus.scheduled
        and s.scheduled_day == now.day
        and s.scheduled_hour == now.hour
    ]


def step(
    state: SimulationState,
    elapsed_ms: float,
    carry: float,
    config: TimeConfig = DEFAULT_TIME_CONFIG,
) -> TickResult:
    """
    Pure tick: (state, elapsed real time, carry) -> new time, carry and the
    effects to dispatch, in dispatch order.
    """
    if state.paused or state.speed == 0:
        return TickResult(new_time=state.time, carry=carry)

    minutes, carry = clock.calculate_minutes_to_advance(elapsed_ms, state.speed, carry, config)
    if minutes <= 0:
        return TickResult(new_time=state.time, carry=carry)

    result = clock.advance(state.time, minutes, config)
    effects = boundary_effects(result)
    effects.extend(
        Effect(EffectKind.session_tick, session_id=s.id, minutes=minutes)
        for s in state.sessions
        if s.status == SessionStatus.in_progress
    )
    effects.extend(start_effects(state, result.new_time))
    return TickResult(result.new_time, carry, minutes, result, effects)


def next_session_time(state: SimulationState) -> Optional[SimTime]:
    upcoming = [
        s.start_time for s in state.sessions
        if s.status == SessionStatus.scheduled and s.start_time > state.time
    ]
    return min(upcoming) if upcoming else None


def has_sessions_in_progress(state: SimulationState) -> bool:
    return any(s.status == SessionStatus.in_progress for s in state.sessions)


def has_remaining_sessions_today(state: SimulationState) -> bool:
    return any(
        s.status == SessionStatus.scheduled
        and s.scheduled_day == state.time.day
        and s.start_time >= state.time
        for s in state.sessions
    )


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class SimulationLoop:
    """
    Owns the simulated clock. Each frame the host hands us, enough real time
    has passed (>= tick_rate_ms) and the practice is not paused, the clock is
    advanced and collaborators are notified. A failing callback is logged and
    never stops the loop.
    """

    def __init__(
        self,
        read_state: Callable[[], SimulationState],
        write_time: Callable[[SimTime], None],
        frame_scheduler: FrameScheduler,
        on_session_tick: Optional[Callable[[str, int], None]] = None,
        on_session_start: Optional[Callable[[str], None]] = None,
        on_time_advance: Optional[Callable[[AdvanceResult], None]] = None,
        on_event: Optional[Callable[[str, Dict[str, int]], None]] = None,
        now_ms: Callable[[], float] = _monotonic_ms,
        config: TimeConfig = DEFAULT_TIME_CONFIG,
    ):
        self.read_state = read_state
        self.write_time = write_time
        self.frame_scheduler = frame_scheduler
        self.on_session_tick = on_session_tick
        self.on_session_start = on_session_start
        self.on_time_advance = on_time_advance
        self.on_event = on_event
        self.now_ms = now_ms
        self.config = config

        self._running = False
        self._carry = 0.0
        self._last_tick_ms = 0.0
        self._frame_handle: Any = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def carry(self) -> float:
        return self._carry

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._last_tick_ms = self.now_ms()
        self._carry = 0.0
        self._frame()
        logger.info("Simulation loop started")

    def stop(self) -> None:
        if not self._running:
            return
        if self._frame_handle is not None:
            self.frame_scheduler.cancel_frame(self._frame_handle)
            self._frame_handle = None
        self._running = False
        logger.info("Simulation loop stopped")

    def _frame(self) -> None:
        if not self._running:
            return
        try:
            now = self.now_ms()
            elapsed = now - self._last_tick_ms
            if elapsed >= self.config.tick_rate_ms:
                self._last_tick_ms = now
                self.tick(elapsed)
        except Exception:
            logger.exception("Simulation tick failed")
        finally:
            if self._running:
                self._frame_handle = self.frame_scheduler.request_frame(self._frame)

    def tick(self, elapsed_ms: float) -> TickResult:
        state = self.read_state()
        result = step(state, elapsed_ms, self._carry, self.config)
        self._carry = result.carry

        if result.advance is not None:
            self.write_time(result.new_time)
            self._dispatch(result.effects)
            self._safe_call(self.on_time_advance, result.advance)
        return result

    def _dispatch(self, effects: List[Effect]) -> None:
        for effect in effects:
            if effect.kind == EffectKind.session_tick:
                self._safe_call(self.on_session_tick, effect.session_id, effect.minutes)
            elif effect.kind == EffectKind.session_start:
                self._safe_call(self.on_session_start, effect.session_id)
            else:
                self._safe_call(self.on_event, effect.kind.value, effect.payload)

    def _safe_call(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Simulation callback %r failed", getattr(callback, "__name__", callback))

    def get_next_session_time(self) -> Optional[SimTime]:
        return next_session_time(self.read_state())

    def skip_to(self, target: SimTime) -> Optional[AdvanceResult]:
        """
        Jump straight to `target`. Returns None when the jump is refused:
        the target lies outside business hours, a session is in progress,
        or the jump would pass the next session start.
        With nothing left today the jump stops at the next day's opening.
        """
        if not clock.is_business_hours(target, self.config):
            return None

        state = self.read_state()
        if has_sessions_in_progress(state):
            return None

        if not has_remaining_sessions_today(state):
            opening = clock.next_day_start(state.time, self.config)
            if target > opening:
                target = opening

        upcoming = next_session_time(state)
        if upcoming is not None and target > upcoming:
            return None

        result = clock.skip_to(state.time, target)
        if not result.minute_changed:
            return None

        self.write_time(result.new_time)
        self._dispatch(boundary_effects(result) + start_effects(state, result.new_time))
        self._safe_call(self.on_time_advance, result)
        return result

    def skip_to_next_session(self) -> bool:
        state = self.read_state()
        if has_sessions_in_progress(state):
            return False

        starting_now = start_effects(state, state.time)
        if starting_now:
            self._dispatch(starting_now)
            return True

        if not has_remaining_sessions_today(state):
            return self.skip_to(clock.next_day_start(state.time, self.config)) is not None

        upcoming = next_session_time(state)
        if upcoming is None:
            return False
        return self.skip_to(upcoming) is not None
