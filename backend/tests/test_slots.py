import random

import pytest

from clinic_sim.services.clock import SimTime
from clinic_sim.services.entities import Client, Session, SessionStatus, Therapist, TimePreference, WorkSchedule
from clinic_sim.services.slots import (
    Occupant,
    OccupantKind,
    ScheduleIndex,
    client_has_conflict,
    day_of_week,
    is_occupied,
    is_preferred_hour,
    is_slot_available,
    rebuild_from_sessions,
    span_hours,
    validate_not_in_past,
)


def make_session(sid, day=1, hour=9, duration=50, therapist="th_1", client="cl_1", **kw):
    return Session(
        id=sid,
        therapist_id=therapist,
        client_id=client,
        scheduled_day=day,
        scheduled_hour=hour,
        duration_minutes=duration,
        **kw,
    )


@pytest.mark.parametrize(
    "duration, expected",
    [(50, [10]), (60, [10]), (80, [10, 11]), (180, [10, 11, 12])],
)
def test_span_hours_counts_partial_hours(duration, expected):
    assert span_hours(10, duration) == expected


@pytest.mark.parametrize("duration", [0, -50])
def test_span_hours_rejects_non_positive_durations(duration):
    with pytest.raises(ValueError):
        span_hours(10, duration)


def test_session_rejects_unsupported_duration():
    with pytest.raises(ValueError):
        make_session("s1", duration=45)


def test_rebuild_places_multi_hour_sessions_on_every_spanned_hour():
    index = rebuild_from_sessions([make_session("s1", hour=10, duration=180)])

    for hour in (10, 11, 12):
        assert index.get(1, hour, "th_1").session_id == "s1"
    assert index.get(1, 13, "th_1") is None
    assert index.get(1, 9, "th_1") is None


def test_rebuild_ignores_finished_sessions():
    sessions = [
        make_session("done", status=SessionStatus.completed),
        make_session("gone", hour=10, status=SessionStatus.cancelled),
        make_session("live", hour=11, status=SessionStatus.in_progress),
    ]

    index = rebuild_from_sessions(sessions)

    assert index.get(1, 9, "th_1") is None
    assert index.get(1, 10, "th_1") is None
    assert index.get(1, 11, "th_1").session_id == "live"


def test_rebuild_is_idempotent_and_order_independent():
    sessions = [
        make_session(f"s{i}", day=1 + i % 3, hour=8 + i % 7, therapist=f"th_{i % 4}", duration=(50, 80)[i % 2])
        for i in range(20)
    ]
    shuffled = list(sessions)
    random.Random(7).shuffle(shuffled)

    first = rebuild_from_sessions(sessions)

    assert first == rebuild_from_sessions(sessions)
    assert first == rebuild_from_sessions(shuffled)


def test_index_add_and_remove_session():
    index = ScheduleIndex()
    session = make_session("s1", hour=14, duration=80)

    index.add_session(session)
    assert index.session_ids_on_day(1, "th_1") == {"s1"}

    index.remove_session(session)
    assert index.get(1, 14, "th_1") is None
    assert index.get(1, 15, "th_1") is None
    assert index == ScheduleIndex()


def test_remove_does_not_clear_another_sessions_slot():
    index = rebuild_from_sessions([make_session("keep")])

    index.remove_session(make_session("other"))

    assert index.get(1, 9, "th_1").session_id == "keep"


def test_in_person_count_ignores_virtual_and_markers():
    index = rebuild_from_sessions([
        make_session("a", therapist="th_1"),
        make_session("b", therapist="th_2", client="cl_2", is_virtual=True),
        make_session("c", therapist="th_3", client="cl_3"),
    ])
    index.block(1, [9], "th_4", Occupant.in_training())

    assert index.in_person_count(1, 9) == 2


def test_copy_is_independent():
    index = rebuild_from_sessions([make_session("a")])
    clone = index.copy()
    clone.add_session(make_session("b", hour=10))

    assert index.get(1, 10, "th_1") is None
    assert clone.get(1, 10, "th_1").session_id == "b"


def test_is_occupied_reports_breaks_and_training():
    index = ScheduleIndex()
    index.block(2, [9, 10], "th_1", Occupant.in_training())
    schedule = WorkSchedule(8, 17, frozenset({12}))

    assert is_occupied(index, 2, 9, "th_1").kind == OccupantKind.training
    assert is_occupied(index, 2, 12, "th_1", schedule).kind == OccupantKind.break_
    assert is_occupied(index, 2, 11, "th_1", schedule) is None


def test_slot_availability_covers_whole_span():
    therapist = Therapist(id="th_1", work_schedule=WorkSchedule(8, 17, frozenset({12})))
    index = rebuild_from_sessions([make_session("s1", hour=14)])

    assert is_slot_available(index, therapist, 1, 10, 80)
    assert not is_slot_available(index, therapist, 1, 11, 80)  # runs into the break
    assert not is_slot_available(index, therapist, 1, 13, 80)  # runs into s1
    assert not is_slot_available(index, therapist, 1, 16, 80)  # runs past closing


def test_client_conflict_uses_hour_overlap():
    sessions = [make_session("long", hour=10, duration=180)]

    assert client_has_conflict(sessions, "cl_1", 1, 12, 50)
    assert client_has_conflict(sessions, "cl_1", 1, 9, 80)
    assert not client_has_conflict(sessions, "cl_1", 1, 13, 50)
    assert not client_has_conflict(sessions, "cl_1", 2, 10, 50)
    assert not client_has_conflict(sessions, "cl_2", 1, 10, 50)


def test_validate_not_in_past():
    now = SimTime(3, 10, 0)

    assert validate_not_in_past(now, 3, 10).valid
    assert validate_not_in_past(now, 4, 8).valid
    assert not validate_not_in_past(now, 2, 15).valid
    assert not validate_not_in_past(now, 3, 9).valid
    assert not validate_not_in_past(SimTime(3, 10, 1), 3, 10).valid


def test_weekdays_cycle_monday_to_friday():
    assert day_of_week(1) == "monday"
    assert day_of_week(5) == "friday"
    assert day_of_week(6) == "monday"


def test_preferred_hour_respects_availability_and_time_of_day():
    client = Client(id="cl_1", preferred_time=TimePreference.morning, availability={"monday": (9, 10)})

    assert is_preferred_hour(client, 1, 9)
    assert not is_preferred_hour(client, 1, 11)
    assert not is_preferred_hour(client, 2, 9)
    assert is_preferred_hour(Client(id="cl_2"), 3, 15)
