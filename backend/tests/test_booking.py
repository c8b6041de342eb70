import pytest

from clinic_sim.services.booking import book_session, cancel_booking, check_placement, commit_recurring
from clinic_sim.services.clock import SimTime
from clinic_sim.services.constraints import BookingRequest
from clinic_sim.services.entities import Facility, Session, SessionStatus, Therapist, WorkSchedule
from clinic_sim.services.recurring import PlannedSlot
from clinic_sim.services.slots import ScheduleIndex, rebuild_from_sessions

NOW = SimTime(1, 8, 0)


def therapist(tid="th_1", **kw):
    return Therapist(id=tid, work_schedule=WorkSchedule(8, 17, frozenset(kw.pop("breaks", ()))), **kw)


def test_book_session_reserves_the_slot():
    index = ScheduleIndex()

    outcome = book_session(index, [], Facility(room_count=1), therapist(), "cl_1", NOW, BookingRequest(1, 10, 80))

    assert outcome.ok
    assert outcome.session.id.startswith("sess_")
    assert outcome.session.status == SessionStatus.scheduled
    assert index.get(1, 10, "th_1").session_id == outcome.session.id
    assert index.get(1, 11, "th_1").session_id == outcome.session.id


def test_therapist_cannot_be_double_booked():
    index = ScheduleIndex()
    facility = Facility(room_count=3)
    first = book_session(index, [], facility, therapist(), "cl_1", NOW, BookingRequest(1, 10))

    second = book_session(index, [first.session], facility, therapist(), "cl_2", NOW, BookingRequest(1, 9, 80))

    assert not second.ok
    assert second.reason == "therapist already booked at hour 10"


def test_client_cannot_be_in_two_places():
    existing = Session(id="s1", therapist_id="th_2", client_id="cl_1", scheduled_day=1, scheduled_hour=10)
    index = rebuild_from_sessions([existing])

    outcome = book_session(index, [existing], Facility(room_count=3), therapist(), "cl_1", NOW, BookingRequest(1, 10))

    assert outcome.reason == "client has a conflicting session"


def test_room_cap_applies_across_therapists():
    index = ScheduleIndex()
    facility = Facility(room_count=1)
    sessions = []
    first = book_session(index, sessions, facility, therapist("th_1"), "cl_1", NOW, BookingRequest(1, 10))
    sessions.append(first.session)

    second = book_session(index, sessions, facility, therapist("th_2"), "cl_2", NOW, BookingRequest(1, 10))

    assert not second.ok
    assert second.reason == "no rooms available at hour 10"


def test_daily_session_limit():
    index = ScheduleIndex()
    facility = Facility(room_count=1)
    sessions = []
    for hour in range(8, 16):
        outcome = book_session(index, sessions, facility, therapist(), f"cl_{hour}", NOW, BookingRequest(1, hour))
        assert outcome.ok
        sessions.append(outcome.session)

    ninth = book_session(index, sessions, facility, therapist(), "cl_x", NOW, BookingRequest(1, 16))

    assert ninth.reason == "therapist has reached the daily session limit"


@pytest.mark.parametrize(
    "now, request_, reason",
    [
        (SimTime(3, 9, 0), BookingRequest(2, 10), "Cannot schedule for a previous day"),
        (SimTime(3, 11, 0), BookingRequest(3, 10), "Cannot schedule for a past hour"),
        (SimTime(3, 10, 15), BookingRequest(3, 10), "Cannot schedule for an hour already in progress"),
    ],
)
def test_past_slots_are_rejected(now, request_, reason):
    index = ScheduleIndex()

    outcome = book_session(index, [], Facility(), therapist(), "cl_1", now, request_)

    assert outcome.reason == reason
    assert index == ScheduleIndex()


def test_current_hour_is_bookable_on_the_hour():
    outcome = book_session(ScheduleIndex(), [], Facility(), therapist(), "cl_1", SimTime(3, 10, 0), BookingRequest(3, 10))

    assert outcome.ok


def test_check_placement_falls_through_to_facility_rules():
    check = check_placement(
        ScheduleIndex(), [], Facility(), therapist(breaks=[12]), "cl_1", BookingRequest(1, 12)
    )

    assert check.reason == "therapist is on break at hour 12"


def test_cancel_frees_the_slot():
    index = ScheduleIndex()
    booked = book_session(index, [], Facility(), therapist(), "cl_1", NOW, BookingRequest(1, 10)).session

    cancelled = cancel_booking(index, booked)

    assert cancelled.status == SessionStatus.cancelled
    assert index.get(1, 10, "th_1") is None


def test_cancel_completed_session_is_refused():
    done = Session(
        id="s1", therapist_id="th_1", client_id="cl_1", scheduled_day=1, scheduled_hour=9,
        status=SessionStatus.completed,
    )

    with pytest.raises(ValueError):
        cancel_booking(ScheduleIndex(), done)


def test_commit_recurring_creates_one_session_per_slot():
    index = ScheduleIndex()

    created = commit_recurring(index, [PlannedSlot(2, 10), PlannedSlot(9, 11)], "th_1", "cl_1", 80, False)

    assert [(s.scheduled_day, s.scheduled_hour) for s in created] == [(2, 10), (9, 11)]
    assert len({s.id for s in created}) == 2
    assert index.get(9, 12, "th_1").session_id == created[1].id
