import pytest

from clinic_sim.services.constraints import BookingRequest, can_book
from clinic_sim.services.entities import Facility, Session, WorkSchedule
from clinic_sim.services.slots import Occupant, ScheduleIndex, rebuild_from_sessions

FULL_DAY = WorkSchedule(8, 17)


def occupied_at_ten():
    return rebuild_from_sessions([
        Session(id="s1", therapist_id="th_2", client_id="cl_9", scheduled_day=1, scheduled_hour=10),
    ])


def test_last_room_taken_rejects_in_person():
    check = can_book(Facility(room_count=1), occupied_at_ten(), FULL_DAY, BookingRequest(1, 10))

    assert not check.ok
    assert check.reason == "no rooms available at hour 10"


def test_virtual_session_ignores_room_capacity():
    facility = Facility(room_count=1, telehealth_unlocked=True)

    check = can_book(facility, occupied_at_ten(), FULL_DAY, BookingRequest(1, 10, is_virtual=True))

    assert check.ok
    assert check.reason is None


def test_virtual_session_needs_telehealth():
    check = can_book(Facility(room_count=5), ScheduleIndex(), FULL_DAY, BookingRequest(1, 10, is_virtual=True))

    assert check.reason == "telehealth locked"


def test_second_room_allows_parallel_in_person():
    assert can_book(Facility(room_count=2), occupied_at_ten(), FULL_DAY, BookingRequest(1, 10)).ok


def test_virtual_occupants_do_not_take_rooms():
    index = rebuild_from_sessions([
        Session(id="v1", therapist_id="th_2", client_id="cl_9", scheduled_day=1, scheduled_hour=10, is_virtual=True),
    ])
    index.block(1, [10], "th_3", Occupant.in_training())

    assert can_book(Facility(room_count=1), index, FULL_DAY, BookingRequest(1, 10)).ok


def test_multi_hour_request_names_first_blocked_hour():
    # 180 minutes from 9 spans 9, 10 and 11; only 10 is full
    check = can_book(Facility(room_count=1), occupied_at_ten(), FULL_DAY, BookingRequest(1, 9, 180))

    assert not check.ok
    assert check.reason == "no rooms available at hour 10"


@pytest.mark.parametrize(
    "request_, reason",
    [
        (BookingRequest(1, 12), "therapist is on break at hour 12"),
        (BookingRequest(1, 11, 80), "therapist is on break at hour 12"),
        (BookingRequest(1, 8), "outside work hours at hour 8"),
        (BookingRequest(1, 15, 80), "outside work hours at hour 16"),
    ],
)
def test_work_schedule_is_enforced_for_every_spanned_hour(request_, reason):
    schedule = WorkSchedule(9, 16, frozenset({12}))

    check = can_book(Facility(room_count=3), ScheduleIndex(), schedule, request_)

    assert check.reason == reason


def test_telehealth_checked_before_work_hours():
    check = can_book(Facility(), ScheduleIndex(), WorkSchedule(9, 16), BookingRequest(1, 8, is_virtual=True))

    assert check.reason == "telehealth locked"
