from clinic_sim.services.clock import SimTime
from clinic_sim.services.entities import (
    Client,
    ClientStatus,
    Facility,
    Frequency,
    Session,
    SessionStatus,
    Therapist,
    TherapistStatus,
    TimePreference,
    WorkSchedule,
)
from clinic_sim.services.slots import rebuild_from_sessions
from clinic_sim.services.suggestions import (
    SuggestionReason,
    Urgency,
    determine_urgency,
    generate_booking_suggestions,
    get_follow_up_info,
)

NOW = SimTime(15, 8, 0)
ROOMY = Facility(room_count=3)


def completed(sid, client_id, day, therapist="th_1"):
    return Session(
        id=sid, therapist_id=therapist, client_id=client_id, scheduled_day=day, scheduled_hour=9,
        status=SessionStatus.completed, progress=1.0, completed_at=SimTime(day, 9, 50),
    )


def suggest(clients, therapists, sessions=(), facility=ROOMY, now=NOW, **kw):
    sessions = list(sessions)
    return generate_booking_suggestions(
        clients, therapists, sessions, rebuild_from_sessions(sessions), facility, now, **kw
    )


def test_weekly_client_seen_two_weeks_ago_is_overdue():
    client = Client(id="cl_1", status=ClientStatus.in_treatment)

    info = get_follow_up_info(client, [completed("s1", "cl_1", 1)], NOW.day)

    assert info.last_session_day == 1
    assert info.next_due_day == 8
    assert info.days_until_due == -7
    assert info.is_overdue
    assert determine_urgency(info) == Urgency.overdue


def test_weekly_client_seen_five_days_ago_is_due_soon():
    client = Client(id="cl_1", status=ClientStatus.in_treatment)

    info = get_follow_up_info(client, [completed("s1", "cl_1", 10)], NOW.day)

    assert info.days_until_due == 2
    assert not info.is_overdue
    assert determine_urgency(info) == Urgency.due_soon


def test_upcoming_session_clears_overdue():
    client = Client(id="cl_1", status=ClientStatus.in_treatment)
    upcoming = Session(id="s2", therapist_id="th_1", client_id="cl_1", scheduled_day=16, scheduled_hour=9)

    info = get_follow_up_info(client, [completed("s1", "cl_1", 1), upcoming], NOW.day)

    assert info.has_upcoming_session
    assert not info.is_overdue


def test_new_client_has_no_due_date():
    info = get_follow_up_info(Client(id="cl_1"), [], NOW.day)

    assert info.days_until_due is None
    assert determine_urgency(info) == Urgency.normal


def test_suggestions_are_ordered_by_urgency_and_hold_their_slots():
    clients = [
        Client(id="cl_new"),
        Client(id="cl_soon", status=ClientStatus.in_treatment, sessions_completed=1),
        Client(id="cl_late", status=ClientStatus.in_treatment, sessions_completed=1),
    ]
    history = [completed("s_soon", "cl_soon", 10), completed("s_late", "cl_late", 1)]

    result = suggest(clients, [Therapist(id="th_1")], history)

    assert [s.client_id for s in result.suggestions] == ["cl_late", "cl_soon", "cl_new"]
    assert [s.urgency for s in result.suggestions] == [Urgency.overdue, Urgency.due_soon, Urgency.normal]
    assert [s.reason for s in result.suggestions] == [
        SuggestionReason.overdue_followup,
        SuggestionReason.due_soon,
        SuggestionReason.first_session,
    ]
    # most urgent client takes the earliest hour
    assert [(s.suggested_day, s.suggested_hour) for s in result.suggestions] == [(15, 8), (15, 9), (15, 10)]
    assert result.unschedulable == []


def test_max_suggestions_truncates_after_sorting():
    clients = [
        Client(id="cl_new"),
        Client(id="cl_late", status=ClientStatus.in_treatment, sessions_completed=1),
    ]

    result = suggest(clients, [Therapist(id="th_1")], [completed("s1", "cl_late", 1)], max_suggestions=1)

    assert [s.client_id for s in result.suggestions] == ["cl_late"]


def test_missing_certification_is_reported():
    client = Client(id="cl_1", required_certification="couples_certified")

    result = suggest([client], [Therapist(id="th_1", certifications=frozenset({"trauma_certified"}))])

    assert result.suggestions == []
    assert result.unschedulable[0].client_id == "cl_1"
    assert result.unschedulable[0].reason == "no therapist holds the couples_certified certification"


def test_no_free_slot_in_window():
    therapist = Therapist(id="th_1", work_schedule=WorkSchedule(8, 11))
    busy = [
        Session(id=f"b{h}", therapist_id="th_1", client_id=f"cl_{h}", scheduled_day=15, scheduled_hour=h)
        for h in (8, 9, 10)
    ]

    result = suggest([Client(id="cl_1")], [therapist], busy, days_ahead=1)

    assert result.unschedulable[0].reason == "no available slot in the next 1 days"


def test_assigned_therapist_is_preferred():
    client = Client(id="cl_1", assigned_therapist_id="th_b")

    result = suggest([client], [Therapist(id="th_a"), Therapist(id="th_b")])

    assert result.suggestions[0].therapist_id == "th_b"


def test_unavailable_therapists_are_skipped():
    therapists = [
        Therapist(id="th_a", status=TherapistStatus.burned_out),
        Therapist(id="th_b", status=TherapistStatus.in_training),
    ]

    result = suggest([Client(id="cl_1")], therapists)

    assert result.unschedulable[0].reason == "no eligible therapist available"


def test_continuity_reason_for_returning_client():
    client = Client(
        id="cl_1",
        status=ClientStatus.in_treatment,
        preferred_frequency=Frequency.monthly,
        assigned_therapist_id="th_1",
        sessions_completed=1,
    )

    result = suggest([client], [Therapist(id="th_1")], [completed("s1", "cl_1", 10)])

    suggestion = result.suggestions[0]
    assert suggestion.urgency == Urgency.normal
    assert suggestion.reason == SuggestionReason.therapist_continuity
    assert suggestion.suggested_interval_days == 30
    assert suggestion.suggested_recurring_count == 7


def test_virtual_preference_needs_telehealth():
    client = Client(id="cl_1", prefers_virtual=True)

    locked = suggest([client], [Therapist(id="th_1")], facility=Facility(room_count=1))
    unlocked = suggest([client], [Therapist(id="th_1")], facility=Facility(room_count=1, telehealth_unlocked=True))

    assert locked.suggestions[0].is_virtual is False
    assert unlocked.suggestions[0].is_virtual is True


def test_clients_with_upcoming_sessions_or_finished_treatment_are_skipped():
    clients = [
        Client(id="cl_booked"),
        Client(id="cl_done", status=ClientStatus.completed),
        Client(id="cl_full", sessions_required=2, sessions_completed=2),
    ]
    upcoming = Session(id="s1", therapist_id="th_1", client_id="cl_booked", scheduled_day=16, scheduled_hour=9)

    result = suggest(clients, [Therapist(id="th_1")], [upcoming])

    assert result.suggestions == []
    assert result.unschedulable == []


def test_suggestions_are_deterministic():
    clients = [Client(id=f"cl_{i}") for i in range(5)]
    therapists = [Therapist(id="th_1"), Therapist(id="th_2")]

    first = suggest(clients, therapists)
    second = suggest(clients, therapists)

    assert first.suggestions == second.suggestions
    assert len({(s.therapist_id, s.suggested_day, s.suggested_hour) for s in first.suggestions}) == 5


def test_time_of_day_preference_picks_a_later_slot():
    client = Client(id="cl_1", preferred_time=TimePreference.afternoon)

    suggestion = suggest([client], [Therapist(id="th_1")]).suggestions[0]

    assert (suggestion.suggested_day, suggestion.suggested_hour) == (15, 12)
    assert suggestion.is_preferred_slot


def test_weekday_availability_picks_a_later_day():
    # day 15 is a Friday, day 18 the following Wednesday
    client = Client(id="cl_1", availability={"wednesday": (10,)})

    suggestion = suggest([client], [Therapist(id="th_1")]).suggestions[0]

    assert (suggestion.suggested_day, suggestion.suggested_hour) == (18, 10)
    assert suggestion.is_preferred_slot


def test_unmet_preference_falls_back_to_earliest_slot():
    client = Client(id="cl_1", availability={"monday": (9,)})

    suggestion = suggest([client], [Therapist(id="th_1")], days_ahead=1).suggestions[0]

    assert (suggestion.suggested_day, suggestion.suggested_hour) == (15, 8)
    assert not suggestion.is_preferred_slot
