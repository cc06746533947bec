import pytest
from fastapi import HTTPException

from models import EventResult, EventStatus, PaymentMode, Profile, Registration
from registration_service import register_for_event, register_offline
from results_service import announce_results, increment_win_counts, list_results, list_winners


def _profile(db, profile_id):
    db.expire_all()
    return db.query(Profile).filter(Profile.id == profile_id).one()


def test_increment_win_counts_bumps_place_and_total(db, make_profile):
    a, b = make_profile(), make_profile()
    updated = increment_win_counts(db, [a.id, b.id, a.id], 2)
    db.commit()

    assert updated == 2
    assert _profile(db, a.id).second_place_wins == 1
    assert _profile(db, a.id).total_wins == 1
    assert _profile(db, b.id).first_place_wins == 0


def test_first_place_only_leaves_other_slots_empty(db, make_profile, make_event):
    event = make_event()
    winner = make_profile()
    registration = register_offline(db, event, winner, [])

    event = announce_results(db, event, None, registration.id)

    assert event.results_announced is True
    assert event.results_announced_at is not None
    assert event.event_status == EventStatus.COMPLETED
    assert event.winner_profile_id == winner.id
    assert event.runnerup_profile_id is None
    assert event.second_runnerup_profile_id is None
    assert _profile(db, winner.id).first_place_wins == 1
    assert [row.position for row in list_results(db, event.id)] == [1]


def test_team_win_counts_every_member_and_snapshots_team(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a, b = make_profile(), make_profile(), make_profile()
    runner_leader, c = make_profile(), make_profile()
    first = register_offline(db, event, leader, [a.id, b.id])
    second = register_offline(db, event, runner_leader, [c.id])
    admin = make_profile(full_name="Admin")

    event = announce_results(db, event, admin, first.id, second.id)

    for pid in (leader.id, a.id, b.id):
        assert _profile(db, pid).first_place_wins == 1
        assert _profile(db, pid).total_wins == 1
    for pid in (runner_leader.id, c.id):
        assert _profile(db, pid).second_place_wins == 1
    results = list_results(db, event.id)
    assert [r.registration_id for r in results] == [first.id, second.id]
    assert [m["id"] for m in results[0].team_members] == [a.id, b.id]
    assert results[0].announced_by == admin.id
    assert event.runnerup_profile_id == runner_leader.id


def test_first_place_is_required(db, make_event):
    event = make_event()
    with pytest.raises(HTTPException) as exc:
        announce_results(db, event, None, None, None, None)
    assert exc.value.status_code == 400


def test_positions_must_be_distinct(db, make_profile, make_event):
    event = make_event()
    registration = register_offline(db, event, make_profile(), [])
    with pytest.raises(HTTPException):
        announce_results(db, event, None, registration.id, registration.id)
    db.expire_all()
    assert event.results_announced is False


def test_pending_registration_cannot_win(db, make_profile, make_event):
    event = make_event()
    pending = register_for_event(db, event, make_profile(), [], payment_mode=PaymentMode.CASH)
    with pytest.raises(HTTPException) as exc:
        announce_results(db, event, None, pending.id)
    assert "not confirmed" in exc.value.detail


def test_results_cannot_be_announced_twice(db, make_profile, make_event):
    event = make_event()
    first = register_offline(db, event, make_profile(), [])
    other = register_offline(db, event, make_profile(), [])
    announce_results(db, event, None, first.id)

    with pytest.raises(HTTPException) as exc:
        announce_results(db, event, None, other.id)
    assert exc.value.status_code == 409
    assert db.query(EventResult).filter(EventResult.event_id == event.id).count() == 1


def test_announced_event_closes_registration(db, make_profile, make_event):
    event = make_event()
    first = register_offline(db, event, make_profile(), [])
    announce_results(db, event, None, first.id)
    with pytest.raises(HTTPException):
        register_offline(db, event, make_profile(), [])
    assert db.query(Registration).filter(Registration.event_id == event.id).count() == 1


def test_winners_feed_filters_by_department(db, make_profile, make_event):
    cse_event = make_event()
    ece_event = make_event()
    cse_winner = make_profile(department="CSE")
    ece_winner = make_profile(department="ECE")
    announce_results(db, cse_event, None, register_offline(db, cse_event, cse_winner, []).id)
    announce_results(db, ece_event, None, register_offline(db, ece_event, ece_winner, []).id)

    everything = list_winners(db)
    ece_only = list_winners(db, department="ece")

    assert {item["event_id"] for item in everything} == {cse_event.id, ece_event.id}
    assert [item["event_id"] for item in ece_only] == [ece_event.id]
    assert ece_only[0]["winner"].id == ece_winner.id
    assert len(list_winners(db, limit=1)) == 1


def test_failed_announcement_rolls_back_counters(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a = make_profile(), make_profile()
    registration = register_offline(db, event, leader, [a.id])
    db.add(EventResult(event_id=event.id, position=1, team_members=[]))
    db.commit()

    with pytest.raises(HTTPException) as exc:
        announce_results(db, event, None, registration.id)

    assert exc.value.status_code == 409
    for pid in (leader.id, a.id):
        assert _profile(db, pid).first_place_wins == 0
        assert _profile(db, pid).total_wins == 0
    assert db.query(EventResult).filter(EventResult.event_id == event.id).count() == 1
    assert event.results_announced is False
    assert event.winner_profile_id is None
