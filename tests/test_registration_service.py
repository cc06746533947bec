import pytest
from fastapi import HTTPException

import registration_service
from models import Gender, PaymentMode, ProfileRole, Registration, RegistrationStatus
from registration_service import (
    OFFLINE_EMAIL_DOMAIN,
    add_team_member,
    create_offline_profile,
    delete_registration,
    find_leader_for_member,
    find_profile_by_roll_number,
    list_pending_payments,
    list_students,
    register_for_event,
    register_offline,
    remove_team_member,
    replace_team_member,
    search_profiles,
    team_size,
)


def _rows(db, event_id):
    db.expire_all()
    return db.query(Registration).filter(Registration.event_id == event_id).all()


def test_individual_registration_is_pending(db, make_profile, make_event):
    student = make_profile()
    event = make_event()

    registration = register_for_event(
        db, event, student, [],
        payment_mode=PaymentMode.ONLINE,
        transaction_id="UPI123",
        screenshot_path="payment_proofs/1/proof.png",
    )

    assert registration.status == RegistrationStatus.PENDING
    assert registration.team_members == []
    assert registration.transaction_id == "UPI123"


def test_team_registration_creates_leader_and_member_rows(db, make_profile, make_group_event):
    leader, a, b = make_profile(), make_profile(), make_profile()
    event = make_group_event()

    registration = register_for_event(db, event, leader, [a.id, b.id], payment_mode=PaymentMode.CASH)

    assert [m["id"] for m in registration.team_members] == [a.id, b.id]
    assert registration.team_members[0]["roll_number"] == a.roll_number
    assert team_size(registration) == 3
    rows = {row.profile_id: row for row in _rows(db, event.id)}
    assert set(rows) == {leader.id, a.id, b.id}
    assert rows[a.id].team_members == []
    assert all(row.status == RegistrationStatus.PENDING for row in rows.values())


def test_cash_registration_drops_payment_evidence(db, make_profile, make_event):
    student = make_profile()
    event = make_event()
    registration = register_for_event(
        db, event, student, [],
        payment_mode=PaymentMode.CASH,
        transaction_id="IGNORED",
        screenshot_path="payment_proofs/x.png",
    )
    assert registration.transaction_id is None
    assert registration.payment_screenshot_path is None


def test_online_registration_requires_evidence(db, make_profile, make_event):
    student = make_profile()
    event = make_event(payment_mode=PaymentMode.ONLINE)
    with pytest.raises(HTTPException) as exc:
        register_for_event(db, event, student, [], payment_mode=PaymentMode.ONLINE, transaction_id="TX")
    assert exc.value.status_code == 400
    assert _rows(db, event.id) == []


def test_cash_not_accepted_for_online_event(db, make_profile, make_event):
    student = make_profile()
    event = make_event(payment_mode=PaymentMode.ONLINE)
    with pytest.raises(HTTPException) as exc:
        register_for_event(db, event, student, [], payment_mode=PaymentMode.CASH)
    assert exc.value.detail == "This event accepts online payments only"


def test_duplicate_leader_registration_conflicts(db, make_profile, make_event):
    student = make_profile()
    event = make_event()
    register_for_event(db, event, student, [], payment_mode=PaymentMode.CASH)
    with pytest.raises(HTTPException) as exc:
        register_for_event(db, event, student, [], payment_mode=PaymentMode.CASH)
    assert exc.value.status_code == 409


def test_already_registered_member_is_named(db, make_profile, make_group_event):
    first_leader, second_leader = make_profile(), make_profile()
    shared = make_profile(full_name="Meera Nair")
    other = make_profile()
    event = make_group_event()
    register_for_event(db, event, first_leader, [shared.id], payment_mode=PaymentMode.CASH)

    with pytest.raises(HTTPException) as exc:
        register_for_event(db, event, second_leader, [shared.id, other.id], payment_mode=PaymentMode.CASH)

    assert exc.value.status_code == 409
    assert exc.value.detail == "The following team member(s) are already registered for this event: Meera Nair"
    assert find_leader_for_member(db, event.id, other.id) is None


def test_gender_restricted_event_rejects_team(db, make_profile, make_group_event):
    leader = make_profile(gender=Gender.FEMALE)
    member = make_profile(gender=Gender.MALE, full_name="Arjun")
    event = make_group_event(allowed_genders=["Female"])
    with pytest.raises(HTTPException) as exc:
        register_for_event(db, event, leader, [member.id], payment_mode=PaymentMode.CASH)
    assert exc.value.detail == "Arjun: This event is only for Girls"


def test_team_size_bounds_on_registration(db, make_profile, make_group_event):
    event = make_group_event(min_team_size=3, max_team_size=3)
    leader, a = make_profile(), make_profile()
    with pytest.raises(HTTPException) as exc:
        register_for_event(db, event, leader, [a.id], payment_mode=PaymentMode.CASH)
    assert "Min team size is 3" in exc.value.detail


def test_offline_registration_is_cash_and_confirmed(db, make_profile, make_group_event):
    leader, a = make_profile(), make_profile()
    event = make_group_event()

    registration = register_offline(db, event, leader, [a.id])

    assert registration.payment_mode == PaymentMode.CASH
    assert registration.status == RegistrationStatus.CONFIRMED
    assert all(row.status == RegistrationStatus.CONFIRMED for row in _rows(db, event.id))


def test_member_removal_respects_minimum_team_size(db, make_profile, make_group_event):
    event = make_group_event(min_team_size=2, max_team_size=4)
    leader, a, b = make_profile(), make_profile(), make_profile()
    registration = register_offline(db, event, leader, [a.id, b.id])

    team_deleted, size = remove_team_member(db, event, registration, a.id)
    assert team_deleted is False
    assert size == 2
    assert [m["id"] for m in registration.team_members] == [b.id]
    assert {row.profile_id for row in _rows(db, event.id)} == {leader.id, b.id}

    with pytest.raises(HTTPException) as exc:
        remove_team_member(db, event, registration, b.id)
    assert exc.value.status_code == 409
    assert {row.profile_id for row in _rows(db, event.id)} == {leader.id, b.id}

    team_deleted, size = remove_team_member(db, event, registration, b.id, delete_entire_team=True)
    assert team_deleted is True
    assert size == 0
    assert _rows(db, event.id) == []


def test_add_member_up_to_maximum(db, make_profile, make_group_event):
    event = make_group_event(min_team_size=2, max_team_size=3)
    leader, a, b, c = make_profile(), make_profile(), make_profile(), make_profile()
    registration = register_offline(db, event, leader, [a.id])

    registration = add_team_member(db, event, registration, b)
    assert team_size(registration) == 3
    member_row = db.query(Registration).filter(Registration.event_id == event.id, Registration.profile_id == b.id).one()
    assert member_row.status == RegistrationStatus.CONFIRMED
    assert member_row.team_members == []

    with pytest.raises(HTTPException) as exc:
        add_team_member(db, event, registration, c)
    assert "Maximum team size is 3" in exc.value.detail


def test_profile_cannot_join_a_second_team(db, make_profile, make_group_event):
    event = make_group_event()
    first_leader, second_leader, a, b = make_profile(), make_profile(), make_profile(), make_profile()
    register_offline(db, event, first_leader, [a.id])
    second = register_offline(db, event, second_leader, [b.id])

    with pytest.raises(HTTPException) as exc:
        add_team_member(db, event, second, a)
    assert exc.value.status_code == 409

    memberships = [
        row for row in _rows(db, event.id)
        if a.id in [m["id"] for m in (row.team_members or [])]
    ]
    assert len(memberships) == 1


def test_replace_member_rewrites_snapshot_and_member_row(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a, b, replacement = make_profile(), make_profile(), make_profile(), make_profile(full_name="New Member")
    registration = register_offline(db, event, leader, [a.id, b.id])

    registration = replace_team_member(db, event, registration, a.id, replacement)

    assert [m["id"] for m in registration.team_members] == [replacement.id, b.id]
    assert registration.team_members[0]["full_name"] == "New Member"
    profile_ids = {row.profile_id for row in _rows(db, event.id)}
    assert replacement.id in profile_ids
    assert a.id not in profile_ids


def test_replace_with_registered_profile_leaves_team_untouched(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a, other_leader, other_member = make_profile(), make_profile(), make_profile(), make_profile()
    registration = register_offline(db, event, leader, [a.id])
    register_offline(db, event, other_leader, [other_member.id])

    with pytest.raises(HTTPException):
        replace_team_member(db, event, registration, a.id, other_member)

    db.expire_all()
    assert [m["id"] for m in registration.team_members] == [a.id]


def test_member_rows_cannot_be_deleted_directly(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a = make_profile(), make_profile()
    register_offline(db, event, leader, [a.id])
    member_row = db.query(Registration).filter(Registration.event_id == event.id, Registration.profile_id == a.id).one()

    with pytest.raises(HTTPException) as exc:
        delete_registration(db, event, member_row)
    assert exc.value.status_code == 400


def test_deleting_leader_registration_removes_team(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a, b = make_profile(), make_profile(), make_profile()
    registration = register_offline(db, event, leader, [a.id, b.id])

    removed = delete_registration(db, event, registration)

    assert removed == 3
    assert _rows(db, event.id) == []


def test_pending_payments_hide_member_rows(db, make_profile, make_group_event):
    group_event = make_group_event()
    leader, a = make_profile(), make_profile()
    register_for_event(db, group_event, leader, [a.id], payment_mode=PaymentMode.CASH)

    pending = list_pending_payments(db, group_event.id)

    assert [profile.id for _, profile in pending] == [leader.id]


def test_offline_profile_has_no_credential(db):
    profile = create_offline_profile(db, full_name="Walk In", roll_number=" 22me0042 ", gender=Gender.MALE)

    assert profile.hashed_password is None
    assert profile.is_admin_created is True
    assert profile.roll_number == "22ME0042"
    assert profile.college_email.endswith(f"@{OFFLINE_EMAIL_DOMAIN}")
    assert find_profile_by_roll_number(db, "22me0042").id == profile.id

    with pytest.raises(HTTPException) as exc:
        create_offline_profile(db, full_name="Someone Else", roll_number="22ME0042")
    assert exc.value.status_code == 409


def test_search_profiles_matches_name_and_roll(db, make_profile):
    priya = make_profile(full_name="Priya Sharma", roll_number="21EC0007")
    make_profile(full_name="Karthik")

    assert [p.id for p in search_profiles(db, "priya")] == [priya.id]
    assert [p.id for p in search_profiles(db, "21ec")] == [priya.id]
    assert search_profiles(db, "priya", exclude_ids=[priya.id]) == []
    assert search_profiles(db, "p") == []


def test_repeated_member_ids_rejected_before_any_write(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a = make_profile(), make_profile()

    with pytest.raises(HTTPException) as exc:
        register_for_event(db, event, leader, [a.id, a.id], payment_mode=PaymentMode.CASH)
    assert exc.value.status_code == 400
    assert exc.value.detail == "Team members must be distinct"

    with pytest.raises(HTTPException) as exc:
        register_offline(db, event, leader, [leader.id])
    assert exc.value.detail == "Leader cannot be listed as a team member"
    assert _rows(db, event.id) == []


def test_failed_member_insert_leaves_no_leader_row(db, make_profile, make_group_event, monkeypatch):
    event = make_group_event(min_team_size=1)
    leader, a = make_profile(), make_profile()
    register_offline(db, event, a, [])
    monkeypatch.setattr(registration_service, "ensure_not_registered", lambda *args, **kwargs: None)

    with pytest.raises(HTTPException) as exc:
        register_offline(db, event, leader, [a.id])

    assert exc.value.status_code == 409
    assert [row.profile_id for row in _rows(db, event.id)] == [a.id]


def test_member_snapshot_without_id_is_ignored(db, make_profile, make_group_event):
    event = make_group_event()
    leader, a, b, replacement = make_profile(), make_profile(), make_profile(), make_profile()
    registration = register_offline(db, event, leader, [a.id, b.id])
    registration.team_members = [{"full_name": "Ghost"}] + list(registration.team_members)
    db.commit()

    team_deleted, size = remove_team_member(db, event, registration, a.id)
    assert team_deleted is False
    assert size == 3

    registration = replace_team_member(db, event, registration, b.id, replacement)
    assert [m.get("id") for m in registration.team_members] == [None, replacement.id]


def test_student_directory_filters_and_orders_by_name(db, make_profile):
    zoya = make_profile(full_name="Zoya", department="ECE")
    arun = make_profile(full_name="Arun", department="CSE")
    make_profile(full_name="Coordinator", role=ProfileRole.COORDINATOR)

    assert [p.id for p in list_students(db)] == [arun.id, zoya.id]
    assert [p.id for p in list_students(db, department="ece")] == [zoya.id]
    assert [p.id for p in list_students(db, search=arun.roll_number.lower())] == [arun.id]
    assert [p.id for p in list_students(db, search="student1@")] == [zoya.id]
