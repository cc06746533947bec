import pytest
from fastapi import HTTPException

from models import Event, EventSubcategory, Gender, PaymentMode, Profile
from registration_rules import (
    ensure_event_payment_config,
    ensure_gender_eligible,
    ensure_no_identifier_collision,
    ensure_payment_evidence,
    ensure_payment_mode_allowed,
    ensure_team_bounds,
    ensure_team_size,
    gender_eligibility_error,
    missing_payment_evidence,
    normalize_roll_number,
)


def _event(**kwargs):
    values = {
        "name": "Quiz",
        "subcategory": EventSubcategory.GROUP,
        "min_team_size": 2,
        "max_team_size": 4,
        "allowed_genders": [],
        "payment_mode": PaymentMode.HYBRID,
    }
    values.update(kwargs)
    return Event(**values)


def test_normalize_roll_number():
    assert normalize_roll_number("  21cs0001 ") == "21CS0001"
    assert normalize_roll_number(None) == ""


def test_gender_eligibility_messages():
    boys_only = _event(allowed_genders=["Male"])
    girls_only = _event(allowed_genders=["Female"])
    open_event = _event(allowed_genders=[])
    both = _event(allowed_genders=["Male", "Female"])

    assert gender_eligibility_error(boys_only, Gender.MALE) is None
    assert gender_eligibility_error(boys_only, Gender.FEMALE) == "This event is only for Boys"
    assert gender_eligibility_error(girls_only, Gender.MALE) == "This event is only for Girls"
    assert gender_eligibility_error(open_event, Gender.FEMALE) is None
    assert gender_eligibility_error(both, None) is None


def test_gender_check_names_the_ineligible_profile():
    event = _event(allowed_genders=["Female"])
    profiles = [
        Profile(full_name="Asha", gender=Gender.FEMALE),
        Profile(full_name="Ravi", gender=Gender.MALE),
    ]
    with pytest.raises(HTTPException) as exc:
        ensure_gender_eligible(event, profiles)
    assert exc.value.status_code == 400
    assert "Ravi" in exc.value.detail


def test_team_size_counts_the_leader():
    event = _event(min_team_size=2, max_team_size=4)
    ensure_team_size(event, 1)
    ensure_team_size(event, 3)
    with pytest.raises(HTTPException) as too_small:
        ensure_team_size(event, 0)
    assert "Min team size is 2" in too_small.value.detail
    with pytest.raises(HTTPException) as too_big:
        ensure_team_size(event, 4)
    assert "Maximum team size is 4" in too_big.value.detail


def test_individual_events_reject_members():
    event = _event(subcategory=EventSubcategory.INDIVIDUAL, min_team_size=1, max_team_size=1)
    ensure_team_size(event, 0)
    with pytest.raises(HTTPException):
        ensure_team_size(event, 1)


def test_payment_mode_acceptance():
    cash_event = _event(payment_mode=PaymentMode.CASH)
    online_event = _event(payment_mode=PaymentMode.ONLINE)
    hybrid_event = _event(payment_mode=PaymentMode.HYBRID)

    ensure_payment_mode_allowed(cash_event, PaymentMode.CASH)
    with pytest.raises(HTTPException):
        ensure_payment_mode_allowed(cash_event, PaymentMode.ONLINE)
    with pytest.raises(HTTPException):
        ensure_payment_mode_allowed(online_event, PaymentMode.CASH)
    ensure_payment_mode_allowed(hybrid_event, PaymentMode.CASH)
    ensure_payment_mode_allowed(hybrid_event, PaymentMode.ONLINE)


def test_payment_evidence_required_for_online_and_hybrid():
    assert missing_payment_evidence(PaymentMode.CASH, None, None) == []
    assert missing_payment_evidence(PaymentMode.ONLINE, "TX1", None) == ["payment_screenshot_path"]
    assert missing_payment_evidence(PaymentMode.HYBRID, " ", "proof.png") == ["transaction_id"]
    ensure_payment_evidence(PaymentMode.ONLINE, "TX1", "payment_proofs/1/a.png")
    with pytest.raises(HTTPException) as exc:
        ensure_payment_evidence(PaymentMode.ONLINE, None, "payment_proofs/1/a.png")
    assert exc.value.detail == "Transaction ID is required for online payment"


def test_event_payment_config():
    ensure_event_payment_config(PaymentMode.CASH, None, None)
    ensure_event_payment_config(PaymentMode.HYBRID, None, "qr.png")
    with pytest.raises(HTTPException):
        ensure_event_payment_config(PaymentMode.ONLINE, None, "qr.png")
    with pytest.raises(HTTPException):
        ensure_event_payment_config(PaymentMode.HYBRID, "fest@upi", None)


def test_team_bounds():
    ensure_team_bounds(EventSubcategory.GROUP, 2, 4)
    ensure_team_bounds(EventSubcategory.INDIVIDUAL, 1, 1)
    with pytest.raises(HTTPException):
        ensure_team_bounds(EventSubcategory.GROUP, 5, 4)
    with pytest.raises(HTTPException):
        ensure_team_bounds(EventSubcategory.GROUP, 1, 1)


def test_identifier_collision_is_case_insensitive(db, make_profile):
    existing = make_profile(roll_number="21CS9999")
    with pytest.raises(HTTPException) as exc:
        ensure_no_identifier_collision(db, roll_number="21cs9999 ")
    assert exc.value.status_code == 409
    with pytest.raises(HTTPException):
        ensure_no_identifier_collision(db, college_email=existing.college_email.upper())
    ensure_no_identifier_collision(db, roll_number="21CS9999", exclude_profile_id=existing.id)
