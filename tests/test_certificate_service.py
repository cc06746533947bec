import pytest
from fastapi import HTTPException

from certificate_service import get_certificate_by_hash, issue_certificates, list_certificates, list_profile_certificates
from models import PaymentMode
from registration_service import register_for_event, register_offline


def test_confirmed_participants_get_one_certificate_each(db, make_profile, make_group_event):
    event = make_group_event(name="Robo Race")
    leader, a = make_profile(full_name="Lead"), make_profile(full_name="Alpha")
    register_offline(db, event, leader, [a.id])
    register_for_event(db, event, make_profile(), [make_profile().id], payment_mode=PaymentMode.CASH)

    assert issue_certificates(db, event) == 2
    assert issue_certificates(db, event) == 0

    rows = list_certificates(db)
    assert {profile.id for _, profile, _ in rows} == {leader.id, a.id}
    assert all(len(certificate.unique_hash) == 32 for certificate, _, _ in rows)
    mine = list_profile_certificates(db, a.id)
    assert [(profile.full_name, item.name) for _, profile, item in mine] == [("Alpha", "Robo Race")]


def test_certificates_searchable_and_verifiable_by_hash(db, make_profile, make_event):
    quiz, dance = make_event(name="Quiz"), make_event(name="Dance")
    register_offline(db, quiz, make_profile(full_name="Asha"), [])
    register_offline(db, dance, make_profile(full_name="Vikram"), [])
    issue_certificates(db, quiz)
    issue_certificates(db, dance)

    assert [item.name for _, _, item in list_certificates(db, "quiz")] == ["Quiz"]
    assert [profile.full_name for _, profile, _ in list_certificates(db, "vikram")] == ["Vikram"]

    certificate, profile, item = list_certificates(db, "asha")[0]
    found, owner, found_event = get_certificate_by_hash(db, certificate.unique_hash.upper())
    assert found.id == certificate.id
    assert owner.id == profile.id
    assert found_event.name == "Quiz"

    with pytest.raises(HTTPException) as exc:
        get_certificate_by_hash(db, "0" * 32)
    assert exc.value.status_code == 404
