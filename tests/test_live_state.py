from datetime import date

import pytest
from fastapi import HTTPException

from live_state import (
    end_live,
    get_fest_start_date,
    go_live,
    is_registration_open,
    is_scheduled_today,
    list_live_events,
    scheduled_date,
    set_config_value,
)
from models import EventStatus
from time_utils import calculate_event_date, day_label


def test_event_date_derives_from_fest_start():
    assert calculate_event_date(1, date(2026, 3, 5)) == date(2026, 3, 5)
    assert calculate_event_date(3, date(2026, 3, 5)) == date(2026, 3, 7)
    assert calculate_event_date(None, date(2026, 3, 5)) is None
    assert day_label(2, date(2026, 3, 5)) == "Day 2 (Mar 6)"
    assert day_label(2, None) == "Day 2"


def test_scheduled_date_prefers_explicit_date(db, make_event):
    set_config_value(db, "fest_start_date", "2026-03-05")
    db.commit()
    derived = make_event(day_order=2)
    explicit = make_event(day_order=2, event_date=date(2026, 4, 1))

    assert get_fest_start_date(db) == date(2026, 3, 5)
    assert scheduled_date(db, derived) == date(2026, 3, 6)
    assert scheduled_date(db, explicit) == date(2026, 4, 1)
    assert is_scheduled_today(db, derived, today=date(2026, 3, 6)) is True


def test_go_live_off_schedule_requires_confirmation(db, make_event):
    event = make_event(event_date=date(2026, 3, 6))

    with pytest.raises(HTTPException) as exc:
        go_live(db, event, today=date(2026, 3, 5))

    assert exc.value.status_code == 409
    assert exc.value.detail["requires_confirmation"] is True
    assert exc.value.detail["scheduled_date"] == "2026-03-06"
    assert event.is_live is False

    event = go_live(db, event, force=True, today=date(2026, 3, 5))
    assert event.is_live is True
    assert event.event_status == EventStatus.LIVE
    assert event.live_started_at is not None


def test_go_live_on_schedule_and_end_live(db, make_event):
    event = make_event(event_date=date(2026, 3, 6))

    event = go_live(db, event, today=date(2026, 3, 6))
    assert [e.id for e in list_live_events(db)] == [event.id]

    with pytest.raises(HTTPException):
        go_live(db, event, force=True)

    event = end_live(db, event)
    assert event.is_live is False
    assert event.event_status == EventStatus.UPCOMING
    assert event.live_ended_at is not None
    assert list_live_events(db) == []

    with pytest.raises(HTTPException):
        end_live(db, event)


def test_undated_event_never_matches_today(db, make_event):
    event = make_event(day_order=None)
    assert is_scheduled_today(db, event, today=date(2026, 3, 6)) is False
    with pytest.raises(HTTPException):
        go_live(db, event, today=date(2026, 3, 6))


def test_registration_switch(db):
    assert is_registration_open(db) is True
    set_config_value(db, "registration_open", "false")
    db.commit()
    assert is_registration_open(db) is False
