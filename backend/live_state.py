import logging
from datetime import date
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from models import Event, EventStatus, SystemConfig
from time_utils import now_tz, parse_iso_date, resolve_event_date, today_tz

logger = logging.getLogger(__name__)

FEST_START_KEY = "fest_start_date"
REGISTRATION_OPEN_KEY = "registration_open"


def get_config_value(db: Session, key: str) -> Optional[str]:
    row = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    return row.value if row else None


def set_config_value(db: Session, key: str, value: str) -> SystemConfig:
    row = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if row:
        row.value = value
    else:
        row = SystemConfig(key=key, value=value)
        db.add(row)
    return row


def get_fest_start_date(db: Session) -> Optional[date]:
    return parse_iso_date(get_config_value(db, FEST_START_KEY))


def scheduled_date(db: Session, event: Event) -> Optional[date]:
    return resolve_event_date(event.event_date, event.day_order, get_fest_start_date(db))


def is_scheduled_today(db: Session, event: Event, today: Optional[date] = None) -> bool:
    resolved = scheduled_date(db, event)
    if not resolved:
        return False
    return resolved == (today or today_tz())


def go_live(db: Session, event: Event, force: bool = False, today: Optional[date] = None) -> Event:
    """Mark the event live. Off-schedule requests need force=True."""
    if event.results_announced:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Results already announced for this event")
    if event.is_live:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Event is already live")

    current = today or today_tz()
    if not force and not is_scheduled_today(db, event, current):
        resolved = scheduled_date(db, event)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": "Event is not scheduled for today. Confirm to go live anyway.",
                "requires_confirmation": True,
                "scheduled_date": resolved.isoformat() if resolved else None,
                "today": current.isoformat(),
            },
        )

    event.is_live = True
    event.event_status = EventStatus.LIVE
    event.live_started_at = now_tz()
    db.commit()
    db.refresh(event)
    logger.info(f"Event {event.id} is live (forced={force})")
    return event


def end_live(db: Session, event: Event) -> Event:
    if not event.is_live:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Event is not live")
    event.is_live = False
    if event.event_status == EventStatus.LIVE:
        event.event_status = EventStatus.UPCOMING
    event.live_ended_at = now_tz()
    db.commit()
    db.refresh(event)
    logger.info(f"Event {event.id} is offline")
    return event


def list_live_events(db: Session) -> List[Event]:
    return (
        db.query(Event)
        .filter(Event.is_live.is_(True))
        .order_by(Event.live_started_at.desc(), Event.id.desc())
        .all()
    )


def is_registration_open(db: Session) -> bool:
    value = get_config_value(db, REGISTRATION_OPEN_KEY)
    return value != "false" if value is not None else True
