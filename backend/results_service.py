import logging
from typing import Dict, List, Optional, Sequence

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Event, EventResult, EventStatus, Profile, Registration, RegistrationStatus
from registration_service import find_leader_for_member, is_leader, team_member_ids
from time_utils import now_tz

logger = logging.getLogger(__name__)

WIN_COLUMNS = {
    1: Profile.first_place_wins,
    2: Profile.second_place_wins,
    3: Profile.third_place_wins,
}


def increment_win_counts(db: Session, profile_ids: Sequence[int], position: int) -> int:
    """Bump the place counter and total for every profile in one UPDATE. Caller commits."""
    column = WIN_COLUMNS.get(position)
    if column is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid position {position}")
    ids = sorted(set(int(pid) for pid in profile_ids))
    if not ids:
        return 0
    return db.query(Profile).filter(Profile.id.in_(ids)).update(
        {
            column: column + 1,
            Profile.total_wins: Profile.total_wins + 1,
        },
        synchronize_session=False,
    )


def _winning_registration(db: Session, event: Event, registration_id: int, position: int) -> Registration:
    registration = db.query(Registration).filter(
        Registration.id == registration_id,
        Registration.event_id == event.id,
    ).first()
    if not registration:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Registration for position {position} not found")
    if registration.status != RegistrationStatus.CONFIRMED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Registration for position {position} is not confirmed")
    if not is_leader(registration) and find_leader_for_member(db, event.id, registration.profile_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Position {position} must reference the team leader registration")
    return registration


def announce_results(
    db: Session,
    event: Event,
    actor: Optional[Profile],
    first_place: Optional[int],
    second_place: Optional[int] = None,
    third_place: Optional[int] = None,
) -> Event:
    """Record the podium, bump win counters and close the event, all in one commit."""
    if event.results_announced:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Results already announced for this event")
    if not first_place:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="First place winner is required")

    picks = [(1, first_place), (2, second_place), (3, third_place)]
    chosen = [(position, reg_id) for position, reg_id in picks if reg_id]
    reg_ids = [reg_id for _, reg_id in chosen]
    if len(set(reg_ids)) != len(reg_ids):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Each position needs a different registration")

    winners = {position: _winning_registration(db, event, reg_id, position) for position, reg_id in chosen}

    try:
        for position, registration in winners.items():
            profile_ids = [registration.profile_id] + team_member_ids(registration)
            increment_win_counts(db, profile_ids, position)
            db.add(
                EventResult(
                    event_id=event.id,
                    registration_id=registration.id,
                    position=position,
                    team_members=list(registration.team_members or []),
                    announced_by=actor.id if actor else None,
                )
            )

        event.winner_profile_id = winners[1].profile_id
        event.runnerup_profile_id = winners[2].profile_id if 2 in winners else None
        event.second_runnerup_profile_id = winners[3].profile_id if 3 in winners else None
        event.results_announced = True
        event.results_announced_at = now_tz()
        event.event_status = EventStatus.COMPLETED
        if event.is_live:
            event.is_live = False
            event.live_ended_at = now_tz()
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.error(f"Result announcement for event {event.id} rolled back: {exc.orig}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Results already recorded for this event") from exc
    except Exception:
        db.rollback()
        logger.error(f"Result announcement for event {event.id} rolled back")
        raise

    db.refresh(event)
    logger.info(f"Results announced for event {event.id}: {', '.join(f'{p}={r.id}' for p, r in winners.items())}")
    return event


def list_results(db: Session, event_id: int) -> List[EventResult]:
    return db.query(EventResult).filter(EventResult.event_id == event_id).order_by(EventResult.position.asc()).all()


def list_winners(db: Session, department: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, object]]:
    events = (
        db.query(Event)
        .filter(Event.results_announced.is_(True))
        .order_by(Event.results_announced_at.desc(), Event.id.desc())
        .all()
    )
    dept = str(department or "").strip().lower()
    items = []
    for event in events:
        podium = [event.winner, event.runnerup, event.second_runnerup]
        if dept and not any(p and str(p.department or "").strip().lower() == dept for p in podium):
            continue
        items.append({
            "event_id": event.id,
            "event_name": event.name,
            "category": event.category,
            "subcategory": event.subcategory,
            "image_path": event.image_path,
            "max_team_size": event.max_team_size,
            "winner": event.winner,
            "runnerup": event.runnerup,
            "second_runnerup": event.second_runnerup,
            "results_announced_at": event.results_announced_at,
            "event_results": list_results(db, event.id),
        })
        if limit and len(items) >= limit:
            break
    return items
