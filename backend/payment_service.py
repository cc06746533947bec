import logging
from typing import Dict, List, Optional, Set, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from models import Event, Profile, Registration, RegistrationStatus
from registration_rules import missing_payment_evidence
from registration_service import find_leader_for_member, is_leader, team_member_ids

logger = logging.getLogger(__name__)


def _ensure_addressable(db: Session, event: Event, registration: Registration) -> None:
    if registration.event_id != event.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    if not is_leader(registration) and find_leader_for_member(db, event.id, registration.profile_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Team member registrations follow their leader; act on the leader registration",
        )


def _cascade_status(
    db: Session,
    event: Event,
    registration: Registration,
    new_status: RegistrationStatus,
    from_statuses: Tuple[RegistrationStatus, ...],
) -> int:
    member_ids = team_member_ids(registration)
    if not member_ids:
        return 0
    return db.query(Registration).filter(
        Registration.event_id == event.id,
        Registration.profile_id.in_(member_ids),
        Registration.status.in_(from_statuses),
    ).update({Registration.status: new_status}, synchronize_session=False)


def verify_payment(db: Session, event: Event, registration: Registration) -> Tuple[Registration, int]:
    """Confirm a pending registration and every member of its team.

    Cash needs no evidence. Online and hybrid need both the transaction id and
    the screenshot reference on the registration.
    """
    _ensure_addressable(db, event, registration)
    if registration.status != RegistrationStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Registration is already {registration.status.value}",
        )

    missing = missing_payment_evidence(
        registration.payment_mode,
        registration.transaction_id,
        registration.payment_screenshot_path,
    )
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot verify without payment proof: missing {', '.join(missing)}",
        )

    try:
        registration.status = RegistrationStatus.CONFIRMED
        confirmed_members = _cascade_status(
            db, event, registration, RegistrationStatus.CONFIRMED, (RegistrationStatus.PENDING,)
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Verification of registration {registration.id} rolled back")
        raise
    db.refresh(registration)
    logger.info(f"Registration {registration.id} confirmed for event {event.id}; {confirmed_members} member row(s) cascaded")
    return registration, confirmed_members


def reject_registration(db: Session, event: Event, registration: Registration, reason: Optional[str] = None) -> Tuple[Registration, int]:
    _ensure_addressable(db, event, registration)
    if registration.status == RegistrationStatus.REJECTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Registration is already rejected")

    try:
        registration.status = RegistrationStatus.REJECTED
        rejected_members = _cascade_status(
            db,
            event,
            registration,
            RegistrationStatus.REJECTED,
            (RegistrationStatus.PENDING, RegistrationStatus.CONFIRMED),
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Rejection of registration {registration.id} rolled back")
        raise
    db.refresh(registration)
    logger.info(
        f"Registration {registration.id} rejected for event {event.id}; "
        f"{rejected_members} member row(s) cascaded; reason={reason or '-'}"
    )
    return registration, rejected_members


def _member_ids_by_event(db: Session, event_ids: Set[int]) -> Dict[int, Set[int]]:
    by_event: Dict[int, Set[int]] = {event_id: set() for event_id in event_ids}
    if not event_ids:
        return by_event
    for row in db.query(Registration).filter(Registration.event_id.in_(list(event_ids))).all():
        if is_leader(row):
            by_event[row.event_id].update(team_member_ids(row))
    return by_event


def list_payments(
    db: Session,
    status_filter: Optional[RegistrationStatus] = None,
    search: Optional[str] = None,
) -> List[Tuple[Registration, Profile, Event]]:
    """Payment rows across every event: leaders and individuals, newest first."""
    query = (
        db.query(Registration, Profile, Event)
        .join(Profile, Registration.profile_id == Profile.id)
        .join(Event, Registration.event_id == Event.id)
    )
    if status_filter:
        query = query.filter(Registration.status == status_filter)
    term = str(search or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Profile.full_name.ilike(pattern),
                Event.name.ilike(pattern),
                Registration.transaction_id.ilike(pattern),
            )
        )
    rows = query.order_by(Registration.registered_at.desc(), Registration.id.desc()).all()
    members = _member_ids_by_event(db, {registration.event_id for registration, _, _ in rows})
    return [
        (registration, profile, event)
        for registration, profile, event in rows
        if is_leader(registration) or profile.id not in members[registration.event_id]
    ]
