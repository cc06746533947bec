import logging
import secrets
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Certificate, Event, Profile, Registration, RegistrationStatus

logger = logging.getLogger(__name__)

CertificateRow = Tuple[Certificate, Profile, Event]


def _certificate_query(db: Session):
    return (
        db.query(Certificate, Profile, Event)
        .join(Profile, Certificate.profile_id == Profile.id)
        .join(Event, Certificate.event_id == Event.id)
    )


def issue_certificates(db: Session, event: Event) -> int:
    """Issue one certificate per confirmed participant, leaders and members alike.

    Profiles that already hold a certificate for the event are skipped.
    """
    confirmed = {
        pid for (pid,) in db.query(Registration.profile_id).filter(
            Registration.event_id == event.id,
            Registration.status == RegistrationStatus.CONFIRMED,
        ).all()
    }
    issued = {
        pid for (pid,) in db.query(Certificate.profile_id).filter(Certificate.event_id == event.id).all()
    }
    pending = sorted(confirmed - issued)
    if not pending:
        return 0

    db.add_all([
        Certificate(profile_id=pid, event_id=event.id, unique_hash=secrets.token_hex(16))
        for pid in pending
    ])
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(f"Certificate issue for event {event.id} collided: {exc.orig}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Certificates were issued concurrently; retry") from exc
    logger.info(f"Issued {len(pending)} certificate(s) for event {event.id}")
    return len(pending)


def list_certificates(db: Session, search: Optional[str] = None) -> List[CertificateRow]:
    query = _certificate_query(db)
    term = str(search or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(
                Profile.full_name.ilike(pattern),
                Event.name.ilike(pattern),
                Certificate.unique_hash.ilike(pattern),
            )
        )
    return query.order_by(Certificate.created_at.desc(), Certificate.id.desc()).all()


def list_profile_certificates(db: Session, profile_id: int) -> List[CertificateRow]:
    return (
        _certificate_query(db)
        .filter(Certificate.profile_id == profile_id)
        .order_by(Certificate.created_at.desc(), Certificate.id.desc())
        .all()
    )


def get_certificate_by_hash(db: Session, unique_hash: str) -> CertificateRow:
    row = _certificate_query(db).filter(Certificate.unique_hash == str(unique_hash or "").strip().lower()).first()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Certificate not found")
    return row
