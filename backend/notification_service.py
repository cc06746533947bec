import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from models import Notification, NotificationType, Profile
from registration_rules import normalize_identifier

logger = logging.getLogger(__name__)


def send_notification(
    db: Session,
    message: str,
    notification_type: NotificationType = NotificationType.INFO,
    recipient_email: Optional[str] = None,
) -> int:
    """Queue a notice for one profile (by college email) or, without an email, for every profile.

    Returns the number of notices written.
    """
    if recipient_email is not None:
        email = normalize_identifier(recipient_email)
        profile = db.query(Profile).filter(Profile.college_email == email).first()
        if not profile:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        recipient_ids = [profile.id]
    else:
        recipient_ids = [pid for (pid,) in db.query(Profile.id).order_by(Profile.id.asc()).all()]

    try:
        db.add_all([
            Notification(profile_id=pid, message=message, type=notification_type, read_status=False)
            for pid in recipient_ids
        ])
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Sending notification to {len(recipient_ids)} profile(s) rolled back")
        raise
    logger.info(f"Notification ({notification_type.value}) sent to {len(recipient_ids)} profile(s)")
    return len(recipient_ids)


def list_notifications(db: Session, profile_id: int) -> List[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.profile_id == profile_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .all()
    )


def mark_notification_read(db: Session, profile: Profile, notification_id: int) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.profile_id == profile.id,
    ).first()
    if not notification:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    if not notification.read_status:
        notification.read_status = True
        db.commit()
        db.refresh(notification)
    return notification
