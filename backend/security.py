from fastapi import Depends, HTTPException, status
from fastapi import Request
from sqlalchemy.orm import Session

from database import get_db
from auth import get_current_profile
from models import EventAssignment, Profile, ProfileRole


def _is_admin(profile: Profile) -> bool:
    return profile.role == ProfileRole.ADMIN


def _is_assigned(db: Session, profile: Profile, event_id: int) -> bool:
    row = db.query(EventAssignment.id).filter(
        EventAssignment.event_id == event_id,
        EventAssignment.coordinator_id == profile.id,
    ).first()
    return row is not None


def can_manage_event(db: Session, profile: Profile, event_id: int) -> bool:
    if _is_admin(profile):
        return True
    if profile.role != ProfileRole.COORDINATOR:
        return False
    return _is_assigned(db, profile, event_id)


def require_user(profile: Profile = Depends(get_current_profile)) -> Profile:
    return profile


def require_admin(profile: Profile = Depends(get_current_profile)) -> Profile:
    if not _is_admin(profile):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return profile


def require_staff(profile: Profile = Depends(get_current_profile)) -> Profile:
    if profile.role not in (ProfileRole.ADMIN, ProfileRole.COORDINATOR):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Coordinator access required")
    return profile


def require_event_manager(
    request: Request,
    profile: Profile = Depends(get_current_profile),
    db: Session = Depends(get_db)
) -> Profile:
    if _is_admin(profile):
        return profile

    raw_event_id = request.path_params.get("event_id")
    if raw_event_id is None or not str(raw_event_id).isdigit():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing event id")

    if not can_manage_event(db, profile, int(raw_event_id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not assigned to this event")
    return profile
