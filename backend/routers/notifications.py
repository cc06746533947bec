from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from certificate_service import get_certificate_by_hash, list_profile_certificates
from database import get_db
from models import Profile
from notification_service import list_notifications, mark_notification_read
from schemas import CertificateResponse, NotificationResponse
from security import require_user
from routers.shared import build_certificate_response

router = APIRouter()


@router.get("/me/notifications", response_model=List[NotificationResponse])
def my_notifications(profile: Profile = Depends(require_user), db: Session = Depends(get_db)):
    return list_notifications(db, profile.id)


@router.post("/me/notifications/{notification_id}/read", response_model=NotificationResponse)
def read_notification(
    notification_id: int,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db)
):
    return mark_notification_read(db, profile, notification_id)


@router.get("/me/certificates", response_model=List[CertificateResponse])
def my_certificates(profile: Profile = Depends(require_user), db: Session = Depends(get_db)):
    return [build_certificate_response(certificate, owner, event) for certificate, owner, event in list_profile_certificates(db, profile.id)]


@router.get("/certificates/{unique_hash}", response_model=CertificateResponse)
def verify_certificate(unique_hash: str, db: Session = Depends(get_db)):
    certificate, owner, event = get_certificate_by_hash(db, unique_hash)
    return build_certificate_response(certificate, owner, event)
