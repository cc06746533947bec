import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from database import get_db
from live_state import is_registration_open
from models import PaymentMode, Profile, Registration
from registration_rules import is_group_event
from registration_service import (
    find_leader_for_member,
    find_profile_by_roll_number,
    get_event_or_404,
    is_leader,
    list_profile_registrations,
    register_for_event,
    search_profiles,
    update_payment_proof,
)
from schemas import (
    MyRegistrationResponse,
    PaymentProofUpdate,
    PresignRequest,
    PresignResponse,
    ProfileSummary,
    RegistrationCreate,
    RegistrationResponse,
)
from security import require_user
from routers.shared import build_my_registration_response
from utils import (
    IMAGE_CONTENT_TYPES,
    PAYMENT_PROOF_PREFIX,
    _generate_presigned_put_url,
    _upload_to_s3,
    public_url_for_path,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/profiles/lookup", response_model=ProfileSummary)
def lookup_profile(
    roll_number: str = Query(..., min_length=1),
    _: Profile = Depends(require_user),
    db: Session = Depends(get_db)
):
    profile = find_profile_by_roll_number(db, roll_number)
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No profile found for this roll number. Create an offline profile to continue.",
        )
    return profile


@router.get("/profiles/search", response_model=List[ProfileSummary])
def search_profile_directory(
    q: str = Query(..., min_length=2),
    event_id: Optional[int] = None,
    limit: int = Query(10, ge=1, le=50),
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db)
):
    exclude_ids = [profile.id]
    if event_id:
        registered = db.query(Registration.profile_id).filter(Registration.event_id == event_id).all()
        exclude_ids.extend(pid for (pid,) in registered)
    return search_profiles(db, q, exclude_ids=exclude_ids, limit=limit)


@router.post("/registrations/payment-screenshot/presign", response_model=PresignResponse)
def presign_payment_screenshot(
    payload: PresignRequest,
    profile: Profile = Depends(require_user)
):
    return _generate_presigned_put_url(
        f"{PAYMENT_PROOF_PREFIX}/{profile.id}",
        payload.filename,
        payload.content_type,
        allowed_types=IMAGE_CONTENT_TYPES,
    )


@router.post("/registrations/payment-screenshot")
def upload_payment_screenshot(
    file: UploadFile = File(...),
    profile: Profile = Depends(require_user)
):
    key = _upload_to_s3(file, f"{PAYMENT_PROOF_PREFIX}/{profile.id}", allowed_types=IMAGE_CONTENT_TYPES)
    return {"path": key, "url": public_url_for_path(key)}


@router.post("/events/{event_id}/register", response_model=RegistrationResponse)
def register(
    event_id: int,
    payload: RegistrationCreate,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db)
):
    if not is_registration_open(db):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registrations are closed")
    event = get_event_or_404(db, event_id)
    return register_for_event(
        db,
        event,
        profile,
        payload.member_profile_ids,
        payment_mode=PaymentMode(payload.payment_mode.value),
        transaction_id=payload.transaction_id,
        screenshot_path=payload.payment_screenshot_path,
    )


@router.get("/me/registrations", response_model=List[MyRegistrationResponse])
def my_registrations(profile: Profile = Depends(require_user), db: Session = Depends(get_db)):
    items = []
    for registration, event in list_profile_registrations(db, profile.id):
        if is_leader(registration):
            role = "leader"
        elif find_leader_for_member(db, event.id, profile.id):
            role = "member"
        elif is_group_event(event):
            role = "leader"
        else:
            role = "individual"
        items.append(build_my_registration_response(db, registration, event, role))
    return items


@router.put("/me/registrations/{registration_id}/payment-proof", response_model=RegistrationResponse)
def submit_payment_proof(
    registration_id: int,
    payload: PaymentProofUpdate,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db)
):
    registration = db.query(Registration).filter(
        Registration.id == registration_id,
        Registration.profile_id == profile.id,
    ).first()
    if not registration:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    updated = update_payment_proof(
        db,
        registration,
        transaction_id=payload.transaction_id,
        screenshot_path=payload.payment_screenshot_path,
    )
    logger.info(f"Payment proof updated for registration {updated.id}")
    return updated
