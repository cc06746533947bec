import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import get_password_hash, issue_tokens, profile_from_token, verify_password
from database import get_db
from models import Gender, Profile, ProfileRole
from registration_rules import ensure_no_identifier_collision, normalize_identifier
from schemas import (
    PasswordChangeRequest,
    ProfileLogin,
    ProfileResponse,
    ProfileSignup,
    ProfileUpdate,
    RefreshTokenRequest,
    TokenResponse,
)
from security import require_user

router = APIRouter()
logger = logging.getLogger(__name__)


def _token_response(profile: Profile) -> TokenResponse:
    tokens = issue_tokens(profile)
    return TokenResponse(
        access_token=tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        profile=ProfileResponse.model_validate(profile),
    )


@router.post("/auth/signup", response_model=TokenResponse)
def signup(payload: ProfileSignup, db: Session = Depends(get_db)):
    email = normalize_identifier(payload.college_email)
    ensure_no_identifier_collision(db, roll_number=payload.roll_number, college_email=email)

    profile = Profile(
        full_name=payload.full_name.strip(),
        college_email=email,
        roll_number=payload.roll_number,
        hashed_password=get_password_hash(payload.password),
        phone=payload.phone,
        gender=Gender(payload.gender.value),
        department=payload.department,
        year_of_study=payload.year_of_study,
        school=payload.school,
        role=ProfileRole.STUDENT,
        is_admin_created=False,
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists") from exc
    db.refresh(profile)
    logger.info(f"Profile {profile.id} signed up")
    return _token_response(profile)


@router.post("/auth/login", response_model=TokenResponse)
def login(payload: ProfileLogin, db: Session = Depends(get_db)):
    email = normalize_identifier(payload.college_email)
    profile = db.query(Profile).filter(Profile.college_email == email).first()
    if not profile or not verify_password(payload.password, profile.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _token_response(profile)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: RefreshTokenRequest, db: Session = Depends(get_db)):
    profile = profile_from_token(db, request.refresh_token, token_type="refresh")
    return _token_response(profile)


@router.get("/me", response_model=ProfileResponse)
def get_me(profile: Profile = Depends(require_user)):
    return profile


@router.put("/me", response_model=ProfileResponse)
def update_me(
    update_data: ProfileUpdate,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db)
):
    if update_data.full_name is not None:
        profile.full_name = update_data.full_name.strip()
    if update_data.phone is not None:
        profile.phone = update_data.phone
    for field in ("department", "year_of_study", "school", "avatar_url"):
        if field in update_data.model_fields_set:
            value = str(getattr(update_data, field) or "").strip()
            setattr(profile, field, value or None)
    db.commit()
    db.refresh(profile)
    return profile


@router.post("/me/change-password")
def change_password(
    payload: PasswordChangeRequest,
    profile: Profile = Depends(require_user),
    db: Session = Depends(get_db)
):
    if not verify_password(payload.current_password, profile.hashed_password):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    if payload.current_password == payload.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="New password must differ from the current one")
    profile.hashed_password = get_password_hash(payload.new_password)
    db.commit()
    logger.info(f"Profile {profile.id} changed password")
    return {"message": "Password updated successfully"}
