from typing import Iterable, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from models import Event, EventSubcategory, Gender, PaymentMode, Profile


def normalize_identifier(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def normalize_roll_number(value: Optional[str]) -> str:
    return str(value or "").strip().upper()


def is_group_event(event: Event) -> bool:
    return event.subcategory == EventSubcategory.GROUP


def gender_eligibility_error(event: Event, gender: Optional[Gender]) -> Optional[str]:
    allowed = [str(item) for item in (event.allowed_genders or [])]
    if not allowed:
        return None
    if Gender.MALE.value in allowed and Gender.FEMALE.value in allowed:
        return None
    gender_value = gender.value if isinstance(gender, Gender) else (str(gender) if gender else None)
    if gender_value in allowed:
        return None
    if Gender.MALE.value in allowed:
        return "This event is only for Boys"
    if Gender.FEMALE.value in allowed:
        return "This event is only for Girls"
    return "You are not eligible for this event"


def ensure_gender_eligible(event: Event, profiles: Iterable[Profile]) -> None:
    for profile in profiles:
        message = gender_eligibility_error(event, profile.gender)
        if message:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{profile.full_name}: {message}",
            )


def ensure_team_size(event: Event, member_count: int) -> None:
    """member_count excludes the leader."""
    if not is_group_event(event):
        if member_count:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Team members are not allowed for individual events")
        return
    total = member_count + 1
    if total < event.min_team_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Min team size is {event.min_team_size} (including leader). Currently: {total}",
        )
    if total > event.max_team_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Maximum team size is {event.max_team_size} (including leader)",
        )


def ensure_payment_mode_allowed(event: Event, payment_mode: PaymentMode) -> None:
    if event.payment_mode == PaymentMode.CASH and payment_mode != PaymentMode.CASH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This event accepts cash payments only")
    if event.payment_mode == PaymentMode.ONLINE and payment_mode == PaymentMode.CASH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This event accepts online payments only")


def requires_payment_evidence(payment_mode: PaymentMode) -> bool:
    return payment_mode in (PaymentMode.ONLINE, PaymentMode.HYBRID)


def missing_payment_evidence(payment_mode: PaymentMode, transaction_id: Optional[str], screenshot_path: Optional[str]) -> List[str]:
    if not requires_payment_evidence(payment_mode):
        return []
    missing = []
    if not str(transaction_id or "").strip():
        missing.append("transaction_id")
    if not str(screenshot_path or "").strip():
        missing.append("payment_screenshot_path")
    return missing


def ensure_payment_evidence(payment_mode: PaymentMode, transaction_id: Optional[str], screenshot_path: Optional[str]) -> None:
    missing = missing_payment_evidence(payment_mode, transaction_id, screenshot_path)
    if "transaction_id" in missing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Transaction ID is required for online payment")
    if "payment_screenshot_path" in missing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment screenshot is required for online payment")


def ensure_event_payment_config(payment_mode: PaymentMode, upi_id: Optional[str], qr_code_path: Optional[str]) -> None:
    if payment_mode == PaymentMode.ONLINE and not str(upi_id or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="UPI ID is required for online payment mode")
    if payment_mode in (PaymentMode.HYBRID, PaymentMode.ONLINE) and not str(qr_code_path or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="QR Code is required for hybrid/online payment modes")


def ensure_team_bounds(subcategory: EventSubcategory, min_size: int, max_size: int) -> None:
    if min_size > max_size:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="min_team_size cannot exceed max_team_size")
    if subcategory == EventSubcategory.GROUP and max_size < 2:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Group events need max_team_size of at least 2")


def ensure_no_identifier_collision(
    db: Session,
    *,
    roll_number: Optional[str] = None,
    college_email: Optional[str] = None,
    exclude_profile_id: Optional[int] = None,
) -> None:
    normalized_roll = normalize_identifier(roll_number)
    normalized_email = normalize_identifier(college_email)

    if normalized_roll:
        query = db.query(Profile.id).filter(func.lower(func.trim(Profile.roll_number)) == normalized_roll)
        if exclude_profile_id is not None:
            query = query.filter(Profile.id != exclude_profile_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A profile with this roll number already exists",
            )

    if normalized_email:
        query = db.query(Profile.id).filter(func.lower(func.trim(Profile.college_email)) == normalized_email)
        if exclude_profile_id is not None:
            query = query.filter(Profile.id != exclude_profile_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A profile with this email already exists",
            )
