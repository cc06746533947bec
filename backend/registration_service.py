import logging
import os
import secrets
from typing import Dict, List, Optional, Sequence, Set, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import (
    Event,
    Gender,
    PaymentMode,
    Profile,
    ProfileRole,
    Registration,
    RegistrationStatus,
)
from registration_rules import (
    ensure_gender_eligible,
    ensure_no_identifier_collision,
    ensure_payment_evidence,
    ensure_payment_mode_allowed,
    ensure_team_size,
    is_group_event,
    normalize_roll_number,
)

logger = logging.getLogger(__name__)

OFFLINE_EMAIL_DOMAIN = os.environ.get("OFFLINE_EMAIL_DOMAIN", "offline.bonhomie.local")


def member_snapshot(profile: Profile) -> Dict[str, object]:
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "roll_number": profile.roll_number,
        "college_email": profile.college_email,
        "department": profile.department,
        "year_of_study": profile.year_of_study,
        "school": profile.school,
        "gender": profile.gender.value if profile.gender else None,
        "phone": profile.phone,
    }


def _snapshot_id(member: dict) -> Optional[int]:
    raw = member.get("id")
    return int(raw) if raw is not None else None


def team_member_ids(registration: Registration) -> List[int]:
    ids = (_snapshot_id(member) for member in (registration.team_members or []))
    return [pid for pid in ids if pid is not None]


def is_leader(registration: Registration) -> bool:
    """True for a row that carries team members. A group leader whose team shrank to one is not."""
    return bool(registration.team_members)


def team_size(registration: Registration) -> int:
    return len(registration.team_members or []) + 1


def get_event_or_404(db: Session, event_id: int) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")
    return event


def get_profile_or_404(db: Session, profile_id: int) -> Profile:
    profile = db.query(Profile).filter(Profile.id == profile_id).first()
    if not profile:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return profile


def get_registration_or_404(db: Session, event_id: int, registration_id: int) -> Registration:
    registration = db.query(Registration).filter(
        Registration.id == registration_id,
        Registration.event_id == event_id,
    ).first()
    if not registration:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    return registration


def _load_profiles(db: Session, profile_ids: Sequence[int]) -> List[Profile]:
    if not profile_ids:
        return []
    rows = db.query(Profile).filter(Profile.id.in_(list(profile_ids))).all()
    by_id = {row.id: row for row in rows}
    missing = [pid for pid in profile_ids if pid not in by_id]
    if missing:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Profile(s) not found: {', '.join(str(pid) for pid in missing)}")
    return [by_id[pid] for pid in profile_ids]


def _commit(db: Session, conflict_detail: str) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(f"Unique constraint violated: {exc.orig}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail) from exc
    except Exception:
        db.rollback()
        raise


def find_profile_by_roll_number(db: Session, roll_number: str) -> Optional[Profile]:
    normalized = normalize_roll_number(roll_number)
    if not normalized:
        return None
    return db.query(Profile).filter(Profile.roll_number == normalized).first()


def search_profiles(db: Session, query: str, exclude_ids: Sequence[int] = (), limit: int = 10) -> List[Profile]:
    term = str(query or "").strip()
    if len(term) < 2:
        return []
    pattern = f"%{term}%"
    q = db.query(Profile).filter(
        or_(
            Profile.full_name.ilike(pattern),
            Profile.roll_number.ilike(pattern),
            Profile.college_email.ilike(pattern),
        ),
        Profile.role == ProfileRole.STUDENT,
    )
    if exclude_ids:
        q = q.filter(Profile.id.notin_(list(exclude_ids)))
    return q.order_by(Profile.full_name.asc()).limit(limit).all()


def list_students(db: Session, search: Optional[str] = None, department: Optional[str] = None) -> List[Profile]:
    q = db.query(Profile).filter(Profile.role == ProfileRole.STUDENT)
    term = str(search or "").strip()
    if term:
        pattern = f"%{term}%"
        q = q.filter(
            or_(
                Profile.full_name.ilike(pattern),
                Profile.college_email.ilike(pattern),
                Profile.roll_number.ilike(pattern),
            )
        )
    dept = str(department or "").strip()
    if dept:
        q = q.filter(Profile.department.ilike(dept))
    return q.order_by(Profile.full_name.asc(), Profile.id.asc()).all()


def _offline_email(roll_number: str) -> str:
    local = "".join(ch for ch in roll_number.lower() if ch.isalnum()) or "student"
    return f"{local}.{secrets.token_hex(3)}@{OFFLINE_EMAIL_DOMAIN}"


def create_offline_profile(
    db: Session,
    *,
    full_name: str,
    roll_number: str,
    gender: Optional[Gender] = None,
    phone: Optional[str] = None,
    department: Optional[str] = None,
    year_of_study: Optional[str] = None,
    school: Optional[str] = None,
) -> Profile:
    """Create a walk-in participant profile that has no login credential."""
    normalized_roll = normalize_roll_number(roll_number)
    ensure_no_identifier_collision(db, roll_number=normalized_roll)
    email = _offline_email(normalized_roll)
    while db.query(Profile.id).filter(Profile.college_email == email).first():
        email = _offline_email(normalized_roll)

    profile = Profile(
        full_name=full_name.strip(),
        college_email=email,
        roll_number=normalized_roll,
        gender=Gender(gender) if gender else None,
        phone=phone,
        department=department,
        year_of_study=year_of_study,
        school=school,
        role=ProfileRole.STUDENT,
        hashed_password=None,
        is_admin_created=True,
    )
    db.add(profile)
    _commit(db, "A profile with this roll number already exists")
    db.refresh(profile)
    logger.info(f"Created offline profile {profile.id} for roll number {normalized_roll}")
    return profile


def ensure_not_registered(db: Session, event_id: int, leader_id: Optional[int], member_ids: Sequence[int]) -> None:
    if leader_id is not None:
        existing = db.query(Registration.id).filter(
            Registration.event_id == event_id,
            Registration.profile_id == leader_id,
        ).first()
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already registered for this event")

    if member_ids:
        rows = (
            db.query(Registration, Profile)
            .join(Profile, Registration.profile_id == Profile.id)
            .filter(Registration.event_id == event_id, Registration.profile_id.in_(list(member_ids)))
            .all()
        )
        if rows:
            names = ", ".join(profile.full_name or "Unknown" for _, profile in rows)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"The following team member(s) are already registered for this event: {names}",
            )


def leader_registrations(db: Session, event_id: int) -> List[Registration]:
    rows = db.query(Registration).filter(Registration.event_id == event_id).all()
    return [row for row in rows if is_leader(row)]


def team_member_id_set(db: Session, event_id: int) -> Set[int]:
    """Profile ids listed under some leader of the event."""
    member_ids = set()
    for row in leader_registrations(db, event_id):
        member_ids.update(team_member_ids(row))
    return member_ids


def find_leader_for_member(db: Session, event_id: int, profile_id: int) -> Optional[Registration]:
    for row in leader_registrations(db, event_id):
        if profile_id in team_member_ids(row):
            return row
    return None


def ensure_not_in_any_team(db: Session, event_id: int, profile_ids: Sequence[int], exclude_registration_id: Optional[int] = None) -> None:
    wanted = set(profile_ids)
    if not wanted:
        return
    for row in leader_registrations(db, event_id):
        if exclude_registration_id is not None and row.id == exclude_registration_id:
            continue
        clash = wanted.intersection(team_member_ids(row))
        if clash:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Profile(s) {', '.join(str(pid) for pid in sorted(clash))} already belong to another team",
            )


def _ensure_event_accepts_registrations(event: Event) -> None:
    if event.results_announced:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Results already announced for this event")


def _distinct_member_ids(leader: Profile, member_profile_ids: Sequence[int]) -> List[int]:
    member_ids = [int(pid) for pid in member_profile_ids]
    if leader.id in member_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Leader cannot be listed as a team member")
    if len(set(member_ids)) != len(member_ids):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Team members must be distinct")
    return member_ids


def _insert_team(
    db: Session,
    event: Event,
    leader: Profile,
    members: List[Profile],
    *,
    payment_mode: PaymentMode,
    status_value: RegistrationStatus,
    transaction_id: Optional[str] = None,
    screenshot_path: Optional[str] = None,
) -> Registration:
    leader_row = Registration(
        profile_id=leader.id,
        event_id=event.id,
        status=status_value,
        payment_mode=payment_mode,
        team_members=[member_snapshot(member) for member in members],
        transaction_id=transaction_id,
        payment_screenshot_path=screenshot_path,
    )
    db.add(leader_row)
    db.flush()
    for member in members:
        db.add(
            Registration(
                profile_id=member.id,
                event_id=event.id,
                status=status_value,
                payment_mode=payment_mode,
                team_members=[],
                transaction_id=None,
                payment_screenshot_path=None,
            )
        )
    _commit(db, "Already registered for this event")
    db.refresh(leader_row)
    return leader_row


def register_for_event(
    db: Session,
    event: Event,
    leader: Profile,
    member_profile_ids: Sequence[int],
    *,
    payment_mode: PaymentMode,
    transaction_id: Optional[str] = None,
    screenshot_path: Optional[str] = None,
) -> Registration:
    """Self-registration by a student; the row waits for payment verification."""
    _ensure_event_accepts_registrations(event)
    member_ids = _distinct_member_ids(leader, member_profile_ids)

    ensure_payment_mode_allowed(event, payment_mode)
    ensure_payment_evidence(payment_mode, transaction_id, screenshot_path)
    ensure_team_size(event, len(member_ids))
    members = _load_profiles(db, member_ids)
    ensure_gender_eligible(event, [leader] + members)
    ensure_not_registered(db, event.id, leader.id, member_ids)
    ensure_not_in_any_team(db, event.id, [leader.id] + member_ids)

    registration = _insert_team(
        db,
        event,
        leader,
        members,
        payment_mode=payment_mode,
        status_value=RegistrationStatus.PENDING,
        transaction_id=transaction_id if payment_mode != PaymentMode.CASH else None,
        screenshot_path=screenshot_path if payment_mode != PaymentMode.CASH else None,
    )
    logger.info(f"Registration {registration.id} created for event {event.id} by profile {leader.id} with {len(members)} member(s)")
    return registration


def register_offline(db: Session, event: Event, leader: Profile, member_profile_ids: Sequence[int]) -> Registration:
    """Staff registration of a walk-in participant or team, paid in cash and confirmed immediately."""
    _ensure_event_accepts_registrations(event)
    member_ids = _distinct_member_ids(leader, member_profile_ids)

    ensure_team_size(event, len(member_ids))
    members = _load_profiles(db, member_ids)
    ensure_gender_eligible(event, [leader] + members)
    ensure_not_registered(db, event.id, leader.id, member_ids)
    ensure_not_in_any_team(db, event.id, [leader.id] + member_ids)

    registration = _insert_team(
        db,
        event,
        leader,
        members,
        payment_mode=PaymentMode.CASH,
        status_value=RegistrationStatus.CONFIRMED,
    )
    logger.info(f"Offline registration {registration.id} confirmed for event {event.id} with {len(members)} member(s)")
    return registration


def ensure_leader_row(db: Session, event: Event, registration: Registration) -> None:
    if not is_group_event(event):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Team management is only available for group events")
    if not is_leader(registration) and find_leader_for_member(db, event.id, registration.profile_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Registration belongs to a team member; use the leader registration")


def _member_row(db: Session, event_id: int, profile_id: int) -> Optional[Registration]:
    return db.query(Registration).filter(
        Registration.event_id == event_id,
        Registration.profile_id == profile_id,
    ).first()


def add_team_member(db: Session, event: Event, leader_row: Registration, profile: Profile) -> Registration:
    ensure_leader_row(db, event, leader_row)
    if profile.id == leader_row.profile_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Leader is already part of the team")
    if team_size(leader_row) + 1 > event.max_team_size:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Maximum team size is {event.max_team_size} (including leader)")
    ensure_gender_eligible(event, [profile])
    ensure_not_registered(db, event.id, None, [profile.id])
    ensure_not_in_any_team(db, event.id, [profile.id])

    leader_row.team_members = list(leader_row.team_members or []) + [member_snapshot(profile)]
    db.add(
        Registration(
            profile_id=profile.id,
            event_id=event.id,
            status=leader_row.status,
            payment_mode=leader_row.payment_mode,
            team_members=[],
        )
    )
    _commit(db, "Profile is already registered for this event")
    db.refresh(leader_row)
    logger.info(f"Added profile {profile.id} to team of registration {leader_row.id}")
    return leader_row


def delete_team(db: Session, event: Event, leader_row: Registration) -> int:
    """Delete every member row, then the leader row. Returns rows removed."""
    member_ids = team_member_ids(leader_row)
    removed = 0
    try:
        if member_ids:
            removed = db.query(Registration).filter(
                Registration.event_id == event.id,
                Registration.profile_id.in_(member_ids),
            ).delete(synchronize_session=False)
        db.delete(leader_row)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(f"Deleted team of registration {leader_row.id} ({removed} member row(s)) for event {event.id}")
    return removed + 1


def remove_team_member(
    db: Session,
    event: Event,
    leader_row: Registration,
    member_profile_id: int,
    *,
    delete_entire_team: bool = False,
) -> Tuple[bool, int]:
    """Returns (team_deleted, resulting team size)."""
    ensure_leader_row(db, event, leader_row)
    if member_profile_id not in team_member_ids(leader_row):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile is not a member of this team")

    resulting_size = team_size(leader_row) - 1
    if resulting_size < event.min_team_size:
        if not delete_entire_team:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    f"Removing this member leaves {resulting_size} participant(s), below the minimum of "
                    f"{event.min_team_size}. Delete the entire team instead."
                ),
            )
        delete_team(db, event, leader_row)
        return True, 0

    leader_row.team_members = [
        member for member in (leader_row.team_members or []) if _snapshot_id(member) != member_profile_id
    ]
    db.query(Registration).filter(
        Registration.event_id == event.id,
        Registration.profile_id == member_profile_id,
    ).delete(synchronize_session=False)
    _commit(db, "Could not remove team member")
    logger.info(f"Removed profile {member_profile_id} from team of registration {leader_row.id}")
    return False, resulting_size


def replace_team_member(
    db: Session,
    event: Event,
    leader_row: Registration,
    old_profile_id: int,
    new_profile: Profile,
) -> Registration:
    ensure_leader_row(db, event, leader_row)
    current_ids = team_member_ids(leader_row)
    if old_profile_id not in current_ids:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile is not a member of this team")
    if new_profile.id == leader_row.profile_id or new_profile.id in current_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Profile is already part of this team")
    ensure_gender_eligible(event, [new_profile])
    ensure_not_registered(db, event.id, None, [new_profile.id])
    ensure_not_in_any_team(db, event.id, [new_profile.id])

    leader_row.team_members = [
        member_snapshot(new_profile) if _snapshot_id(member) == old_profile_id else member
        for member in (leader_row.team_members or [])
    ]
    member_row = _member_row(db, event.id, old_profile_id)
    if member_row:
        member_row.profile_id = new_profile.id
    else:
        db.add(
            Registration(
                profile_id=new_profile.id,
                event_id=event.id,
                status=leader_row.status,
                payment_mode=leader_row.payment_mode,
                team_members=[],
            )
        )
    _commit(db, "Profile is already registered for this event")
    db.refresh(leader_row)
    logger.info(f"Replaced profile {old_profile_id} with {new_profile.id} in team of registration {leader_row.id}")
    return leader_row


def delete_registration(db: Session, event: Event, registration: Registration) -> int:
    if is_leader(registration):
        return delete_team(db, event, registration)
    leader_row = find_leader_for_member(db, event.id, registration.profile_id)
    if leader_row:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This participant belongs to a team; remove them through the team leader",
        )
    db.delete(registration)
    _commit(db, "Could not delete registration")
    return 1


def update_payment_proof(
    db: Session,
    registration: Registration,
    *,
    transaction_id: Optional[str],
    screenshot_path: Optional[str],
) -> Registration:
    if registration.status != RegistrationStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only pending registrations accept payment proof")
    if registration.payment_mode == PaymentMode.CASH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cash registrations do not take payment proof")
    if find_leader_for_member(db, registration.event_id, registration.profile_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only the team leader submits payment proof")
    if transaction_id is not None:
        registration.transaction_id = str(transaction_id).strip() or None
    if screenshot_path is not None:
        registration.payment_screenshot_path = str(screenshot_path).strip() or None
    _commit(db, "Could not update payment proof")
    db.refresh(registration)
    return registration


def list_participants(
    db: Session,
    event_id: int,
    status_filter: Optional[RegistrationStatus] = None,
    search: Optional[str] = None,
) -> List[Tuple[Registration, Profile]]:
    query = (
        db.query(Registration, Profile)
        .join(Profile, Registration.profile_id == Profile.id)
        .filter(Registration.event_id == event_id)
    )
    if status_filter:
        query = query.filter(Registration.status == status_filter)
    if search:
        query = query.filter(
            (Profile.full_name.ilike(f"%{search}%")) |
            (Profile.roll_number.ilike(f"%{search}%"))
        )
    return query.order_by(Registration.registered_at.asc(), Registration.id.asc()).all()


def list_pending_payments(db: Session, event_id: int) -> List[Tuple[Registration, Profile]]:
    """Pending leaders and individuals; member rows are hidden behind their leader."""
    rows = (
        db.query(Registration, Profile)
        .join(Profile, Registration.profile_id == Profile.id)
        .filter(Registration.event_id == event_id, Registration.status == RegistrationStatus.PENDING)
        .order_by(Registration.registered_at.desc(), Registration.id.desc())
        .all()
    )
    member_ids = team_member_id_set(db, event_id)
    return [
        (registration, profile)
        for registration, profile in rows
        if is_leader(registration) or profile.id not in member_ids
    ]


def list_profile_registrations(db: Session, profile_id: int) -> List[Tuple[Registration, Event]]:
    return (
        db.query(Registration, Event)
        .join(Event, Registration.event_id == Event.id)
        .filter(Registration.profile_id == profile_id)
        .order_by(Registration.registered_at.desc(), Registration.id.desc())
        .all()
    )
