import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import get_password_hash
from certificate_service import issue_certificates, list_certificates
from database import get_db
from live_state import (
    FEST_START_KEY,
    REGISTRATION_OPEN_KEY,
    get_fest_start_date,
    is_registration_open,
    set_config_value,
)
from models import (
    AuditLog,
    Certificate,
    Event,
    EventAssignment,
    EventCategory,
    EventResult,
    EventStatus,
    EventSubcategory,
    Gender,
    NotificationType,
    PaymentMode,
    Profile,
    ProfileRole,
    Registration,
    RegistrationStatus,
)
from notification_service import send_notification
from payment_service import list_payments
from registration_rules import (
    ensure_event_payment_config,
    ensure_no_identifier_collision,
    ensure_team_bounds,
    normalize_identifier,
)
from registration_service import get_event_or_404, get_profile_or_404, list_students
from schemas import (
    AuditLogResponse,
    CertificateIssueResponse,
    CertificateResponse,
    CoordinatorAssignmentRequest,
    CoordinatorCreate,
    DashboardStats,
    EventCreate,
    EventResponse,
    EventUpdate,
    FestSettingsUpdate,
    NotificationCreate,
    NotificationScopeEnum,
    NotificationSendResponse,
    PaymentListItem,
    PresignRequest,
    PresignResponse,
    ProfileResponse,
    ProfileSummary,
    RegistrationStatusEnum,
)
from security import require_admin
from routers.shared import build_certificate_response, build_event_response, build_payment_item
from utils import (
    EVENT_COVER_PREFIX,
    EVENT_QR_PREFIX,
    IMAGE_CONTENT_TYPES,
    _delete_s3_object,
    _generate_presigned_put_url,
    _upload_to_s3,
    log_admin_action,
)

router = APIRouter()
logger = logging.getLogger(__name__)

ENUM_FIELDS = {
    "category": EventCategory,
    "subcategory": EventSubcategory,
    "payment_mode": PaymentMode,
}


def _apply_event_fields(event: Event, values: dict) -> None:
    for field, value in values.items():
        if field in ENUM_FIELDS and value is not None:
            value = ENUM_FIELDS[field](getattr(value, "value", value))
        elif field == "allowed_genders":
            value = [getattr(item, "value", item) for item in (value or [])]
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(event, field, value)


def _validate_event(event: Event) -> None:
    if not event.name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Please enter an event name")
    if event.subcategory == EventSubcategory.INDIVIDUAL:
        event.min_team_size = 1
        event.max_team_size = 1
    ensure_team_bounds(event.subcategory, event.min_team_size, event.max_team_size)
    ensure_event_payment_config(event.payment_mode, event.upi_id, event.qr_code_path)
    if event.day_order and not event.day:
        event.day = f"Day {event.day_order}"


def _commit_event(db: Session) -> None:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="An event with this name already exists") from exc


@router.post("/admin/events", response_model=EventResponse)
def create_event(
    payload: EventCreate,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = Event(created_by=admin.id, event_status=EventStatus.UPCOMING, is_live=False)
    _apply_event_fields(event, payload.model_dump())
    _validate_event(event)
    db.add(event)
    _commit_event(db)
    db.refresh(event)
    log_admin_action(db, admin, "Create event", request.method, request.url.path, event_id=event.id, meta={"name": event.name})
    logger.info(f"Event {event.id} created by {admin.id}")
    return build_event_response(db, event)


@router.put("/admin/events/{event_id}", response_model=EventResponse)
def update_event(
    event_id: int,
    payload: EventUpdate,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    changes = payload.model_dump(exclude_unset=True)
    try:
        _apply_event_fields(event, changes)
        _validate_event(event)
    except HTTPException:
        db.rollback()
        raise
    _commit_event(db)
    db.refresh(event)
    log_admin_action(db, admin, "Update event", request.method, request.url.path, event_id=event.id, meta={"fields": sorted(changes.keys())})
    return build_event_response(db, event)


@router.delete("/admin/events/{event_id}")
def delete_event(
    event_id: int,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    name = event.name
    assets = [event.image_path, event.qr_code_path]
    try:
        db.query(EventResult).filter(EventResult.event_id == event.id).delete(synchronize_session=False)
        db.query(Certificate).filter(Certificate.event_id == event.id).delete(synchronize_session=False)
        removed = db.query(Registration).filter(Registration.event_id == event.id).delete(synchronize_session=False)
        db.query(EventAssignment).filter(EventAssignment.event_id == event.id).delete(synchronize_session=False)
        db.delete(event)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Deleting event {event_id} rolled back")
        raise
    for path in assets:
        _delete_s3_object(path)
    log_admin_action(db, admin, "Delete event", request.method, request.url.path, event_id=event_id, meta={"name": name, "registrations_removed": removed})
    return {"message": "Event deleted successfully"}


def _replace_event_asset(db: Session, event: Event, field: str, file: UploadFile, prefix: str) -> str:
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing filename")
    key = _upload_to_s3(file, f"{prefix}/{event.id}", allowed_types=IMAGE_CONTENT_TYPES)
    previous = getattr(event, field)
    setattr(event, field, key)
    db.commit()
    if previous and previous != key:
        _delete_s3_object(previous)
    return key


@router.post("/admin/events/{event_id}/cover", response_model=EventResponse)
def upload_event_cover(
    event_id: int,
    request: Request,
    file: UploadFile = File(...),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    key = _replace_event_asset(db, event, "image_path", file, EVENT_COVER_PREFIX)
    log_admin_action(db, admin, "Upload event cover", request.method, request.url.path, event_id=event.id, meta={"key": key})
    return build_event_response(db, event)


@router.post("/admin/events/{event_id}/qr-code", response_model=EventResponse)
def upload_event_qr(
    event_id: int,
    request: Request,
    file: UploadFile = File(...),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    key = _replace_event_asset(db, event, "qr_code_path", file, EVENT_QR_PREFIX)
    log_admin_action(db, admin, "Upload event QR code", request.method, request.url.path, event_id=event.id, meta={"key": key})
    return build_event_response(db, event)


@router.post("/admin/uploads/presign", response_model=PresignResponse)
def presign_event_asset(
    payload: PresignRequest,
    kind: str = Query("cover", pattern="^(cover|qr)$"),
    admin: Profile = Depends(require_admin)
):
    prefix = EVENT_COVER_PREFIX if kind == "cover" else EVENT_QR_PREFIX
    return _generate_presigned_put_url(prefix, payload.filename, payload.content_type, allowed_types=IMAGE_CONTENT_TYPES)


@router.get("/admin/events/{event_id}/coordinators", response_model=List[ProfileSummary])
def list_event_coordinators(
    event_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    get_event_or_404(db, event_id)
    return (
        db.query(Profile)
        .join(EventAssignment, EventAssignment.coordinator_id == Profile.id)
        .filter(EventAssignment.event_id == event_id)
        .order_by(Profile.full_name.asc())
        .all()
    )


@router.post("/admin/events/{event_id}/coordinators", response_model=List[ProfileSummary])
def assign_coordinator(
    event_id: int,
    payload: CoordinatorAssignmentRequest,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    get_event_or_404(db, event_id)
    coordinator = get_profile_or_404(db, payload.coordinator_id)
    if coordinator.role != ProfileRole.COORDINATOR:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Profile is not a coordinator")
    db.add(EventAssignment(event_id=event_id, coordinator_id=coordinator.id))
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Coordinator already assigned to this event") from exc
    log_admin_action(db, admin, "Assign coordinator", request.method, request.url.path, event_id=event_id, meta={"coordinator_id": coordinator.id})
    return list_event_coordinators(event_id, admin, db)


@router.delete("/admin/events/{event_id}/coordinators/{coordinator_id}")
def unassign_coordinator(
    event_id: int,
    coordinator_id: int,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    removed = db.query(EventAssignment).filter(
        EventAssignment.event_id == event_id,
        EventAssignment.coordinator_id == coordinator_id,
    ).delete(synchronize_session=False)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    db.commit()
    log_admin_action(db, admin, "Unassign coordinator", request.method, request.url.path, event_id=event_id, meta={"coordinator_id": coordinator_id})
    return {"message": "Coordinator unassigned"}


@router.get("/admin/coordinators", response_model=List[ProfileResponse])
def list_coordinators(admin: Profile = Depends(require_admin), db: Session = Depends(get_db)):
    return db.query(Profile).filter(Profile.role == ProfileRole.COORDINATOR).order_by(Profile.full_name.asc()).all()


@router.post("/admin/coordinators", response_model=ProfileResponse)
def create_coordinator(
    payload: CoordinatorCreate,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    email = normalize_identifier(payload.college_email)
    ensure_no_identifier_collision(db, roll_number=payload.roll_number, college_email=email)
    for event_id in payload.event_ids:
        get_event_or_404(db, event_id)

    coordinator = Profile(
        full_name=payload.full_name.strip(),
        college_email=email,
        roll_number=payload.roll_number,
        hashed_password=get_password_hash(payload.password),
        phone=payload.phone,
        department=payload.department,
        gender=Gender(payload.gender.value) if payload.gender else None,
        role=ProfileRole.COORDINATOR,
        is_admin_created=True,
    )
    try:
        db.add(coordinator)
        db.flush()
        for event_id in sorted(set(payload.event_ids)):
            db.add(EventAssignment(event_id=event_id, coordinator_id=coordinator.id))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists") from exc
    db.refresh(coordinator)
    log_admin_action(db, admin, "Create coordinator", request.method, request.url.path, meta={"coordinator_id": coordinator.id, "event_ids": payload.event_ids})
    return coordinator


def _settings_payload(db: Session) -> dict:
    fest_start = get_fest_start_date(db)
    return {
        "fest_start_date": fest_start.isoformat() if fest_start else None,
        "registration_open": is_registration_open(db),
    }


@router.get("/admin/settings")
def get_settings(admin: Profile = Depends(require_admin), db: Session = Depends(get_db)):
    return _settings_payload(db)


@router.put("/admin/settings")
def update_settings(
    payload: FestSettingsUpdate,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    if payload.fest_start_date is not None:
        set_config_value(db, FEST_START_KEY, payload.fest_start_date.isoformat())
    if payload.registration_open is not None:
        set_config_value(db, REGISTRATION_OPEN_KEY, "true" if payload.registration_open else "false")
    db.commit()
    log_admin_action(db, admin, "Update fest settings", request.method, request.url.path, meta=payload.model_dump(mode="json", exclude_none=True))
    return _settings_payload(db)


@router.get("/admin/stats", response_model=DashboardStats)
def get_dashboard_stats(admin: Profile = Depends(require_admin), db: Session = Depends(get_db)):
    by_status = {
        getattr(key, "value", key): count
        for key, count in db.query(Registration.status, func.count(Registration.id)).group_by(Registration.status).all()
    }
    by_category = {
        getattr(key, "value", key): count
        for key, count in (
            db.query(Event.category, func.count(Registration.id))
            .join(Registration, Registration.event_id == Event.id)
            .group_by(Event.category)
            .all()
        )
    }
    return DashboardStats(
        total_events=db.query(func.count(Event.id)).scalar() or 0,
        live_events=db.query(func.count(Event.id)).filter(Event.is_live.is_(True)).scalar() or 0,
        completed_events=db.query(func.count(Event.id)).filter(Event.event_status == EventStatus.COMPLETED).scalar() or 0,
        total_profiles=db.query(func.count(Profile.id)).filter(Profile.role == ProfileRole.STUDENT).scalar() or 0,
        offline_profiles=db.query(func.count(Profile.id)).filter(Profile.is_admin_created.is_(True), Profile.role == ProfileRole.STUDENT).scalar() or 0,
        registrations_by_status=by_status,
        registrations_by_category=by_category,
    )


@router.get("/admin/logs", response_model=List[AuditLogResponse])
def list_audit_logs(
    event_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(AuditLog)
    if event_id is not None:
        query = query.filter(AuditLog.event_id == event_id)
    if action:
        query = query.filter(AuditLog.action.ilike(f"%{action.strip()}%"))
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()


@router.get("/admin/students", response_model=List[ProfileResponse])
def list_student_directory(
    search: Optional[str] = None,
    department: Optional[str] = None,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return list_students(db, search=search, department=department)


@router.get("/admin/payments", response_model=List[PaymentListItem])
def list_all_payments(
    status_filter: Optional[RegistrationStatusEnum] = Query(None, alias="status"),
    search: Optional[str] = None,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    wanted = RegistrationStatus(status_filter.value) if status_filter else None
    return [build_payment_item(registration, profile, event) for registration, profile, event in list_payments(db, wanted, search)]


@router.post("/admin/notifications", response_model=NotificationSendResponse)
def create_notification(
    payload: NotificationCreate,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    recipient = payload.recipient_email if payload.scope == NotificationScopeEnum.INDIVIDUAL else None
    sent = send_notification(db, payload.message, NotificationType(payload.type.value), recipient_email=recipient)
    log_admin_action(
        db, admin, "Send notification", request.method, request.url.path,
        meta={"scope": payload.scope.value, "type": payload.type.value, "recipients": sent},
    )
    return NotificationSendResponse(recipients=sent)


@router.post("/admin/events/{event_id}/certificates", response_model=CertificateIssueResponse)
def issue_event_certificates(
    event_id: int,
    request: Request,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    issued = issue_certificates(db, event)
    log_admin_action(db, admin, "Issue certificates", request.method, request.url.path, event_id=event.id, meta={"issued": issued})
    return CertificateIssueResponse(issued=issued)


@router.get("/admin/certificates", response_model=List[CertificateResponse])
def list_issued_certificates(
    search: Optional[str] = None,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return [build_certificate_response(certificate, profile, event) for certificate, profile, event in list_certificates(db, search)]
