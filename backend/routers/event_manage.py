import io
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from database import get_db
from exports import export_confirmed_registrations
from live_state import end_live, get_fest_start_date, go_live
from models import Event, EventAssignment, Profile, ProfileRole, RegistrationStatus
from payment_service import reject_registration, verify_payment
from registration_service import (
    add_team_member,
    create_offline_profile,
    delete_registration,
    delete_team,
    ensure_leader_row,
    get_event_or_404,
    get_profile_or_404,
    get_registration_or_404,
    list_participants,
    list_pending_payments,
    register_offline,
    remove_team_member,
    replace_team_member,
)
from results_service import announce_results, list_results
from schemas import (
    EventResponse,
    EventResultResponse,
    GoLiveRequest,
    MemberRemovalResponse,
    OfflineProfileCreate,
    OfflineRegistrationCreate,
    ParticipantResponse,
    PendingPaymentResponse,
    ProfileResponse,
    RegistrationResponse,
    RegistrationStatusEnum,
    ResultAnnouncement,
    TeamMemberAddRequest,
    TeamMemberReplaceRequest,
    VerifyPaymentResponse,
)
from security import require_event_manager, require_staff
from routers.shared import build_event_response, build_participant_response, build_pending_response
from utils import log_admin_action

router = APIRouter()
logger = logging.getLogger(__name__)


def _audit(db: Session, actor: Profile, action: str, request: Request, event_id: Optional[int] = None, meta: Optional[dict] = None):
    log_admin_action(db, actor, action, request.method, request.url.path, event_id=event_id, meta=meta)


@router.get("/manage/events/{event_id}/participants", response_model=List[ParticipantResponse])
def get_participants(
    event_id: int,
    status_filter: Optional[RegistrationStatusEnum] = Query(None, alias="status"),
    search: Optional[str] = None,
    _: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    get_event_or_404(db, event_id)
    rows = list_participants(
        db,
        event_id,
        status_filter=RegistrationStatus(status_filter.value) if status_filter else None,
        search=search,
    )
    return [build_participant_response(registration, profile) for registration, profile in rows]


@router.get("/manage/events/{event_id}/pending-payments", response_model=List[PendingPaymentResponse])
def get_pending_payments(
    event_id: int,
    _: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    get_event_or_404(db, event_id)
    return [build_pending_response(registration, profile) for registration, profile in list_pending_payments(db, event_id)]


@router.post("/manage/events/{event_id}/registrations/{registration_id}/verify", response_model=VerifyPaymentResponse)
def verify_registration_payment(
    event_id: int,
    registration_id: int,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registration = get_registration_or_404(db, event_id, registration_id)
    registration, members_confirmed = verify_payment(db, event, registration)
    _audit(db, actor, "Verify payment", request, event.id, {"registration_id": registration.id, "members_confirmed": members_confirmed})
    return VerifyPaymentResponse(
        registration_id=registration.id,
        status=registration.status,
        members_confirmed=members_confirmed,
        message="Payment verified",
    )


@router.post("/manage/events/{event_id}/registrations/{registration_id}/reject", response_model=VerifyPaymentResponse)
def reject_registration_payment(
    event_id: int,
    registration_id: int,
    request: Request,
    reason: Optional[str] = None,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registration = get_registration_or_404(db, event_id, registration_id)
    registration, members_rejected = reject_registration(db, event, registration, reason)
    _audit(db, actor, "Reject registration", request, event.id, {"registration_id": registration.id, "reason": reason})
    return VerifyPaymentResponse(
        registration_id=registration.id,
        status=registration.status,
        members_confirmed=members_rejected,
        message="Registration rejected",
    )


@router.post("/manage/profiles/offline", response_model=ProfileResponse)
def create_walk_in_profile(
    payload: OfflineProfileCreate,
    request: Request,
    actor: Profile = Depends(require_staff),
    db: Session = Depends(get_db)
):
    profile = create_offline_profile(
        db,
        full_name=payload.full_name,
        roll_number=payload.roll_number,
        gender=payload.gender.value if payload.gender else None,
        phone=payload.phone,
        department=payload.department,
        year_of_study=payload.year_of_study,
        school=payload.school,
    )
    _audit(db, actor, "Create offline profile", request, meta={"profile_id": profile.id, "roll_number": profile.roll_number})
    return profile


@router.post("/manage/events/{event_id}/offline-registrations", response_model=RegistrationResponse)
def create_offline_registration(
    event_id: int,
    payload: OfflineRegistrationCreate,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    leader = get_profile_or_404(db, payload.leader_profile_id)
    registration = register_offline(db, event, leader, payload.member_profile_ids)
    _audit(db, actor, "Offline registration", request, event.id, {"registration_id": registration.id, "leader_profile_id": leader.id})
    return registration


@router.post("/manage/events/{event_id}/registrations/{registration_id}/members", response_model=RegistrationResponse)
def add_member(
    event_id: int,
    registration_id: int,
    payload: TeamMemberAddRequest,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registration = get_registration_or_404(db, event_id, registration_id)
    member = get_profile_or_404(db, payload.profile_id)
    updated = add_team_member(db, event, registration, member)
    _audit(db, actor, "Add team member", request, event.id, {"registration_id": updated.id, "profile_id": member.id})
    return updated


@router.delete("/manage/events/{event_id}/registrations/{registration_id}/members/{profile_id}", response_model=MemberRemovalResponse)
def remove_member(
    event_id: int,
    registration_id: int,
    profile_id: int,
    request: Request,
    delete_entire_team: bool = False,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registration = get_registration_or_404(db, event_id, registration_id)
    team_deleted, size = remove_team_member(db, event, registration, profile_id, delete_entire_team=delete_entire_team)
    _audit(
        db,
        actor,
        "Delete team" if team_deleted else "Remove team member",
        request,
        event.id,
        {"registration_id": registration_id, "profile_id": profile_id},
    )
    message = "Team deleted" if team_deleted else "Team member removed"
    return MemberRemovalResponse(message=message, team_deleted=team_deleted, team_size=size)


@router.put("/manage/events/{event_id}/registrations/{registration_id}/members/{profile_id}", response_model=RegistrationResponse)
def replace_member(
    event_id: int,
    registration_id: int,
    profile_id: int,
    payload: TeamMemberReplaceRequest,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registration = get_registration_or_404(db, event_id, registration_id)
    new_profile = get_profile_or_404(db, payload.new_profile_id)
    updated = replace_team_member(db, event, registration, profile_id, new_profile)
    _audit(
        db,
        actor,
        "Replace team member",
        request,
        event.id,
        {"registration_id": updated.id, "old_profile_id": profile_id, "new_profile_id": new_profile.id},
    )
    return updated


@router.delete("/manage/events/{event_id}/teams/{registration_id}")
def remove_team(
    event_id: int,
    registration_id: int,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registration = get_registration_or_404(db, event_id, registration_id)
    ensure_leader_row(db, event, registration)
    removed = delete_team(db, event, registration)
    _audit(db, actor, "Delete team", request, event.id, {"registration_id": registration_id, "rows_removed": removed})
    return {"message": "Team deleted", "rows_removed": removed}


@router.delete("/manage/events/{event_id}/registrations/{registration_id}")
def remove_registration(
    event_id: int,
    registration_id: int,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    registration = get_registration_or_404(db, event_id, registration_id)
    removed = delete_registration(db, event, registration)
    _audit(db, actor, "Delete registration", request, event.id, {"registration_id": registration_id, "rows_removed": removed})
    return {"message": "Registration deleted", "rows_removed": removed}


@router.get("/manage/events/{event_id}/export")
def export_participants(
    event_id: int,
    request: Request,
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    content, media_type, filename = export_confirmed_registrations(db, event, format)
    _audit(db, actor, "Export participants", request, event.id, {"format": format})
    return StreamingResponse(io.BytesIO(content), media_type=media_type, headers={"Content-Disposition": f"attachment; filename={filename}"})


@router.post("/manage/events/{event_id}/go-live", response_model=EventResponse)
def start_live(
    event_id: int,
    request: Request,
    payload: Optional[GoLiveRequest] = None,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    force = bool(payload.force) if payload else False
    event = go_live(db, event, force=force)
    _audit(db, actor, "Go live", request, event.id, {"force": force})
    return build_event_response(db, event)


@router.post("/manage/events/{event_id}/end-live", response_model=EventResponse)
def stop_live(
    event_id: int,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    event = end_live(db, event)
    _audit(db, actor, "End live", request, event.id)
    return build_event_response(db, event)


@router.post("/manage/events/{event_id}/results", response_model=EventResponse)
def publish_results(
    event_id: int,
    payload: ResultAnnouncement,
    request: Request,
    actor: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    event = announce_results(
        db,
        event,
        actor,
        payload.first_place,
        payload.second_place,
        payload.third_place,
    )
    _audit(db, actor, "Announce results", request, event.id, payload.model_dump())
    return build_event_response(db, event)


@router.get("/manage/events/{event_id}/results", response_model=List[EventResultResponse])
def read_results(
    event_id: int,
    _: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    get_event_or_404(db, event_id)
    return list_results(db, event_id)


@router.get("/manage/events/{event_id}/summary")
def event_summary(
    event_id: int,
    _: Profile = Depends(require_event_manager),
    db: Session = Depends(get_db)
):
    event = get_event_or_404(db, event_id)
    rows = list_participants(db, event.id)
    counts = {item.value: 0 for item in RegistrationStatus}
    for registration, _profile in rows:
        counts[registration.status.value] += 1
    return {"event_id": event.id, "total": len(rows), "by_status": counts}


@router.get("/manage/my-events", response_model=List[EventResponse])
def my_managed_events(
    actor: Profile = Depends(require_staff),
    db: Session = Depends(get_db)
):
    query = db.query(Event)
    if actor.role != ProfileRole.ADMIN:
        query = query.join(EventAssignment, EventAssignment.event_id == Event.id).filter(EventAssignment.coordinator_id == actor.id)
    events = query.order_by(Event.day_order.asc(), Event.name.asc()).all()
    fest_start = get_fest_start_date(db)
    return [build_event_response(db, event, fest_start) for event in events]
