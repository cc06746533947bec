from typing import Dict, Optional

from sqlalchemy.orm import Session

from live_state import get_fest_start_date
from models import Certificate, Event, Profile, Registration
from registration_service import is_leader, team_size
from schemas import (
    CertificateResponse,
    EventResponse,
    MyRegistrationResponse,
    ParticipantResponse,
    PaymentListItem,
    PendingPaymentResponse,
    ProfileSummary,
)
from time_utils import day_label, resolve_event_date
from utils import public_url_for_path


def build_event_response(db: Session, event: Event, fest_start=None) -> EventResponse:
    start = fest_start if fest_start is not None else get_fest_start_date(db)
    payload = EventResponse.model_validate(event)
    payload.image_url = public_url_for_path(event.image_path)
    payload.qr_code_url = public_url_for_path(event.qr_code_path)
    payload.scheduled_date = resolve_event_date(event.event_date, event.day_order, start)
    payload.day_label = event.day or day_label(event.day_order, start)
    return payload


def _registration_fields(registration: Registration) -> Dict[str, object]:
    return {
        "id": registration.id,
        "profile_id": registration.profile_id,
        "event_id": registration.event_id,
        "status": registration.status,
        "payment_mode": registration.payment_mode,
        "team_members": registration.team_members or [],
        "transaction_id": registration.transaction_id,
        "payment_screenshot_path": registration.payment_screenshot_path,
        "registered_at": registration.registered_at,
    }


def build_participant_response(registration: Registration, profile: Optional[Profile]) -> ParticipantResponse:
    return ParticipantResponse(
        **_registration_fields(registration),
        user=ProfileSummary.model_validate(profile) if profile else None,
        is_leader=is_leader(registration),
        team_size=team_size(registration),
        payment_screenshot_url=public_url_for_path(registration.payment_screenshot_path),
    )


def build_pending_response(registration: Registration, profile: Optional[Profile]) -> PendingPaymentResponse:
    return PendingPaymentResponse(
        **_registration_fields(registration),
        user=ProfileSummary.model_validate(profile) if profile else None,
        payment_screenshot_url=public_url_for_path(registration.payment_screenshot_path),
    )


def build_payment_item(registration: Registration, profile: Optional[Profile], event: Event) -> PaymentListItem:
    return PaymentListItem(
        **_registration_fields(registration),
        user=ProfileSummary.model_validate(profile) if profile else None,
        payment_screenshot_url=public_url_for_path(registration.payment_screenshot_path),
        event_name=event.name,
    )


def build_my_registration_response(
    db: Session,
    registration: Registration,
    event: Event,
    role_in_team: str,
) -> MyRegistrationResponse:
    return MyRegistrationResponse(
        **_registration_fields(registration),
        event=build_event_response(db, event),
        role_in_team=role_in_team,
    )


def build_certificate_response(certificate: Certificate, profile: Optional[Profile], event: Optional[Event]) -> CertificateResponse:
    payload = CertificateResponse.model_validate(certificate)
    payload.user = ProfileSummary.model_validate(profile) if profile else None
    payload.event_name = event.name if event else None
    return payload
