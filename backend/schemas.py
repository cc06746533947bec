from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, date, time
import re


class GenderEnum(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class ProfileRoleEnum(str, Enum):
    STUDENT = "student"
    COORDINATOR = "coordinator"
    ADMIN = "admin"


class EventCategoryEnum(str, Enum):
    CULTURAL = "Cultural"
    TECHNICAL = "Technical"
    SPORTS = "Sports"


class EventSubcategoryEnum(str, Enum):
    INDIVIDUAL = "Individual"
    GROUP = "Group"


class PaymentModeEnum(str, Enum):
    CASH = "cash"
    HYBRID = "hybrid"
    ONLINE = "online"


class EventStatusEnum(str, Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    COMPLETED = "completed"


class RegistrationStatusEnum(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class NotificationTypeEnum(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationScopeEnum(str, Enum):
    BROADCAST = "broadcast"
    INDIVIDUAL = "individual"


PHONE_RE = re.compile(r"^\d{10}$")


def _normalize_phone(value: Optional[str]) -> Optional[str]:
    raw = str(value or "").strip().replace(" ", "")
    if not raw:
        return None
    if raw.startswith("+91"):
        raw = raw[3:]
    if not PHONE_RE.match(raw):
        raise ValueError("Phone number must be 10 digits")
    return raw


def _normalize_roll_number(value: str) -> str:
    normalized = str(value or "").strip().upper()
    if not normalized:
        raise ValueError("Roll number is required")
    return normalized


# Auth Schemas
class ProfileSignup(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    college_email: EmailStr
    roll_number: str = Field(..., min_length=1, max_length=30)
    password: str = Field(..., min_length=6)
    phone: str
    gender: GenderEnum
    department: Optional[str] = None
    year_of_study: Optional[str] = None
    school: Optional[str] = None

    @field_validator('roll_number')
    @classmethod
    def validate_roll_number(cls, v):
        return _normalize_roll_number(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        normalized = _normalize_phone(v)
        if not normalized:
            raise ValueError('Valid phone number is required')
        return normalized


class ProfileLogin(BaseModel):
    college_email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class PasswordChangeRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    phone: Optional[str] = None
    department: Optional[str] = None
    year_of_study: Optional[str] = None
    school: Optional[str] = None
    avatar_url: Optional[str] = None

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _normalize_phone(v)


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    college_email: str
    roll_number: str
    department: Optional[str] = None
    year_of_study: Optional[str] = None
    school: Optional[str] = None
    gender: Optional[GenderEnum] = None
    phone: Optional[str] = None
    role: ProfileRoleEnum
    is_admin_created: bool = False
    avatar_url: Optional[str] = None
    first_place_wins: int = 0
    second_place_wins: int = 0
    third_place_wins: int = 0
    total_wins: int = 0
    created_at: Optional[datetime] = None


class ProfileSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    roll_number: str
    college_email: Optional[str] = None
    department: Optional[str] = None
    year_of_study: Optional[str] = None
    gender: Optional[GenderEnum] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    profile: ProfileResponse


class OfflineProfileCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    roll_number: str = Field(..., min_length=1, max_length=30)
    gender: GenderEnum
    phone: Optional[str] = None
    department: Optional[str] = None
    year_of_study: Optional[str] = None
    school: Optional[str] = None

    @field_validator('roll_number')
    @classmethod
    def validate_roll_number(cls, v):
        return _normalize_roll_number(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _normalize_phone(v)


class CoordinatorCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    college_email: EmailStr
    roll_number: str = Field(..., min_length=1, max_length=30)
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    department: Optional[str] = None
    gender: Optional[GenderEnum] = None
    event_ids: List[int] = Field(default_factory=list)

    @field_validator('roll_number')
    @classmethod
    def validate_roll_number(cls, v):
        return _normalize_roll_number(v)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _normalize_phone(v)


# Event Schemas
class EventBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    category: EventCategoryEnum
    subcategory: EventSubcategoryEnum = EventSubcategoryEnum.INDIVIDUAL
    day: Optional[str] = None
    day_order: Optional[int] = Field(None, ge=1, le=30)
    event_date: Optional[date] = None
    start_time: Optional[time] = None
    venue: Optional[str] = None
    fee: int = Field(0, ge=0)
    min_team_size: int = Field(1, ge=1, le=100)
    max_team_size: int = Field(1, ge=1, le=100)
    allowed_genders: List[GenderEnum] = Field(default_factory=list)
    payment_mode: PaymentModeEnum = PaymentModeEnum.HYBRID
    upi_id: Optional[str] = None
    qr_code_path: Optional[str] = None
    image_path: Optional[str] = None
    description: Optional[str] = None
    rules: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        stripped = v.strip()
        if not stripped:
            raise ValueError('Please enter an event name')
        return stripped


class EventCreate(EventBase):
    pass


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    category: Optional[EventCategoryEnum] = None
    subcategory: Optional[EventSubcategoryEnum] = None
    day: Optional[str] = None
    day_order: Optional[int] = Field(None, ge=1, le=30)
    event_date: Optional[date] = None
    start_time: Optional[time] = None
    venue: Optional[str] = None
    fee: Optional[int] = Field(None, ge=0)
    min_team_size: Optional[int] = Field(None, ge=1, le=100)
    max_team_size: Optional[int] = Field(None, ge=1, le=100)
    allowed_genders: Optional[List[GenderEnum]] = None
    payment_mode: Optional[PaymentModeEnum] = None
    upi_id: Optional[str] = None
    qr_code_path: Optional[str] = None
    image_path: Optional[str] = None
    description: Optional[str] = None
    rules: Optional[str] = None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    category: EventCategoryEnum
    subcategory: EventSubcategoryEnum
    day: Optional[str] = None
    day_order: Optional[int] = None
    event_date: Optional[date] = None
    start_time: Optional[time] = None
    venue: Optional[str] = None
    fee: int = 0
    min_team_size: int = 1
    max_team_size: int = 1
    allowed_genders: List[GenderEnum] = Field(default_factory=list)
    payment_mode: PaymentModeEnum
    upi_id: Optional[str] = None
    qr_code_path: Optional[str] = None
    image_path: Optional[str] = None
    description: Optional[str] = None
    rules: Optional[str] = None
    is_live: bool = False
    event_status: EventStatusEnum
    live_started_at: Optional[datetime] = None
    live_ended_at: Optional[datetime] = None
    winner_profile_id: Optional[int] = None
    runnerup_profile_id: Optional[int] = None
    second_runnerup_profile_id: Optional[int] = None
    results_announced: bool = False
    results_announced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    image_url: Optional[str] = None
    qr_code_url: Optional[str] = None
    scheduled_date: Optional[date] = None
    day_label: Optional[str] = None

    @field_validator('allowed_genders', mode='before')
    @classmethod
    def default_allowed_genders(cls, v):
        return v or []


class GoLiveRequest(BaseModel):
    force: bool = False


class FestSettingsUpdate(BaseModel):
    fest_start_date: Optional[date] = None
    registration_open: Optional[bool] = None


class CoordinatorAssignmentRequest(BaseModel):
    coordinator_id: int = Field(..., ge=1)


# Registration Schemas
class TeamMemberSnapshot(BaseModel):
    id: int
    full_name: str
    roll_number: str
    college_email: Optional[str] = None
    department: Optional[str] = None
    year_of_study: Optional[str] = None
    school: Optional[str] = None
    gender: Optional[str] = None
    phone: Optional[str] = None


class RegistrationCreate(BaseModel):
    member_profile_ids: List[int] = Field(default_factory=list)
    payment_mode: PaymentModeEnum = PaymentModeEnum.HYBRID
    transaction_id: Optional[str] = None
    payment_screenshot_path: Optional[str] = None

    @field_validator('transaction_id', 'payment_screenshot_path')
    @classmethod
    def strip_optional(cls, v):
        stripped = str(v or "").strip()
        return stripped or None

    @model_validator(mode='after')
    def validate_unique_members(self):
        if len(set(self.member_profile_ids)) != len(self.member_profile_ids):
            raise ValueError('Team members must be distinct')
        return self


class OfflineRegistrationCreate(BaseModel):
    leader_profile_id: int = Field(..., ge=1)
    member_profile_ids: List[int] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_unique_members(self):
        ids = [self.leader_profile_id] + list(self.member_profile_ids)
        if len(set(ids)) != len(ids):
            raise ValueError('Leader and team members must be distinct')
        return self


class PaymentProofUpdate(BaseModel):
    transaction_id: Optional[str] = None
    payment_screenshot_path: Optional[str] = None


class TeamMemberAddRequest(BaseModel):
    profile_id: int = Field(..., ge=1)


class TeamMemberReplaceRequest(BaseModel):
    new_profile_id: int = Field(..., ge=1)


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_id: int
    event_id: int
    status: RegistrationStatusEnum
    payment_mode: PaymentModeEnum
    team_members: List[TeamMemberSnapshot] = Field(default_factory=list)
    transaction_id: Optional[str] = None
    payment_screenshot_path: Optional[str] = None
    registered_at: Optional[datetime] = None

    @field_validator('team_members', mode='before')
    @classmethod
    def default_team_members(cls, v):
        return v or []


class ParticipantResponse(RegistrationResponse):
    user: Optional[ProfileSummary] = None
    is_leader: bool = False
    team_size: int = 1
    payment_screenshot_url: Optional[str] = None


class PendingPaymentResponse(RegistrationResponse):
    user: Optional[ProfileSummary] = None
    payment_screenshot_url: Optional[str] = None


class PaymentListItem(PendingPaymentResponse):
    event_name: Optional[str] = None


class MyRegistrationResponse(RegistrationResponse):
    event: Optional[EventResponse] = None
    role_in_team: str = "individual"  # individual | leader | member


class VerifyPaymentResponse(BaseModel):
    registration_id: int
    status: RegistrationStatusEnum
    members_confirmed: int = 0
    message: str


class MemberRemovalResponse(BaseModel):
    message: str
    team_deleted: bool = False
    team_size: int = 0


# Results Schemas
class ResultAnnouncement(BaseModel):
    first_place: Optional[int] = None
    second_place: Optional[int] = None
    third_place: Optional[int] = None


class EventResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_id: int
    registration_id: Optional[int] = None
    position: int
    team_members: List[TeamMemberSnapshot] = Field(default_factory=list)
    announced_by: Optional[int] = None
    announced_at: Optional[datetime] = None


class WinnerEntry(BaseModel):
    event_id: int
    event_name: str
    category: EventCategoryEnum
    subcategory: EventSubcategoryEnum
    image_path: Optional[str] = None
    max_team_size: int = 1
    winner: Optional[ProfileSummary] = None
    runnerup: Optional[ProfileSummary] = None
    second_runnerup: Optional[ProfileSummary] = None
    results_announced_at: Optional[datetime] = None
    event_results: List[EventResultResponse] = Field(default_factory=list)


# Notification & Certificate Schemas
class NotificationCreate(BaseModel):
    scope: NotificationScopeEnum = NotificationScopeEnum.BROADCAST
    recipient_email: Optional[str] = None
    message: str = Field(..., min_length=1, max_length=2000)
    type: NotificationTypeEnum = NotificationTypeEnum.INFO

    @field_validator('message')
    @classmethod
    def strip_message(cls, v):
        stripped = str(v or "").strip()
        if not stripped:
            raise ValueError('Message is required')
        return stripped

    @model_validator(mode='after')
    def validate_recipient(self):
        if self.scope == NotificationScopeEnum.INDIVIDUAL and not str(self.recipient_email or "").strip():
            raise ValueError('Recipient email is required for individual notifications')
        return self


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_id: int
    message: str
    type: NotificationTypeEnum
    read_status: bool = False
    created_at: Optional[datetime] = None


class NotificationSendResponse(BaseModel):
    recipients: int


class CertificateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_id: int
    event_id: int
    unique_hash: str
    certificate_url: Optional[str] = None
    created_at: Optional[datetime] = None
    user: Optional[ProfileSummary] = None
    event_name: Optional[str] = None


class CertificateIssueResponse(BaseModel):
    issued: int


# Misc Schemas
class PresignRequest(BaseModel):
    filename: str
    content_type: str


class PresignResponse(BaseModel):
    upload_url: str
    public_url: str
    key: str
    content_type: str


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    actor_id: Optional[int] = None
    actor_name: str
    actor_email: Optional[str] = None
    action: str
    method: Optional[str] = None
    path: Optional[str] = None
    event_id: Optional[int] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class DashboardStats(BaseModel):
    total_events: int = 0
    live_events: int = 0
    completed_events: int = 0
    total_profiles: int = 0
    offline_profiles: int = 0
    registrations_by_status: Dict[str, int] = Field(default_factory=dict)
    registrations_by_category: Dict[str, int] = Field(default_factory=dict)
