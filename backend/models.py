from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, Time, Enum as SQLEnum, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class Gender(str, enum.Enum):
    MALE = "Male"
    FEMALE = "Female"


class ProfileRole(str, enum.Enum):
    STUDENT = "student"
    COORDINATOR = "coordinator"
    ADMIN = "admin"


class EventCategory(str, enum.Enum):
    CULTURAL = "Cultural"
    TECHNICAL = "Technical"
    SPORTS = "Sports"


class EventSubcategory(str, enum.Enum):
    INDIVIDUAL = "Individual"
    GROUP = "Group"


class PaymentMode(str, enum.Enum):
    CASH = "cash"
    HYBRID = "hybrid"
    ONLINE = "online"


class EventStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    COMPLETED = "completed"


class RegistrationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class NotificationType(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


def _enum_values(enum_cls):
    return [item.value for item in enum_cls]


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    college_email = Column(String(255), unique=True, index=True, nullable=False)
    roll_number = Column(String(30), unique=True, index=True, nullable=False)
    department = Column(String(150), nullable=True)
    year_of_study = Column(String(30), nullable=True)
    school = Column(String(150), nullable=True)
    gender = Column(SQLEnum(Gender, values_callable=_enum_values), nullable=True)
    phone = Column(String(20), nullable=True)
    role = Column(SQLEnum(ProfileRole, values_callable=_enum_values), default=ProfileRole.STUDENT, nullable=False)
    # Offline profiles carry no login credential.
    hashed_password = Column(String(255), nullable=True)
    is_admin_created = Column(Boolean, default=False, nullable=False)
    avatar_url = Column(String(500), nullable=True)
    first_place_wins = Column(Integer, default=0, nullable=False)
    second_place_wins = Column(Integer, default=0, nullable=False)
    third_place_wins = Column(Integer, default=0, nullable=False)
    total_wins = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    registrations = relationship("Registration", back_populates="profile")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    category = Column(SQLEnum(EventCategory, values_callable=_enum_values), nullable=False)
    subcategory = Column(SQLEnum(EventSubcategory, values_callable=_enum_values), default=EventSubcategory.INDIVIDUAL, nullable=False)
    day = Column(String(30), nullable=True)  # "Day 1"
    day_order = Column(Integer, nullable=True)
    event_date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)
    venue = Column(String(255), nullable=True)
    fee = Column(Integer, default=0, nullable=False)
    min_team_size = Column(Integer, default=1, nullable=False)
    max_team_size = Column(Integer, default=1, nullable=False)
    allowed_genders = Column(JSON, nullable=True)  # ["Male", "Female"]; empty means open to all
    payment_mode = Column(SQLEnum(PaymentMode, values_callable=_enum_values), default=PaymentMode.HYBRID, nullable=False)
    upi_id = Column(String(120), nullable=True)
    qr_code_path = Column(String(500), nullable=True)
    image_path = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    rules = Column(Text, nullable=True)
    is_live = Column(Boolean, default=False, nullable=False)
    event_status = Column(SQLEnum(EventStatus, values_callable=_enum_values), default=EventStatus.UPCOMING, nullable=False)
    live_started_at = Column(DateTime(timezone=True), nullable=True)
    live_ended_at = Column(DateTime(timezone=True), nullable=True)
    winner_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    runnerup_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    second_runnerup_profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    results_announced = Column(Boolean, default=False, nullable=False)
    results_announced_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    registrations = relationship("Registration", back_populates="event")
    winner = relationship("Profile", foreign_keys=[winner_profile_id])
    runnerup = relationship("Profile", foreign_keys=[runnerup_profile_id])
    second_runnerup = relationship("Profile", foreign_keys=[second_runnerup_profile_id])


class Registration(Base):
    __tablename__ = "registrations"
    __table_args__ = (
        UniqueConstraint("profile_id", "event_id", name="uq_registrations_profile_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    status = Column(SQLEnum(RegistrationStatus, values_callable=_enum_values), default=RegistrationStatus.PENDING, nullable=False)
    payment_mode = Column(SQLEnum(PaymentMode, values_callable=_enum_values), default=PaymentMode.HYBRID, nullable=False)
    # Non-empty only on the team leader's row.
    team_members = Column(JSON, nullable=False, default=list)
    transaction_id = Column(String(120), nullable=True)
    payment_screenshot_path = Column(String(500), nullable=True)
    registered_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    profile = relationship("Profile", back_populates="registrations")
    event = relationship("Event", back_populates="registrations")


class EventResult(Base):
    __tablename__ = "event_results"
    __table_args__ = (
        UniqueConstraint("event_id", "position", name="uq_event_results_event_position"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    registration_id = Column(Integer, ForeignKey("registrations.id"), nullable=True)
    position = Column(Integer, nullable=False)  # 1, 2, 3
    team_members = Column(JSON, nullable=False, default=list)
    announced_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    announced_at = Column(DateTime(timezone=True), server_default=func.now())


class EventAssignment(Base):
    __tablename__ = "event_assignments"
    __table_args__ = (
        UniqueConstraint("event_id", "coordinator_id", name="uq_event_assignments_event_coordinator"),
    )

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    coordinator_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())

    coordinator = relationship("Profile")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    type = Column(SQLEnum(NotificationType, values_callable=_enum_values), default=NotificationType.INFO, nullable=False)
    read_status = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Certificate(Base):
    __tablename__ = "certificates"
    __table_args__ = (
        UniqueConstraint("profile_id", "event_id", name="uq_certificates_profile_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    unique_hash = Column(String(64), unique=True, index=True, nullable=False)
    certificate_url = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    profile = relationship("Profile")
    event = relationship("Event")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, nullable=True)
    actor_name = Column(String(255), nullable=False)
    actor_email = Column(String(255), nullable=True)
    action = Column(String(255), nullable=False)
    method = Column(String(10), nullable=True)
    path = Column(String(255), nullable=True)
    event_id = Column(Integer, nullable=True, index=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SystemConfig(Base):
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(String(500), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
