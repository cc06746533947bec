from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from auth import get_password_hash
from database import Base, engine, get_db
from live_state import FEST_START_KEY, REGISTRATION_OPEN_KEY
from models import Profile, ProfileRole, SystemConfig
from time_utils import parse_iso_date

logger = logging.getLogger(__name__)

MIGRATION_MARKER_KEY = "migration:backend_bootstrap:v1"


def has_bootstrap_marker() -> bool:
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        return marker is not None
    finally:
        db.close()


def set_bootstrap_marker() -> None:
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        value = datetime.now(timezone.utc).isoformat()
        if marker:
            marker.value = value
        else:
            db.add(SystemConfig(key=MIGRATION_MARKER_KEY, value=value))
        db.commit()
    finally:
        db.close()


def clear_bootstrap_marker() -> bool:
    db = next(get_db())
    try:
        marker = db.query(SystemConfig).filter(SystemConfig.key == MIGRATION_MARKER_KEY).first()
        if not marker:
            return False
        db.delete(marker)
        db.commit()
        return True
    finally:
        db.close()


def ensure_system_config(db: Session) -> None:
    if not db.query(SystemConfig).filter(SystemConfig.key == REGISTRATION_OPEN_KEY).first():
        db.add(SystemConfig(key=REGISTRATION_OPEN_KEY, value="true"))
    fest_start = parse_iso_date(os.environ.get("FEST_START_DATE"))
    if fest_start and not db.query(SystemConfig).filter(SystemConfig.key == FEST_START_KEY).first():
        db.add(SystemConfig(key=FEST_START_KEY, value=fest_start.isoformat()))
    db.commit()


def ensure_default_admin(db: Session) -> None:
    email = str(os.environ.get("DEFAULT_ADMIN_EMAIL") or "").strip().lower()
    password = os.environ.get("DEFAULT_ADMIN_PASSWORD")
    if db.query(Profile.id).filter(Profile.role == ProfileRole.ADMIN).first():
        return
    if not email or not password:
        logger.warning("No admin profile exists and DEFAULT_ADMIN_EMAIL/DEFAULT_ADMIN_PASSWORD are not set")
        return
    db.add(
        Profile(
            full_name="Admin",
            college_email=email,
            roll_number="ADMIN0000",
            hashed_password=get_password_hash(password),
            role=ProfileRole.ADMIN,
            is_admin_created=True,
        )
    )
    db.commit()
    logger.info(f"Default admin created: {email}")


def ensure_runtime_defaults() -> None:
    db = next(get_db())
    try:
        ensure_system_config(db)
        ensure_default_admin(db)
    finally:
        db.close()


def run_bootstrap_migrations() -> None:
    Base.metadata.create_all(bind=engine)
    ensure_runtime_defaults()
