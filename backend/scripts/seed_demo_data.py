#!/usr/bin/env python3
import os
from datetime import time

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from auth import get_password_hash
from database import Base
from models import (
    Event,
    EventAssignment,
    EventCategory,
    EventSubcategory,
    Gender,
    PaymentMode,
    Profile,
    ProfileRole,
    SystemConfig,
)

DEMO_PASSWORD = 'password123'


def load_db_url() -> str:
    load_dotenv('backend/.env')
    db_url = os.environ.get('DATABASE_URL')
    if not db_url:
        raise RuntimeError('DATABASE_URL missing in backend/.env')
    return db_url


def make_session():
    engine = create_engine(load_db_url(), pool_pre_ping=True)
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def ensure_profile(db, email: str, roll_number: str, name: str, role: ProfileRole, gender: Gender) -> Profile:
    row = db.query(Profile).filter(Profile.college_email == email).first()
    if row:
        if not row.hashed_password:
            row.hashed_password = get_password_hash(DEMO_PASSWORD)
        row.role = role
        db.flush()
        return row

    row = Profile(
        full_name=name,
        college_email=email,
        roll_number=roll_number,
        department='Computer Science',
        year_of_study='3',
        school='School of Engineering',
        gender=gender,
        phone='9876543210',
        role=role,
        hashed_password=get_password_hash(DEMO_PASSWORD),
        is_admin_created=role != ProfileRole.STUDENT,
    )
    db.add(row)
    db.flush()
    return row


def ensure_event(db, **values) -> Event:
    row = db.query(Event).filter(Event.name == values['name']).first()
    if row:
        for key, value in values.items():
            setattr(row, key, value)
        db.flush()
        return row
    row = Event(**values)
    db.add(row)
    db.flush()
    return row


def main():
    db = make_session()
    try:
        admin = ensure_profile(db, 'admin@bonhomie.com', 'ADMIN0001', 'Admin User', ProfileRole.ADMIN, Gender.MALE)
        coordinator = ensure_profile(
            db, 'coordinator@bonhomie.com', 'COORD0001', 'Faculty Coordinator', ProfileRole.COORDINATOR, Gender.FEMALE
        )
        ensure_profile(db, 'student@bonhomie.com', '21CS0001', 'Student User', ProfileRole.STUDENT, Gender.MALE)

        events = [
            ensure_event(
                db,
                name='Battle of Bands',
                description='Rock out with your band!',
                category=EventCategory.CULTURAL,
                subcategory=EventSubcategory.GROUP,
                day='Day 1',
                day_order=1,
                start_time=time(18, 0),
                venue='Main Auditorium',
                fee=500,
                min_team_size=3,
                max_team_size=6,
                payment_mode=PaymentMode.CASH,
                created_by=admin.id,
            ),
            ensure_event(
                db,
                name='Hackathon',
                description='24-hour coding challenge.',
                category=EventCategory.TECHNICAL,
                subcategory=EventSubcategory.GROUP,
                day='Day 2',
                day_order=2,
                start_time=time(10, 0),
                venue='Lab Complex',
                fee=250,
                min_team_size=2,
                max_team_size=4,
                payment_mode=PaymentMode.HYBRID,
                upi_id='bonhomie@upi',
                qr_code_path='event_qr_codes/demo/hackathon.png',
                created_by=admin.id,
            ),
            ensure_event(
                db,
                name='Singing Solo',
                description='Showcase your vocal talents.',
                category=EventCategory.CULTURAL,
                subcategory=EventSubcategory.INDIVIDUAL,
                day='Day 3',
                day_order=3,
                start_time=time(14, 0),
                venue='Open Air Theatre',
                fee=100,
                min_team_size=1,
                max_team_size=1,
                payment_mode=PaymentMode.CASH,
                created_by=admin.id,
            ),
        ]

        for event in events:
            exists = db.query(EventAssignment).filter(
                EventAssignment.event_id == event.id,
                EventAssignment.coordinator_id == coordinator.id,
            ).first()
            if not exists:
                db.add(EventAssignment(event_id=event.id, coordinator_id=coordinator.id))

        if not db.query(SystemConfig).filter(SystemConfig.key == 'registration_open').first():
            db.add(SystemConfig(key='registration_open', value='true'))

        db.commit()
        print(f'Seeded {len(events)} events; demo password for all accounts: {DEMO_PASSWORD}')
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    main()
