from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from database import get_db
from live_state import get_fest_start_date, is_registration_open, list_live_events
from models import Event, EventCategory, EventSubcategory
from registration_service import get_event_or_404
from results_service import list_results, list_winners
from schemas import (
    EventCategoryEnum,
    EventResponse,
    EventResultResponse,
    EventSubcategoryEnum,
    WinnerEntry,
)
from routers.shared import build_event_response

router = APIRouter()


@router.get("/")
def root():
    return {"message": "Bonhomie API is running"}


@router.get("/health")
def health_check():
    return {"status": "healthy"}


@router.get("/registration-status")
def get_registration_status(db: Session = Depends(get_db)):
    fest_start = get_fest_start_date(db)
    return {
        "registration_open": is_registration_open(db),
        "fest_start_date": fest_start.isoformat() if fest_start else None,
    }


@router.get("/events", response_model=List[EventResponse])
def list_events(
    category: Optional[EventCategoryEnum] = None,
    subcategory: Optional[EventSubcategoryEnum] = None,
    day_order: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    query = db.query(Event)
    if category:
        query = query.filter(Event.category == EventCategory(category.value))
    if subcategory:
        query = query.filter(Event.subcategory == EventSubcategory(subcategory.value))
    if day_order:
        query = query.filter(Event.day_order == day_order)
    if search:
        query = query.filter(Event.name.ilike(f"%{search.strip()}%"))
    events = query.order_by(Event.day_order.asc(), Event.start_time.asc(), Event.name.asc()).all()
    fest_start = get_fest_start_date(db)
    return [build_event_response(db, event, fest_start) for event in events]


@router.get("/events/live", response_model=List[EventResponse])
def get_live_events(db: Session = Depends(get_db)):
    fest_start = get_fest_start_date(db)
    return [build_event_response(db, event, fest_start) for event in list_live_events(db)]


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: int, db: Session = Depends(get_db)):
    return build_event_response(db, get_event_or_404(db, event_id))


@router.get("/events/{event_id}/results", response_model=List[EventResultResponse])
def get_event_results(event_id: int, db: Session = Depends(get_db)):
    event = get_event_or_404(db, event_id)
    if not event.results_announced:
        return []
    return list_results(db, event.id)


@router.get("/winners", response_model=List[WinnerEntry])
def get_winners(
    department: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db)
):
    return list_winners(db, department=department, limit=limit)
