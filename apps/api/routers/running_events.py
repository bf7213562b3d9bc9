"""
Running Events API Router

Calendar CRUD. The coach reads and creates the same rows through its tools.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import ValidationError
from schemas import RunningEventCreate, RunningEventResponse, RunningEventUpdate
from services import running_events

router = APIRouter(prefix="/api/running-events", tags=["Running Events"])


@router.get("", response_model=List[RunningEventResponse])
def list_running_events(
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
):
    """All events, or one month when `year` and `month` are both given."""
    return running_events.list_events(db, year=year, month=month)


@router.post("", response_model=RunningEventResponse)
def create_running_event(body: RunningEventCreate, db: Session = Depends(get_db)):
    return running_events.create_event_from_form(db, body)


@router.put("", response_model=RunningEventResponse)
def update_running_event(body: RunningEventUpdate, db: Session = Depends(get_db)):
    return running_events.update_event(db, body)


@router.delete("")
def delete_running_event(
    id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
):
    if id is None:
        raise ValidationError("ID requerido", field="id")
    running_events.delete_event(db, id)
    return {"success": True}
