"""
Running Events Store

Calendar rows used by the coach tools and the calendar endpoints.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from models import RunningEvent
from schemas import RunningEventCreate, RunningEventUpdate

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "running"
CATEGORIES = ("running", "personal")


def normalize_category(category: Optional[str]) -> str:
    """Unknown or missing categories fall back to 'running'."""
    if category in CATEGORIES:
        return category
    if category:
        logger.info(f"Unknown event category {category!r}; storing as {DEFAULT_CATEGORY!r}")
    return DEFAULT_CATEGORY


def query_events(db: Session, start: date, end: date, limit: int) -> List[RunningEvent]:
    """Events with start <= date <= end, ascending by date, at most `limit` rows."""
    return (
        db.query(RunningEvent)
        .filter(RunningEvent.date >= start, RunningEvent.date <= end)
        .order_by(RunningEvent.date.asc(), RunningEvent.created_at.asc())
        .limit(limit)
        .all()
    )


def list_events(db: Session, year: Optional[int] = None, month: Optional[int] = None) -> List[RunningEvent]:
    """Whole calendar, or a single month when both year and month are given."""
    query = db.query(RunningEvent)
    if year and month:
        last_day = calendar.monthrange(year, month)[1]
        query = query.filter(
            RunningEvent.date >= date(year, month, 1),
            RunningEvent.date <= date(year, month, last_day),
        )
    return query.order_by(RunningEvent.date.asc(), RunningEvent.created_at.asc()).all()


def create_event(db: Session, fields: Dict[str, Any]) -> RunningEvent:
    """
    Insert an event. `date` and `type` must be present; a `category` other
    than running/personal falls back to 'running', and new events start with
    completed = 0 unless the caller says otherwise.
    """
    event = RunningEvent(
        date=fields["date"],
        type=fields["type"],
        category=normalize_category(fields.get("category")),
        title=fields.get("title") or None,
        time=fields.get("time") or None,
        distance=fields.get("distance") or None,
        duration=fields.get("duration") or None,
        pace=fields.get("pace") or None,
        notes=fields.get("notes") or None,
        heart_rate=fields.get("heart_rate") or None,
        feeling=fields.get("feeling") or None,
        completed=fields.get("completed") or 0,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info(f"Created running event {event.id} on {event.date} ({event.category}/{event.type})")
    return event


def create_event_from_form(db: Session, body: RunningEventCreate) -> RunningEvent:
    return create_event(db, body.model_dump())


def get_event(db: Session, event_id: UUID) -> RunningEvent:
    event = db.query(RunningEvent).filter(RunningEvent.id == event_id).first()
    if event is None:
        raise NotFoundError("Running event", str(event_id))
    return event


def update_event(db: Session, body: RunningEventUpdate) -> RunningEvent:
    """Full replacement of the editable fields. `completed` is kept when omitted."""
    event = get_event(db, body.id)

    event.date = body.date
    event.type = body.type
    event.category = normalize_category(body.category)
    event.title = body.title or None
    event.time = body.time or None
    event.distance = body.distance or None
    event.duration = body.duration or None
    event.pace = body.pace or None
    event.notes = body.notes or None
    event.heart_rate = body.heart_rate or None
    event.feeling = body.feeling or None
    if body.completed is not None:
        event.completed = body.completed
    event.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(event)
    return event


def delete_event(db: Session, event_id: UUID) -> None:
    event = get_event(db, event_id)
    db.delete(event)
    db.commit()
    logger.info(f"Deleted running event {event_id}")


def event_to_dict(event: RunningEvent) -> Dict[str, Any]:
    """Wire shape used in tool results (camelCase, ISO date)."""
    return {
        "id": str(event.id),
        "date": event.date.isoformat(),
        "category": event.category,
        "type": event.type,
        "title": event.title,
        "time": event.time,
        "distance": event.distance,
        "duration": event.duration,
        "pace": event.pace,
        "notes": event.notes,
        "heartRate": event.heart_rate,
        "feeling": event.feeling,
        "completed": event.completed,
    }
