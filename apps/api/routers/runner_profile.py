"""
Runner Profile API Router

The single runner profile edited from the settings form. The coach writes
to the same row through the save_runner_profile tool.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.database import get_db
from schemas import CoachNotesAppend, RunnerProfileResponse, RunnerProfileUpdate
from services.runner_profile import (
    append_coach_notes,
    get_or_create_runner_profile,
    update_runner_profile,
)

router = APIRouter(prefix="/api/runner-profile", tags=["Runner Profile"])


@router.get("", response_model=RunnerProfileResponse)
def get_profile(db: Session = Depends(get_db)):
    """Get the profile, creating an empty one on first access."""
    return get_or_create_runner_profile(db)


@router.put("", response_model=RunnerProfileResponse)
def put_profile(body: RunnerProfileUpdate, db: Session = Depends(get_db)):
    """Save the form. Fields left out of the body keep their stored value."""
    return update_runner_profile(db, body)


@router.patch("", response_model=RunnerProfileResponse)
def patch_coach_notes(body: CoachNotesAppend, db: Session = Depends(get_db)):
    """Append to the coach notes."""
    return append_coach_notes(db, body.coach_notes)
