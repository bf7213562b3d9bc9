"""
Runner Profile Store

Access to the singleton `runner_profile` row shared by the coach tools and
the profile form.

Race policy for the first write: the row carries `singleton_key = 1` under a
UNIQUE constraint. `get_or_create_runner_profile` inserts optimistically and,
if a concurrent request won, rolls back and re-reads the winner's row.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import RunnerProfile
from schemas import RunnerProfileUpdate

logger = logging.getLogger(__name__)

SINGLETON_KEY = 1
COACH_NOTES_SEPARATOR = "\n\n---\n\n"

# Wire key (camelCase, as the model sends it) -> column
TEXT_FIELDS: Dict[str, str] = {
    "name": "name",
    "pb5k": "pb5k",
    "pb10k": "pb10k",
    "pbHalfMarathon": "pb_half_marathon",
    "pbMarathon": "pb_marathon",
    "currentGoal": "current_goal",
    "targetRace": "target_race",
    "targetTime": "target_time",
    "injuries": "injuries",
    "healthNotes": "health_notes",
    "preferredTerrain": "preferred_terrain",
    "availableDays": "available_days",
    "coachNotes": "coach_notes",
}

NUMBER_FIELDS: Dict[str, Tuple[str, type]] = {
    "age": ("age", int),
    "weight": ("weight", float),
    "height": ("height", float),
    "yearsRunning": ("years_running", int),
    "weeklyKm": ("weekly_km", float),
    "maxTimePerSession": ("max_time_per_session", int),
}


def get_runner_profile(db: Session) -> Optional[RunnerProfile]:
    return db.query(RunnerProfile).filter(RunnerProfile.singleton_key == SINGLETON_KEY).first()


def get_or_create_runner_profile(db: Session) -> RunnerProfile:
    profile = get_runner_profile(db)
    if profile is not None:
        return profile

    profile = RunnerProfile(singleton_key=SINGLETON_KEY)
    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        # Another request created the row first; use theirs.
        db.rollback()
        logger.info("Runner profile created concurrently; reusing existing row")
        profile = get_runner_profile(db)
        if profile is None:
            raise
        return profile

    db.refresh(profile)
    logger.info(f"Created runner profile {profile.id}")
    return profile


def _coerce_number(value: Any, kind: type) -> Any:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    number = float(value)
    if number != number or number in (float("inf"), float("-inf")):
        raise ValueError(f"not a finite number: {value!r}")
    return int(round(number)) if kind is int else number


def build_profile_update(
    args: Dict[str, Any],
    existing_info: Optional[Dict[str, Any]] = None,
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Translate coach tool arguments into a column update.

    Returns (column -> value, wire keys applied). Unrecognised keys are
    ignored; numeric fields that cannot be coerced are skipped.
    `additionalInfo` is shallow-merged over `existing_info`.
    """
    update: Dict[str, Any] = {}
    applied: List[str] = []

    for key, column in TEXT_FIELDS.items():
        if key in args:
            value = args[key]
            update[column] = value if value is None or isinstance(value, str) else str(value)
            applied.append(key)

    for key, (column, kind) in NUMBER_FIELDS.items():
        if key not in args:
            continue
        try:
            update[column] = _coerce_number(args[key], kind)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric profile value {key}={args[key]!r}")
            continue
        applied.append(key)

    info = args.get("additionalInfo")
    if isinstance(info, dict) and info:
        update["additional_info"] = {**(existing_info or {}), **info}
        applied.append("additionalInfo")
    elif info:
        logger.warning(f"Ignoring additionalInfo of type {type(info).__name__}")

    return update, applied


def apply_profile_update(db: Session, args: Dict[str, Any]) -> Tuple[Optional[RunnerProfile], List[str]]:
    """
    Merge coach-supplied fields into the profile (insert-if-absent).

    Returns (profile, applied keys). A call with nothing recognisable
    touches nothing and returns (None, []).
    """
    existing = get_runner_profile(db)
    update, applied = build_profile_update(args, existing.additional_info if existing else None)
    if not update:
        return None, []

    profile = existing
    if profile is None:
        profile = get_or_create_runner_profile(db)
        # The row may have been created by someone else with its own additionalInfo.
        update, applied = build_profile_update(args, profile.additional_info)

    for column, value in update.items():
        setattr(profile, column, value)
    profile.updated_at = datetime.now(timezone.utc)

    db.commit()
    db.refresh(profile)
    logger.info(f"Runner profile updated: fields={applied}")
    return profile, applied


def update_runner_profile(db: Session, body: RunnerProfileUpdate) -> RunnerProfile:
    """
    Profile form save.

    Existing row: keys present in the body overwrite, absent keys keep their
    value. New row: falsy values are stored as NULL.
    """
    profile = get_runner_profile(db)
    if profile is None:
        profile = get_or_create_runner_profile(db)
        for column, value in body.model_dump().items():
            setattr(profile, column, value or None)
    else:
        for column, value in body.model_dump(exclude_unset=True).items():
            setattr(profile, column, value)

    profile.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(profile)
    return profile


def append_coach_notes(db: Session, notes: str) -> RunnerProfile:
    profile = get_or_create_runner_profile(db)
    if profile.coach_notes:
        profile.coach_notes = f"{profile.coach_notes}{COACH_NOTES_SEPARATOR}{notes}"
    else:
        profile.coach_notes = notes
    profile.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(profile)
    return profile
