from sqlalchemy import Column, Integer, Float, Date, DateTime, ForeignKey, Text, Index, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from core.database import Base
import uuid
from datetime import datetime, timezone

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(Text, nullable=False, default="Nueva conversación")
    model = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(Text, nullable=False)  # 'user' | 'assistant'
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")


class GeneratedImage(Base):
    __tablename__ = "generated_images"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    prompt = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    image_url = Column(Text, nullable=False)  # remote URL or data: URL
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class VisionAnalysis(Base):
    __tablename__ = "vision_analyses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    image_url = Column(Text, nullable=False)
    prompt = Column(Text, nullable=True)
    model = Column(Text, nullable=False)
    response = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class RunnerProfile(Base):
    """
    Singleton runner profile shared by the coach chat and the profile form.

    `singleton_key` is always 1 and unique, so the database refuses a
    second row even when two first writes race each other.
    """
    __tablename__ = "runner_profile"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    singleton_key = Column(Integer, nullable=False, unique=True, default=1, server_default="1")

    # --- Personal ---
    name = Column(Text, nullable=True)
    age = Column(Integer, nullable=True)
    weight = Column(Float, nullable=True)  # kg
    height = Column(Float, nullable=True)  # cm
    years_running = Column(Integer, nullable=True)
    weekly_km = Column(Float, nullable=True)

    # --- Personal bests (free-form "MM:SS" / "H:MM:SS") ---
    pb5k = Column(Text, nullable=True)
    pb10k = Column(Text, nullable=True)
    pb_half_marathon = Column(Text, nullable=True)
    pb_marathon = Column(Text, nullable=True)

    # --- Goals ---
    current_goal = Column(Text, nullable=True)
    target_race = Column(Text, nullable=True)
    target_date = Column(Text, nullable=True)
    target_time = Column(Text, nullable=True)

    # --- Health ---
    injuries = Column(Text, nullable=True)
    health_notes = Column(Text, nullable=True)

    # --- Preferences ---
    preferred_terrain = Column(Text, nullable=True)
    available_days = Column(Text, nullable=True)
    max_time_per_session = Column(Integer, nullable=True)  # minutes

    coach_notes = Column(Text, nullable=True)
    # Open map (shoes, gear, routines...). Merged key-by-key, never replaced by the coach.
    additional_info = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


class RunningEvent(Base):
    """Calendar entry: a planned/completed run or a personal event."""
    __tablename__ = "running_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    date = Column(Date, nullable=False)
    category = Column(Text, nullable=False, default="running")  # 'running' | 'personal'
    type = Column(Text, nullable=False)  # 'race', 'training', 'long_run', 'appointment'...
    title = Column(Text, nullable=True)
    time = Column(Text, nullable=True)  # "HH:MM"
    distance = Column(Float, nullable=True)  # km
    duration = Column(Text, nullable=True)
    pace = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    heart_rate = Column(Integer, nullable=True)
    feeling = Column(Text, nullable=True)
    completed = Column(Integer, nullable=False, default=0)  # 0 | 1
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_running_events_date", "date"),
    )
