"""Chat conversation history (conversations + messages)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from core.exceptions import NotFoundError
from models import Conversation, Message

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Nueva conversación"


def list_conversations(db: Session) -> List[Conversation]:
    return db.query(Conversation).order_by(Conversation.updated_at.desc()).all()


def create_conversation(db: Session, model: str, title: Optional[str] = None) -> Conversation:
    conversation = Conversation(title=title or DEFAULT_TITLE, model=model)
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation


def get_conversation(db: Session, conversation_id: UUID) -> Conversation:
    conversation = (
        db.query(Conversation)
        .options(selectinload(Conversation.messages))
        .filter(Conversation.id == conversation_id)
        .first()
    )
    if conversation is None:
        raise NotFoundError("Conversation", str(conversation_id))
    return conversation


def rename_conversation(db: Session, conversation_id: UUID, title: str) -> Conversation:
    conversation = get_conversation(db, conversation_id)
    conversation.title = title
    conversation.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(conversation)
    return conversation


def delete_conversation(db: Session, conversation_id: UUID) -> None:
    conversation = get_conversation(db, conversation_id)
    db.delete(conversation)
    db.commit()
    logger.info(f"Deleted conversation {conversation_id}")


def add_message(db: Session, conversation_id: UUID, role: str, content: str) -> Message:
    """Append a message and bump the conversation to the top of the list."""
    conversation = get_conversation(db, conversation_id)
    message = Message(conversation_id=conversation.id, role=role, content=content)
    db.add(message)
    conversation.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(message)
    return message
