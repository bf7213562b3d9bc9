"""
Conversations API Router

Chat history for the general chat page.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import ValidationError
from schemas import (
    ConversationCreate,
    ConversationDetail,
    ConversationResponse,
    ConversationUpdate,
    MessageCreate,
    MessageResponse,
)
from services import conversations

router = APIRouter(prefix="/api/conversations", tags=["Conversations"])


@router.get("", response_model=List[ConversationResponse])
def list_conversations(db: Session = Depends(get_db)):
    """Most recently active first."""
    return conversations.list_conversations(db)


@router.post("", response_model=ConversationResponse)
def create_conversation(body: ConversationCreate, db: Session = Depends(get_db)):
    return conversations.create_conversation(db, model=body.model, title=body.title)


@router.delete("")
def delete_conversation(
    id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
):
    if id is None:
        raise ValidationError("ID requerido", field="id")
    conversations.delete_conversation(db, id)
    return {"success": True}


@router.get("/{conversation_id}", response_model=ConversationDetail)
def get_conversation(conversation_id: UUID, db: Session = Depends(get_db)):
    return conversations.get_conversation(db, conversation_id)


@router.put("/{conversation_id}", response_model=ConversationResponse)
def rename_conversation(conversation_id: UUID, body: ConversationUpdate, db: Session = Depends(get_db)):
    return conversations.rename_conversation(db, conversation_id, body.title)


@router.post("/{conversation_id}/messages", response_model=MessageResponse)
def add_message(conversation_id: UUID, body: MessageCreate, db: Session = Depends(get_db)):
    return conversations.add_message(db, conversation_id, body.role, body.content)
