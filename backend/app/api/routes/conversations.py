"""Conversation routes."""

from typing import Optional

import databases
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.agents.prompts import DEFAULT_CONVERSATION_TITLE
from app.core.security import require_internal_key
from app.db.database import get_database
from app.db.queries import conversations, messages, projects

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"],
    dependencies=[Depends(require_internal_key)],
)


class CreateConversationRequest(BaseModel):
    projectId: str
    title: Optional[str] = None


@router.post("")
async def create_conversation(
    req: CreateConversationRequest,
    db: databases.Database = Depends(get_database),
):
    """Start a new chat in a project."""
    if not await projects.get_project(db, req.projectId):
        raise HTTPException(status_code=404, detail="Project not found")

    return await conversations.create_conversation(
        db, req.projectId, req.title or DEFAULT_CONVERSATION_TITLE
    )


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, db: databases.Database = Depends(get_database)):
    conversation = await conversations.get_conversation(db, conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("/{conversation_id}/messages")
async def list_conversation_messages(
    conversation_id: str,
    db: databases.Database = Depends(get_database),
):
    """All messages of a conversation, oldest first, with their status."""
    if not await conversations.get_conversation(db, conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")

    return {"messages": await messages.list_messages(db, conversation_id)}
