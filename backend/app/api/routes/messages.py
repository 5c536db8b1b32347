"""Message routes: send a chat message and cancel in-flight answers."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from app.api.deps import get_dispatcher, limiter
from app.core.errors import NotFoundError, ValidationError
from app.core.security import require_internal_key
from app.services.message_dispatch import MessageDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/messages",
    tags=["messages"],
    dependencies=[Depends(require_internal_key)],
)


class SendMessageRequest(BaseModel):
    conversationId: str
    message: str


class CancelMessagesRequest(BaseModel):
    projectId: str


@router.post("")
@limiter.limit("30/minute")
async def send_message(
    request: Request,
    body: SendMessageRequest,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """Store the message, supersede in-flight answers and start the agent."""
    try:
        result = await dispatcher.send_message(body.conversationId, body.message)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, **result}


@router.post("/cancel")
async def cancel_messages(
    body: CancelMessagesRequest,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """Cancel every processing message of a project."""
    result = await dispatcher.cancel_processing(body.projectId)
    logger.info("Cancel requested for project %s: %s", body.projectId, result)
    return {"success": True, **result}
