"""Entry points that start and cancel process-message jobs.

Only one job per project should be producing an answer: a new message first
cancels every placeholder of the project that is still processing. Superseded
jobs are signalled and their messages flagged; they stop on their own at the
next step boundary.
"""

import asyncio
import logging
import secrets
from typing import List, Optional

import databases

from app.agents.prompts import DEFAULT_CONVERSATION_TITLE
from app.core.errors import NotFoundError, ValidationError
from app.db.queries import conversations, messages, projects
from app.services.job_runtime import JobRuntime
from app.services.message_processor import MESSAGE_CANCEL_EVENT, MESSAGE_SENT_EVENT

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Translates user actions into job events."""

    def __init__(self, db: databases.Database, runtime: JobRuntime):
        self.db = db
        self.runtime = runtime

    async def send_message(self, conversation_id: str, text: str) -> dict:
        """Supersede in-flight work, store the message pair and trigger the job.

        Returns immediately with the new placeholder ID.
        """
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty")

        conversation = await conversations.get_conversation(self.db, conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")

        project_id = conversation["projectId"]
        cancelled_ids = await self._cancel_processing_messages(project_id)

        assistant_message_id = await self._start(conversation_id, project_id, text)
        return {
            "messageId": assistant_message_id,
            "cancelledMessageIds": cancelled_ids,
        }

    async def cancel_processing(self, project_id: str) -> dict:
        """Cancel every processing message of a project."""
        cancelled_ids = await self._cancel_processing_messages(project_id)
        return {
            "cancelled": bool(cancelled_ids),
            "messageIds": cancelled_ids,
        }

    async def create_project_with_prompt(self, prompt: str, owner_id: Optional[str] = None) -> dict:
        """Create a project and its first conversation, then answer the prompt."""
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        created = await projects.create_project_with_conversation(
            self.db,
            name=f"project-{secrets.token_hex(3)}",
            conversation_title=DEFAULT_CONVERSATION_TITLE,
            owner_id=owner_id,
        )
        project_id = created["project"]["id"]
        conversation_id = created["conversation"]["id"]

        assistant_message_id = await self._start(conversation_id, project_id, prompt)
        return {
            "projectId": project_id,
            "conversationId": conversation_id,
            "messageId": assistant_message_id,
        }

    async def _start(self, conversation_id: str, project_id: str, text: str) -> str:
        # The pair is committed before the job can see the event
        pair = await messages.create_message_pair(self.db, conversation_id, project_id, text)
        assistant_message_id = pair["assistantMessageId"]

        await self.runtime.send(
            MESSAGE_SENT_EVENT,
            {
                "messageId": assistant_message_id,
                "conversationId": conversation_id,
                "projectId": project_id,
                "message": text,
            },
        )
        logger.info(
            "Queued message %s for conversation %s", assistant_message_id, conversation_id
        )
        return assistant_message_id

    async def _cancel_processing_messages(self, project_id: str) -> List[str]:
        processing = await messages.get_processing_messages(self.db, project_id)
        if not processing:
            return []

        results = await asyncio.gather(
            *[self._cancel_message(message["id"]) for message in processing],
            return_exceptions=True,
        )

        cancelled = []
        for message, result in zip(processing, results):
            if isinstance(result, Exception):
                logger.error("Failed to cancel message %s: %s", message["id"], result)
                continue
            if not result:
                logger.info("Message %s finished before it could be cancelled", message["id"])
                continue
            cancelled.append(message["id"])
        return cancelled

    async def _cancel_message(self, message_id: str) -> bool:
        await self.runtime.send(MESSAGE_CANCEL_EVENT, {"messageId": message_id})
        # The job may have written its answer since the sweep read the row
        return await messages.cancel_message(self.db, message_id)
