"""The process-message job: turns a user message into an agent answer.

Triggered by `message/sent` with {messageId, conversationId, projectId, message}
and cancelled by `message/cancel` carrying the same messageId. Each unit of
work is a named step, so a resumed run never repeats a completed side effect.
"""

import logging
from typing import Callable, Optional

import databases

from app.agents.base import ChatModel, EventCallback
from app.agents.openai_model import OpenAIChatModel
from app.agents.prompts import (
    DEFAULT_CONVERSATION_TITLE,
    ERROR_RESPONSE,
    FALLBACK_RESPONSE,
    build_system_prompt,
)
from app.agents.router import AgentRouter
from app.agents.title_generator import generate_conversation_title
from app.agents.tools import ProjectTools
from app.core.config import Settings, settings
from app.core.errors import JobCancelled, NonRetriableError
from app.core.events import AgentEvent, EventType
from app.db.queries import conversations, messages
from app.services.job_runtime import CancelOn, JobEvent, JobFunction, StepContext

logger = logging.getLogger(__name__)

MESSAGE_SENT_EVENT = "message/sent"
MESSAGE_CANCEL_EVENT = "message/cancel"
PROCESS_MESSAGE_FUNCTION_ID = "process-message"

ModelFactory = Callable[[], ChatModel]


async def _ignore_event(event: AgentEvent) -> None:
    return None


def _default_title_model() -> ChatModel:
    return OpenAIChatModel(model=settings.effective_title_model)


class MessageProcessor:
    """Holds the collaborators of the process-message job."""

    def __init__(
        self,
        db: databases.Database,
        model_factory: ModelFactory = OpenAIChatModel,
        title_model_factory: ModelFactory = _default_title_model,
        storage=None,
        on_event: Optional[EventCallback] = None,
        config: Settings = settings,
    ):
        self.db = db
        self.model_factory = model_factory
        self.title_model_factory = title_model_factory
        self.storage = storage
        self.on_event = on_event or _ignore_event
        self.config = config

    def job_function(self) -> JobFunction:
        return JobFunction(
            id=PROCESS_MESSAGE_FUNCTION_ID,
            trigger=MESSAGE_SENT_EVENT,
            handler=self.process,
            on_failure=self.handle_failure,
            cancel_on=[CancelOn(event=MESSAGE_CANCEL_EVENT, match="messageId")],
        )

    async def process(self, event: JobEvent, step: StepContext) -> dict:
        message_id = event.data["messageId"]
        conversation_id = event.data["conversationId"]
        project_id = event.data["projectId"]
        user_message = event.data["message"]

        if not self.config.polaris_internal_key:
            raise NonRetriableError("POLARIS_INTERNAL_KEY is not configured")

        if self.config.message_settle_delay_seconds > 0:
            await step.sleep("wait-for-settle", self.config.message_settle_delay_seconds)

        conversation = await step.run(
            "get-conversation",
            lambda: conversations.get_conversation(self.db, conversation_id),
        )
        if not conversation:
            raise NonRetriableError(f"Conversation {conversation_id} not found")

        recent = await step.run(
            "get-recent-messages",
            lambda: messages.get_recent_messages(
                self.db, conversation_id, limit=self.config.context_message_limit
            ),
        )
        history = [
            m for m in recent
            if m["id"] != message_id and m["content"].strip()
        ]

        if conversation["title"] == DEFAULT_CONVERSATION_TITLE:
            await self._generate_title(step, conversation_id, user_message)

        router = AgentRouter(
            model=self.model_factory(),
            tools=ProjectTools(self.db, project_id, storage=self.storage),
            max_iterations=self.config.agent_max_iterations,
            on_event=self.on_event,
        )
        result = await router.run(build_system_prompt(history), user_message, step=step)
        answer = result.text or FALLBACK_RESPONSE

        written = await step.run(
            "update-assistant-message",
            lambda: messages.complete_message(self.db, message_id, answer),
        )
        if written:
            logger.info(
                "Message %s completed after %d agent turn(s) (%s)",
                message_id, result.iterations, result.stop_reason,
            )
            await self.on_event(
                AgentEvent.create(
                    EventType.MESSAGE_COMPLETED,
                    event.run_id,
                    {"messageId": message_id, "conversationId": conversation_id},
                )
            )
        else:
            logger.info("Message %s was cancelled, answer discarded", message_id)

        return {
            "messageId": message_id,
            "written": written,
            "iterations": result.iterations,
            "stopReason": result.stop_reason,
        }

    async def handle_failure(self, event: JobEvent, error: BaseException, step: StepContext) -> None:
        """Replace the placeholder with an apology when the job fails."""
        message_id = event.data.get("messageId")
        if not self.config.polaris_internal_key or not message_id:
            logger.error("Cannot report failure for message %s: %s", message_id, error)
            return

        written = await step.run(
            "update-message-on-failure",
            lambda: messages.fail_message(self.db, message_id, ERROR_RESPONSE),
        )
        if written:
            await self.on_event(
                AgentEvent.create(
                    EventType.MESSAGE_FAILED,
                    event.run_id,
                    {"messageId": message_id, "error": str(error)},
                )
            )

    async def _generate_title(self, step: StepContext, conversation_id: str, user_message: str) -> None:
        # Best effort: a failed title never fails the job
        try:
            title = await step.run(
                "generate-conversation-title",
                lambda: generate_conversation_title(self.title_model_factory(), user_message),
            )
            if title:
                await step.run(
                    "update-conversation-title",
                    lambda: conversations.update_conversation_title(self.db, conversation_id, title),
                )
        except JobCancelled:
            raise
        except Exception as e:
            logger.warning("Title generation failed for conversation %s: %s", conversation_id, e)
