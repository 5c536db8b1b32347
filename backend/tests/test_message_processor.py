"""Tests for the process-message job end to end (scripted model, real SQLite)."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.agents.prompts import DEFAULT_CONVERSATION_TITLE, ERROR_RESPONSE
from app.core.config import Settings
from app.core.events import EventType
from app.db.queries import conversations, files, messages
from app.schemas.messages import MessageStatus
from app.services.message_dispatch import MessageDispatcher
from app.services.message_processor import MESSAGE_SENT_EVENT, MessageProcessor


async def start_message(db, runtime, project, text):
    pair = await messages.create_message_pair(db, project["conversationId"], project["id"], text)
    message_id = pair["assistantMessageId"]
    [run_id] = await runtime.send(
        MESSAGE_SENT_EVENT,
        {
            "messageId": message_id,
            "conversationId": project["conversationId"],
            "projectId": project["id"],
            "message": text,
        },
    )
    return message_id, run_id


@pytest.fixture
def register(scripted_model, text_turn):
    def _register(db, runtime, settings, model, title_model=None, on_event=None):
        processor = MessageProcessor(
            db,
            model_factory=lambda: model,
            title_model_factory=lambda: title_model or scripted_model([text_turn("Untitled")]),
            on_event=on_event or AsyncMock(),
            config=settings,
        )
        runtime.register(processor.job_function())
        return processor

    return _register


class TestProcessMessage:
    @pytest.mark.asyncio
    async def test_creates_file_answers_and_titles(self, db, runtime, project, test_settings, register, scripted_model, text_turn, tool_turn):
        model = scripted_model([
            tool_turn(("createFiles", {"parentId": "", "files": [{"name": "README.md", "content": "# Demo"}]})),
            text_turn("Added a README."),
        ])
        title_model = scripted_model([text_turn('"README setup"')])
        on_event = AsyncMock()
        register(db, runtime, test_settings, model, title_model, on_event)

        message_id, run_id = await start_message(db, runtime, project, "Create a README")
        await runtime.wait(run_id)

        message = await messages.get_message(db, message_id)
        assert message["content"] == "Added a README."
        assert message["status"] == MessageStatus.COMPLETED.value

        conversation = await conversations.get_conversation(db, project["conversationId"])
        assert conversation["title"] == "README setup"

        [readme] = await files.list_files_by_project(db, project["id"])
        assert readme["name"] == "README.md"
        assert readme["content"] == "# Demo"

        event_types = [call.args[0].type for call in on_event.await_args_list]
        assert EventType.MESSAGE_COMPLETED in event_types

    @pytest.mark.asyncio
    async def test_history_in_system_prompt(self, db, runtime, project, test_settings, register, scripted_model, text_turn):
        await conversations.update_conversation_title(db, project["conversationId"], "Existing chat")
        earlier = await messages.create_message_pair(
            db, project["conversationId"], project["id"], "What is this project?"
        )
        await messages.complete_message(db, earlier["assistantMessageId"], "A demo app.")

        model = scripted_model([text_turn("Sure.")])
        title_model = scripted_model()
        register(db, runtime, test_settings, model, title_model)

        _, run_id = await start_message(db, runtime, project, "Add tests")
        await runtime.wait(run_id)

        system_prompt = model.calls[0]["messages"][0]["content"]
        assert "USER: What is this project?" in system_prompt
        assert "ASSISTANT: A demo app." in system_prompt
        assert model.calls[0]["messages"][1] == {"role": "user", "content": "Add tests"}
        # Titled conversations are not renamed
        assert title_model.calls == []

    @pytest.mark.asyncio
    async def test_title_failure_does_not_fail_the_job(self, db, runtime, project, test_settings, register, scripted_model, text_turn):
        model = scripted_model([text_turn("Done.")])
        title_model = scripted_model([RuntimeError("title down")] * 3)
        register(db, runtime, test_settings, model, title_model)

        message_id, run_id = await start_message(db, runtime, project, "hi")
        await runtime.wait(run_id)

        assert (await messages.get_message(db, message_id))["status"] == MessageStatus.COMPLETED.value
        conversation = await conversations.get_conversation(db, project["conversationId"])
        assert conversation["title"] == DEFAULT_CONVERSATION_TITLE

    @pytest.mark.asyncio
    async def test_failure_writes_apology(self, db, runtime, project, test_settings, register, scripted_model):
        model = scripted_model([RuntimeError("provider down")] * 3)
        on_event = AsyncMock()
        register(db, runtime, test_settings, model, on_event=on_event)

        message_id, run_id = await start_message(db, runtime, project, "hi")
        await runtime.wait(run_id)

        message = await messages.get_message(db, message_id)
        assert message["content"] == ERROR_RESPONSE
        assert message["status"] == MessageStatus.FAILED.value

        event_types = [call.args[0].type for call in on_event.await_args_list]
        assert EventType.MESSAGE_FAILED in event_types

    @pytest.mark.asyncio
    async def test_cancelled_message_not_overwritten(self, db, runtime, project, test_settings, register, scripted_model, text_turn):
        state = {}

        class CancellingModel(scripted_model):
            async def complete(self, messages_, tools=None):
                # The user supersedes the message while the model is thinking
                await messages.update_message_status(db, state["message_id"], MessageStatus.CANCELLED)
                return text_turn("Too late")

        register(db, runtime, test_settings, CancellingModel())

        pair = await messages.create_message_pair(db, project["conversationId"], project["id"], "hi")
        state["message_id"] = pair["assistantMessageId"]
        [run_id] = await runtime.send(
            MESSAGE_SENT_EVENT,
            {
                "messageId": state["message_id"],
                "conversationId": project["conversationId"],
                "projectId": project["id"],
                "message": "hi",
            },
        )
        await runtime.wait(run_id)

        message = await messages.get_message(db, state["message_id"])
        assert message["content"] == ""
        assert message["status"] == MessageStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_missing_internal_key_fails_without_retry(self, db, runtime, project, register, scripted_model, text_turn):
        model = scripted_model([text_turn("never")])
        register(db, runtime, Settings(polaris_internal_key=""), model)

        message_id, run_id = await start_message(db, runtime, project, "hi")
        await runtime.wait(run_id)

        assert model.calls == []
        message = await messages.get_message(db, message_id)
        # No key, no write: the placeholder is left as it was
        assert message["content"] == ""
        assert message["status"] == MessageStatus.PROCESSING.value

    @pytest.mark.asyncio
    async def test_rapid_second_message_supersedes_first(self, db, runtime, project, test_settings, register, scripted_model, text_turn):
        entered = asyncio.Event()
        gate = asyncio.Event()

        class GatedModel(scripted_model):
            async def complete(self, messages_, tools=None):
                entered.set()
                await gate.wait()
                return text_turn("stale answer")

        models = [GatedModel(), scripted_model([text_turn("fresh answer")])]
        processor = MessageProcessor(
            db,
            model_factory=lambda: models.pop(0),
            title_model_factory=lambda: scripted_model([text_turn("Chat")]),
            config=test_settings,
        )
        runtime.register(processor.job_function())
        dispatcher = MessageDispatcher(db, runtime)

        first = await dispatcher.send_message(project["conversationId"], "first")
        await asyncio.wait_for(entered.wait(), timeout=5)
        second = await dispatcher.send_message(project["conversationId"], "second")
        gate.set()
        await asyncio.wait_for(runtime.drain(), timeout=5)

        stale = await messages.get_message(db, first["messageId"])
        assert stale["status"] == MessageStatus.CANCELLED.value
        assert stale["content"] == ""

        fresh = await messages.get_message(db, second["messageId"])
        assert fresh["status"] == MessageStatus.COMPLETED.value
        assert fresh["content"] == "fresh answer"
