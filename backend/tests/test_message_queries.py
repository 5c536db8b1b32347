"""Tests for the guarded message writes: completion, failure and cancellation."""

import pytest
import pytest_asyncio

from app.db.queries import messages
from app.schemas.messages import MessageStatus


@pytest_asyncio.fixture
async def placeholder(db, project):
    pair = await messages.create_message_pair(db, project["conversationId"], project["id"], "hi")
    return pair["assistantMessageId"]


class TestCompleteMessage:
    @pytest.mark.asyncio
    async def test_completing_twice_keeps_the_answer(self, db, placeholder):
        assert await messages.complete_message(db, placeholder, "Here is your app.") is True
        assert await messages.complete_message(db, placeholder, "Here is your app.") is True

        message = await messages.get_message(db, placeholder)
        assert message["content"] == "Here is your app."
        assert message["status"] == MessageStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_content_update_is_repeatable(self, db, placeholder):
        await messages.update_message_content(db, placeholder, "Done.")
        await messages.update_message_content(db, placeholder, "Done.")

        message = await messages.get_message(db, placeholder)
        assert message["content"] == "Done."
        assert message["status"] == MessageStatus.COMPLETED.value
        assert len(await messages.list_messages(db, message["conversationId"])) == 2

    @pytest.mark.asyncio
    async def test_cancelled_message_is_not_completed(self, db, placeholder):
        await messages.update_message_status(db, placeholder, MessageStatus.CANCELLED)

        assert await messages.complete_message(db, placeholder, "late") is False
        assert await messages.fail_message(db, placeholder, "late") is False

        message = await messages.get_message(db, placeholder)
        assert message["content"] == ""
        assert message["status"] == MessageStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_missing_message(self, db):
        assert await messages.complete_message(db, "missing", "x") is False


class TestCancelMessage:
    @pytest.mark.asyncio
    async def test_processing_message_cancelled(self, db, placeholder):
        assert await messages.cancel_message(db, placeholder) is True

        message = await messages.get_message(db, placeholder)
        assert message["status"] == MessageStatus.CANCELLED.value

    @pytest.mark.asyncio
    async def test_completed_message_left_alone(self, db, placeholder):
        await messages.complete_message(db, placeholder, "the real answer")

        assert await messages.cancel_message(db, placeholder) is False

        message = await messages.get_message(db, placeholder)
        assert message["content"] == "the real answer"
        assert message["status"] == MessageStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_failed_message_left_alone(self, db, placeholder):
        await messages.fail_message(db, placeholder, "Sorry")

        assert await messages.cancel_message(db, placeholder) is False
        assert (await messages.get_message(db, placeholder))["status"] == MessageStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_user_message_never_cancelled(self, db, project):
        pair = await messages.create_message_pair(db, project["conversationId"], project["id"], "hi")

        assert await messages.cancel_message(db, pair["userMessageId"]) is False
        assert (await messages.get_message(db, pair["userMessageId"]))["status"] is None

    @pytest.mark.asyncio
    async def test_missing_message(self, db):
        assert await messages.cancel_message(db, "missing") is False
