"""Shared fixtures: a throwaway SQLite database, a scripted chat model and a job runtime."""

import json
from typing import List, Optional

import databases
import pytest
import pytest_asyncio

from app.agents.base import ChatModel, ModelTurn, ToolCall
from app.agents.prompts import DEFAULT_CONVERSATION_TITLE
from app.core.config import Settings
from app.db.database import init_schema
from app.db.queries import projects
from app.services.job_runtime import JobRuntime
from app.services.retry_policy import RetryPolicy

TEST_INTERNAL_KEY = "test-internal-key"


class ScriptedModel(ChatModel):
    """Chat model that replays a fixed list of turns (or raises queued exceptions)."""

    def __init__(self, turns=None):
        self.turns = list(turns or [])
        self.calls: List[dict] = []

    async def complete(self, messages: List[dict], tools: Optional[List[dict]] = None) -> ModelTurn:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if not self.turns:
            return ModelTurn(content="", finish_reason="stop")
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn


def _text_turn(text) -> ModelTurn:
    return ModelTurn(content=text, finish_reason="stop")


def _tool_turn(*calls, text=None) -> ModelTurn:
    """calls: (name, arguments) pairs; arguments may be a dict or raw JSON text."""
    tool_calls = []
    for index, (name, arguments) in enumerate(calls):
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        tool_calls.append(ToolCall(id=f"call_{index}_{name}", name=name, arguments=arguments))
    return ModelTurn(content=text, tool_calls=tool_calls, finish_reason="tool_calls")


class RecordingStorage:
    def __init__(self):
        self.deleted: List[str] = []

    async def delete(self, storage_id: str) -> None:
        self.deleted.append(storage_id)


@pytest.fixture
def scripted_model():
    """The scripted model class itself, so tests can build or subclass it."""
    return ScriptedModel


@pytest.fixture
def text_turn():
    return _text_turn


@pytest.fixture
def tool_turn():
    return _tool_turn


@pytest.fixture
def storage():
    return RecordingStorage()


@pytest.fixture
def test_settings():
    return Settings(
        polaris_internal_key=TEST_INTERNAL_KEY,
        openai_api_key="sk-test",
        context_message_limit=10,
        agent_max_iterations=20,
        message_settle_delay_seconds=0.0,
    )


@pytest_asyncio.fixture
async def db(tmp_path):
    database = databases.Database(f"sqlite:///{tmp_path / 'test.db'}")
    await database.connect()
    await init_schema(database)
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def project(db):
    """A project with one untitled conversation."""
    created = await projects.create_project_with_conversation(
        db, name="demo", conversation_title=DEFAULT_CONVERSATION_TITLE
    )
    return {
        "id": created["project"]["id"],
        "conversationId": created["conversation"]["id"],
    }


@pytest_asyncio.fixture
async def runtime(db):
    job_runtime = JobRuntime(db, RetryPolicy(initial_delay_ms=1, max_attempts=3))
    yield job_runtime
    await job_runtime.shutdown()
