"""Tool-calling agent loop (ReAct style) over the project file tools."""

import json
import logging
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import BaseModel, Field

from app.agents.base import ChatModel, EventCallback, ModelTurn, ToolCall
from app.agents.prompts import FALLBACK_RESPONSE
from app.agents.tools import TOOLS, ProjectTools
from app.core.errors import JobCancelled
from app.core.events import AgentEvent, EventType

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    THINKING = "thinking"
    DECIDING = "deciding"
    TOOL_EXECUTING = "tool_executing"
    DONE = "done"


class AgentResult(BaseModel):
    text: str
    iterations: int
    stop_reason: str  # "done" or "max_iterations"
    tool_calls: List[dict] = Field(default_factory=list)


async def _ignore_event(event: AgentEvent) -> None:
    return None


class AgentRouter:
    """Runs model turns until the model answers with text and no tool calls.

    Bounded by `max_iterations` model turns. When a step context is given,
    every model turn and tool call is a memoized job step.
    """

    MAX_ITERATIONS = 20

    def __init__(
        self,
        model: ChatModel,
        tools: ProjectTools,
        max_iterations: Optional[int] = None,
        on_event: Optional[EventCallback] = None,
    ):
        self.model = model
        self.tools = tools
        self.max_iterations = max_iterations or self.MAX_ITERATIONS
        self.on_event = on_event or _ignore_event
        self.state = AgentState.THINKING

    async def run(self, system_prompt: str, message: str, step=None) -> AgentResult:
        """
        Run the agent loop.

        Returns the final text, the number of model turns used and a log of tool calls.
        """
        agent_id = str(uuid.uuid4())
        await self.on_event(
            AgentEvent.create(
                EventType.AGENT_STARTED,
                agent_id,
                {"message": message, "max_iterations": self.max_iterations},
            )
        )

        messages: List[dict] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": message},
        ]
        tool_calls_log: List[dict] = []
        last_text = ""

        try:
            for iteration in range(self.max_iterations):
                self.state = AgentState.THINKING
                await self.on_event(
                    AgentEvent.create(EventType.LLM_REQUEST, agent_id, {"iteration": iteration})
                )

                turn_data = await self._run_step(
                    step,
                    f"agent-turn-{iteration}",
                    lambda: self._complete(messages),
                )
                turn = ModelTurn.model_validate(turn_data)
                text = turn.text

                self.state = AgentState.DECIDING
                await self.on_event(
                    AgentEvent.create(
                        EventType.LLM_RESPONSE,
                        agent_id,
                        {
                            "iteration": iteration,
                            "finish_reason": turn.finish_reason,
                            "has_text": bool(text),
                            "tool_call_count": len(turn.tool_calls),
                        },
                    )
                )

                if text:
                    last_text = text

                if text and not turn.tool_calls:
                    self.state = AgentState.DONE
                    await self.on_event(
                        AgentEvent.create(
                            EventType.AGENT_COMPLETED,
                            agent_id,
                            {"status": "success", "iterations": iteration + 1},
                        )
                    )
                    return AgentResult(
                        text=text,
                        iterations=iteration + 1,
                        stop_reason="done",
                        tool_calls=tool_calls_log,
                    )

                if not turn.tool_calls:
                    # Empty turn: ask again without recording it
                    continue

                messages.append(turn.to_message())

                self.state = AgentState.TOOL_EXECUTING
                for index, tool_call in enumerate(turn.tool_calls):
                    await self.on_event(
                        AgentEvent.create(
                            EventType.TOOL_CALLED,
                            agent_id,
                            {"tool": tool_call.name, "arguments": tool_call.arguments},
                        )
                    )

                    result = await self._run_step(
                        step,
                        f"tool-{iteration}-{index}-{tool_call.name}",
                        lambda tc=tool_call: self._execute_tool(tc),
                    )

                    tool_calls_log.append({
                        "tool": tool_call.name,
                        "arguments": tool_call.arguments,
                        "result_preview": result[:200],
                    })
                    messages.append({
                        "role": "tool",
                        "tool_call_id": tool_call.id,
                        "content": result,
                    })

            # Iteration cap reached: return the last text seen
            logger.warning(
                "Agent %s stopped at the iteration cap (%d)", agent_id, self.max_iterations
            )
            self.state = AgentState.DONE
            await self.on_event(
                AgentEvent.create(
                    EventType.AGENT_COMPLETED,
                    agent_id,
                    {"status": "max_iterations", "iterations": self.max_iterations},
                )
            )
            return AgentResult(
                text=last_text or FALLBACK_RESPONSE,
                iterations=self.max_iterations,
                stop_reason="max_iterations",
                tool_calls=tool_calls_log,
            )

        except JobCancelled:
            await self.on_event(
                AgentEvent.create(EventType.AGENT_COMPLETED, agent_id, {"status": "cancelled"})
            )
            raise
        except Exception as e:
            await self.on_event(
                AgentEvent.create(
                    EventType.AGENT_COMPLETED,
                    agent_id,
                    {"status": "error", "error": str(e)},
                )
            )
            raise

    async def _complete(self, messages: List[dict]) -> dict:
        turn = await self.model.complete(messages, tools=TOOLS)
        return turn.model_dump()

    async def _execute_tool(self, tool_call: ToolCall) -> str:
        try:
            arguments = json.loads(tool_call.arguments or "{}")
        except json.JSONDecodeError as e:
            return f"Error: Invalid JSON arguments for {tool_call.name}: {e}"
        return await self.tools.execute(tool_call.name, arguments)

    @staticmethod
    async def _run_step(step, step_id: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        if step is None:
            return await fn()
        return await step.run(step_id, fn)
