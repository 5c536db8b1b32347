from abc import ABC, abstractmethod
from typing import Any, Callable, Awaitable, List, Optional, Union

from pydantic import BaseModel, Field

from app.core.events import AgentEvent

EventCallback = Callable[[AgentEvent], Awaitable[None]]


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = "{}"  # Raw JSON text as produced by the model


class ModelTurn(BaseModel):
    """One assistant turn: text (plain or fragments) and requested tool calls."""

    content: Optional[Union[str, List[Any]]] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    finish_reason: Optional[str] = None

    @property
    def text(self) -> str:
        return extract_text(self.content)

    def to_message(self) -> dict:
        """The turn as a chat-completions assistant message."""
        message: dict = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in self.tool_calls
            ]
        return message


def extract_text(content: Any) -> str:
    """Plain strings are used as-is; fragment arrays are joined in order."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content.strip()

    parts = []
    for fragment in content:
        if isinstance(fragment, str):
            parts.append(fragment)
        elif isinstance(fragment, dict) and isinstance(fragment.get("text"), str):
            parts.append(fragment["text"])
    return "".join(parts).strip()


class ChatModel(ABC):
    @abstractmethod
    async def complete(
        self,
        messages: List[dict],
        tools: Optional[List[dict]] = None,
    ) -> ModelTurn:
        """
        Run one model turn.

        Args:
            messages: Chat-completions style message list
            tools: Function tool definitions, or None for a plain completion

        Returns:
            The assistant turn
        """
        ...
