"""OpenAI-compatible chat model using AsyncOpenAI."""

from typing import List, Optional

from openai import AsyncOpenAI

from app.agents.base import ChatModel, ModelTurn, ToolCall
from app.core.config import settings


class OpenAIChatModel(ChatModel):
    """Chat-completions client configured from settings (optionally via a proxy base URL)."""

    def __init__(self, model: Optional[str] = None):
        client_config = {"api_key": settings.openai_api_key}
        if settings.openai_base_url:
            client_config["base_url"] = settings.openai_base_url
        self.client = AsyncOpenAI(**client_config)
        self.model = model or settings.openai_model or "gpt-4o-mini"

    async def complete(
        self,
        messages: List[dict],
        tools: Optional[List[dict]] = None,
    ) -> ModelTurn:
        request = {"model": self.model, "messages": messages}
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        response = await self.client.chat.completions.create(**request)
        choice = response.choices[0]

        return ModelTurn(
            content=choice.message.content,
            tool_calls=[
                ToolCall(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=tc.function.arguments or "{}",
                )
                for tc in (choice.message.tool_calls or [])
            ],
            finish_reason=choice.finish_reason,
        )
