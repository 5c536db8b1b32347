"""Single-shot conversation title generation (no tools)."""

from app.agents.base import ChatModel
from app.agents.prompts import TITLE_GENERATOR_SYSTEM_PROMPT

MAX_TITLE_LENGTH = 80


async def generate_conversation_title(model: ChatModel, message: str) -> str:
    """Ask the model for a short title. Returns '' when it gives nothing usable."""
    turn = await model.complete(
        [
            {"role": "system", "content": TITLE_GENERATOR_SYSTEM_PROMPT},
            {"role": "user", "content": message},
        ]
    )
    title = turn.text.splitlines()[0] if turn.text else ""
    title = title.strip().strip("\"'`").strip()
    return title[:MAX_TITLE_LENGTH].rstrip()
