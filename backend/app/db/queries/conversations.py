"""Conversation database queries."""

from datetime import datetime, timezone
from typing import Optional, List
import databases
import secrets


async def create_conversation(
    db: databases.Database,
    project_id: str,
    title: str,
) -> dict:
    """Create a new conversation for a project."""
    conversation_id = secrets.token_urlsafe(16)
    now = datetime.now(timezone.utc).isoformat()

    query = """
        INSERT INTO Conversation (id, projectId, title, createdAt, updatedAt)
        VALUES (:id, :project_id, :title, :created_at, :updated_at)
    """

    await db.execute(query, {
        "id": conversation_id,
        "project_id": project_id,
        "title": title,
        "created_at": now,
        "updated_at": now,
    })

    return {
        "id": conversation_id,
        "projectId": project_id,
        "title": title,
        "createdAt": now,
        "updatedAt": now,
    }


async def get_conversation(db: databases.Database, conversation_id: str) -> Optional[dict]:
    """Get conversation by ID."""
    query = "SELECT * FROM Conversation WHERE id = :id"
    row = await db.fetch_one(query, {"id": conversation_id})

    if not row:
        return None

    return _row_to_dict(row)


async def list_conversations(db: databases.Database, project_id: str) -> List[dict]:
    """List a project's conversations, most recently active first."""
    query = """
        SELECT * FROM Conversation
        WHERE projectId = :project_id
        ORDER BY updatedAt DESC
    """
    rows = await db.fetch_all(query, {"project_id": project_id})
    return [_row_to_dict(row) for row in rows]


async def update_conversation_title(
    db: databases.Database,
    conversation_id: str,
    title: str,
) -> None:
    """Overwrite the conversation title."""
    query = """
        UPDATE Conversation SET title = :title, updatedAt = :updated_at
        WHERE id = :id
    """
    await db.execute(query, {
        "id": conversation_id,
        "title": title,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    })


async def touch_conversation(db: databases.Database, conversation_id: str) -> None:
    """Refresh updatedAt, e.g. after a new message."""
    query = "UPDATE Conversation SET updatedAt = :updated_at WHERE id = :id"
    await db.execute(query, {
        "id": conversation_id,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    })


def _row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "projectId": row["projectId"],
        "title": row["title"],
        "createdAt": row["createdAt"],
        "updatedAt": row["updatedAt"],
    }
