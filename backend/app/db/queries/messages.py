"""Message database queries."""

from datetime import datetime, timezone
from typing import Optional, List
import databases
import secrets

from app.db.queries import conversations
from app.schemas.messages import MessageRole, MessageStatus


async def create_message(
    db: databases.Database,
    conversation_id: str,
    project_id: str,
    role: MessageRole,
    content: str,
    status: Optional[MessageStatus] = None,
) -> str:
    """Insert a message and touch the conversation's updatedAt. Returns the message ID."""
    message_id = secrets.token_urlsafe(16)
    now = datetime.now(timezone.utc).isoformat()

    query = """
        INSERT INTO Message (id, conversationId, projectId, role, content, status, createdAt, updatedAt)
        VALUES (:id, :conversation_id, :project_id, :role, :content, :status, :created_at, :updated_at)
    """

    await db.execute(query, {
        "id": message_id,
        "conversation_id": conversation_id,
        "project_id": project_id,
        "role": MessageRole(role).value,
        "content": content,
        "status": MessageStatus(status).value if status else None,
        "created_at": now,
        "updated_at": now,
    })

    await conversations.touch_conversation(db, conversation_id)
    return message_id


async def create_message_pair(
    db: databases.Database,
    conversation_id: str,
    project_id: str,
    content: str,
) -> dict:
    """Create the user message and its empty assistant placeholder atomically."""
    async with db.transaction():
        user_message_id = await create_message(
            db, conversation_id, project_id, MessageRole.USER, content
        )
        assistant_message_id = await create_message(
            db,
            conversation_id,
            project_id,
            MessageRole.ASSISTANT,
            "",
            status=MessageStatus.PROCESSING,
        )

    return {
        "userMessageId": user_message_id,
        "assistantMessageId": assistant_message_id,
    }


async def get_message(db: databases.Database, message_id: str) -> Optional[dict]:
    """Get message by ID."""
    row = await db.fetch_one("SELECT * FROM Message WHERE id = :id", {"id": message_id})
    if not row:
        return None
    return _row_to_dict(row)


async def update_message_content(
    db: databases.Database,
    message_id: str,
    content: str,
    status: MessageStatus = MessageStatus.COMPLETED,
) -> None:
    """Replace content and set status in a single write. Safe to repeat."""
    query = """
        UPDATE Message SET content = :content, status = :status, updatedAt = :updated_at
        WHERE id = :id
    """
    await db.execute(query, {
        "id": message_id,
        "content": content,
        "status": MessageStatus(status).value,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    })


async def complete_message(db: databases.Database, message_id: str, content: str) -> bool:
    """Deliver the final answer unless the message was cancelled meanwhile.

    Returns False when the write was skipped.
    """
    return await _write_unless_cancelled(db, message_id, content, MessageStatus.COMPLETED)


async def fail_message(db: databases.Database, message_id: str, content: str) -> bool:
    """Write the failure text unless the message was cancelled meanwhile."""
    return await _write_unless_cancelled(db, message_id, content, MessageStatus.FAILED)


async def _write_unless_cancelled(
    db: databases.Database,
    message_id: str,
    content: str,
    status: MessageStatus,
) -> bool:
    async with db.transaction():
        status_value = await _locked_status(db, message_id)
        if status_value is None or status_value == MessageStatus.CANCELLED.value:
            return False
        await update_message_content(db, message_id, content, status=status)
    return True


async def cancel_message(db: databases.Database, message_id: str) -> bool:
    """Flag a message as cancelled if it is still processing.

    Returns False when the message is gone or has already reached a final
    status, in which case it is left untouched.
    """
    async with db.transaction():
        if await _locked_status(db, message_id) != MessageStatus.PROCESSING.value:
            return False
        await update_message_status(db, message_id, MessageStatus.CANCELLED)
    return True


async def _locked_status(db: databases.Database, message_id: str) -> Optional[str]:
    # Take the write lock before reading the status
    await db.execute("UPDATE Message SET status = status WHERE id = :id", {"id": message_id})
    row = await db.fetch_one("SELECT status FROM Message WHERE id = :id", {"id": message_id})
    if not row:
        return None
    return row["status"] or ""


async def update_message_status(
    db: databases.Database,
    message_id: str,
    status: Optional[MessageStatus],
) -> None:
    """Set (or clear) a message's status."""
    query = "UPDATE Message SET status = :status, updatedAt = :updated_at WHERE id = :id"
    await db.execute(query, {
        "id": message_id,
        "status": MessageStatus(status).value if status else None,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    })


async def get_recent_messages(
    db: databases.Database,
    conversation_id: str,
    limit: int = 10,
) -> List[dict]:
    """The most recent `limit` messages of a conversation, oldest first."""
    query = """
        SELECT * FROM Message
        WHERE conversationId = :conversation_id
        ORDER BY createdAt DESC, rowid DESC
        LIMIT :limit
    """
    rows = await db.fetch_all(query, {"conversation_id": conversation_id, "limit": limit})
    return [_row_to_dict(row) for row in reversed(rows)]


async def list_messages(db: databases.Database, conversation_id: str) -> List[dict]:
    """All messages of a conversation, oldest first."""
    query = """
        SELECT * FROM Message
        WHERE conversationId = :conversation_id
        ORDER BY createdAt ASC, rowid ASC
    """
    rows = await db.fetch_all(query, {"conversation_id": conversation_id})
    return [_row_to_dict(row) for row in rows]


async def get_processing_messages(db: databases.Database, project_id: str) -> List[dict]:
    """Messages of a project still waiting for an agent answer."""
    query = """
        SELECT * FROM Message
        WHERE projectId = :project_id AND status = :status
        ORDER BY createdAt ASC, rowid ASC
    """
    rows = await db.fetch_all(query, {
        "project_id": project_id,
        "status": MessageStatus.PROCESSING.value,
    })
    return [_row_to_dict(row) for row in rows]


def _row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "conversationId": row["conversationId"],
        "projectId": row["projectId"],
        "role": row["role"],
        "content": row["content"],
        "status": row["status"],
        "createdAt": row["createdAt"],
        "updatedAt": row["updatedAt"],
    }
