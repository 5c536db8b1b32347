"""Project database queries."""

from datetime import datetime, timezone
from typing import Optional
import databases
import secrets

from app.db.queries import conversations


async def create_project(
    db: databases.Database,
    name: str,
    owner_id: Optional[str] = None,
) -> dict:
    """Create a new project."""
    project_id = secrets.token_urlsafe(16)
    now = datetime.now(timezone.utc).isoformat()

    query = """
        INSERT INTO Project (id, name, ownerId, createdAt, updatedAt)
        VALUES (:id, :name, :owner_id, :created_at, :updated_at)
    """

    await db.execute(
        query,
        {
            "id": project_id,
            "name": name,
            "owner_id": owner_id,
            "created_at": now,
            "updated_at": now,
        }
    )

    return {
        "id": project_id,
        "name": name,
        "ownerId": owner_id,
        "createdAt": now,
        "updatedAt": now,
    }


async def get_project(db: databases.Database, project_id: str) -> Optional[dict]:
    """Get project by ID."""
    query = "SELECT * FROM Project WHERE id = :project_id"
    row = await db.fetch_one(query, {"project_id": project_id})

    if not row:
        return None

    return {
        "id": row["id"],
        "name": row["name"],
        "ownerId": row["ownerId"],
        "createdAt": row["createdAt"],
        "updatedAt": row["updatedAt"],
    }


async def create_project_with_conversation(
    db: databases.Database,
    name: str,
    conversation_title: str,
    owner_id: Optional[str] = None,
) -> dict:
    """Create a project and its first conversation in one transaction."""
    async with db.transaction():
        project = await create_project(db, name, owner_id=owner_id)
        conversation = await conversations.create_conversation(
            db, project["id"], conversation_title
        )

    return {"project": project, "conversation": conversation}
