"""Project routes."""

from typing import Optional

import databases
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.agents.prompts import DEFAULT_CONVERSATION_TITLE
from app.api.deps import get_dispatcher
from app.core.errors import ValidationError
from app.core.security import require_internal_key
from app.db.database import get_database
from app.db.queries import conversations, files, projects
from app.services.message_dispatch import MessageDispatcher

router = APIRouter(
    prefix="/projects",
    tags=["projects"],
    dependencies=[Depends(require_internal_key)],
)


class CreateProjectRequest(BaseModel):
    name: str
    ownerId: Optional[str] = None


class CreateWithPromptRequest(BaseModel):
    prompt: str
    ownerId: Optional[str] = None


@router.post("")
async def create_project(
    req: CreateProjectRequest,
    db: databases.Database = Depends(get_database),
):
    """Create a project with an empty first conversation."""
    return await projects.create_project_with_conversation(
        db,
        name=req.name,
        conversation_title=DEFAULT_CONVERSATION_TITLE,
        owner_id=req.ownerId,
    )


@router.post("/create-with-prompt")
async def create_project_with_prompt(
    req: CreateWithPromptRequest,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """Create a project and start the agent on the first prompt."""
    try:
        return await dispatcher.create_project_with_prompt(req.prompt, owner_id=req.ownerId)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{project_id}/files")
async def list_project_files(project_id: str, db: databases.Database = Depends(get_database)):
    """Flat list of the project's files and folders."""
    if not await projects.get_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")

    nodes = await files.list_files_by_project(db, project_id)
    nodes.sort(key=lambda n: (n["type"] != "folder", n["name"].lower()))
    return {"files": nodes}


@router.get("/{project_id}/conversations")
async def list_project_conversations(
    project_id: str,
    db: databases.Database = Depends(get_database),
):
    """A project's conversations, most recently active first."""
    if not await projects.get_project(db, project_id):
        raise HTTPException(status_code=404, detail="Project not found")

    return {"conversations": await conversations.list_conversations(db, project_id)}
