"""File tools exposed to the coding agent.

Every tool returns a string: a JSON payload or a plain sentence the model can
react to. Validation problems and store errors are reported as text, never
raised past `ProjectTools.execute`.
"""

import asyncio
import json
import logging
from typing import Annotated, List, Literal, Optional, Union

import databases
from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from app.core.errors import NotFoundError, ValidationError
from app.db.queries import files as file_queries
from app.schemas.messages import FileType

logger = logging.getLogger(__name__)

# Tool definitions for OpenAI function calling
TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "listFiles",
            "description": (
                "List all files and folders in the project. Returns names, IDs, types, and parentId "
                "for each item. Items with parentId: null are at root level. Use the parentId to "
                "understand the folder structure - items with the same parentId are in the same folder."
            ),
            "parameters": {"type": "object", "properties": {}},
        },
    },
    {
        "type": "function",
        "function": {
            "name": "readFiles",
            "description": "Read the content of files from the project. Returns file contents.",
            "parameters": {
                "type": "object",
                "properties": {
                    "fileIds": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Array of file IDs to read",
                    }
                },
                "required": ["fileIds"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "createFiles",
            "description": (
                "Create multiple files at once in the same folder. Use this to batch create files "
                "that share the same parent folder. More efficient than creating files one by one."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "parentId": {
                        "type": "string",
                        "description": (
                            "The ID of the parent folder. Use empty string for root level. "
                            "Must be a valid folder ID from listFiles."
                        ),
                    },
                    "files": {
                        "type": "array",
                        "description": "Array of files to create",
                        "items": {
                            "type": "object",
                            "properties": {
                                "name": {"type": "string", "description": "The file name including extension"},
                                "content": {"type": "string", "description": "The file content"},
                            },
                            "required": ["name", "content"],
                        },
                    },
                },
                "required": ["parentId", "files"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "createFolder",
            "description": "Create a new folder in the project",
            "parameters": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "The name of the folder to create"},
                    "parentId": {
                        "type": "string",
                        "description": "The ID (not name!) of the parent folder from listFiles, or empty string for root level",
                    },
                },
                "required": ["name", "parentId"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "updateFile",
            "description": "Update the content of an existing file",
            "parameters": {
                "type": "object",
                "properties": {
                    "fileId": {"type": "string", "description": "The ID of the file to update"},
                    "content": {"type": "string", "description": "The new content for the file"},
                },
                "required": ["fileId", "content"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "renameFile",
            "description": "Rename a file or folder. The item stays in the same parent folder.",
            "parameters": {
                "type": "object",
                "properties": {
                    "fileId": {"type": "string", "description": "The ID of the file or folder to rename"},
                    "newName": {"type": "string", "description": "The new name, including extension for files"},
                },
                "required": ["fileId", "newName"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "deleteFiles",
            "description": "Delete files or folders. Deleting a folder also deletes everything inside it.",
            "parameters": {
                "type": "object",
                "properties": {
                    "fileIds": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Array of file or folder IDs to delete",
                    }
                },
                "required": ["fileIds"],
            },
        },
    },
]

TOOL_NAMES = {tool["function"]["name"] for tool in TOOLS}


def _non_empty(value: str, message: str) -> str:
    if not value or not value.strip():
        raise PydanticCustomError("tool_params", message)
    return value


class ListFilesCall(BaseModel):
    tool: Literal["listFiles"]


class ReadFilesCall(BaseModel):
    tool: Literal["readFiles"]
    fileIds: List[str]

    @field_validator("fileIds")
    @classmethod
    def _check_ids(cls, value: List[str]) -> List[str]:
        if not value:
            raise PydanticCustomError("tool_params", "Provide at least one file ID")
        for file_id in value:
            _non_empty(file_id, "File ID cannot be empty")
        return value


class NewFile(BaseModel):
    name: str
    content: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return _non_empty(value, "File name cannot be empty")


class CreateFilesCall(BaseModel):
    tool: Literal["createFiles"]
    parentId: str
    files: List[NewFile]

    @field_validator("files")
    @classmethod
    def _check_files(cls, value: List[NewFile]) -> List[NewFile]:
        if not value:
            raise PydanticCustomError("tool_params", "Provide at least one file to create")
        return value


class CreateFolderCall(BaseModel):
    tool: Literal["createFolder"]
    name: str
    parentId: str

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return _non_empty(value, "Folder name is required")


class UpdateFileCall(BaseModel):
    tool: Literal["updateFile"]
    fileId: str
    content: str

    @field_validator("fileId")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return _non_empty(value, "File ID is required")


class RenameFileCall(BaseModel):
    tool: Literal["renameFile"]
    fileId: str
    newName: str

    @field_validator("fileId")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return _non_empty(value, "File ID is required")

    @field_validator("newName")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return _non_empty(value, "New name is required")


class DeleteFilesCall(BaseModel):
    tool: Literal["deleteFiles"]
    fileIds: List[str]

    @field_validator("fileIds")
    @classmethod
    def _check_ids(cls, value: List[str]) -> List[str]:
        if not value:
            raise PydanticCustomError("tool_params", "Provide at least one file ID")
        for file_id in value:
            _non_empty(file_id, "File ID cannot be empty")
        return value


ToolInvocation = Annotated[
    Union[
        ListFilesCall,
        ReadFilesCall,
        CreateFilesCall,
        CreateFolderCall,
        UpdateFileCall,
        RenameFileCall,
        DeleteFilesCall,
    ],
    Field(discriminator="tool"),
]

_invocation_adapter = TypeAdapter(ToolInvocation)


def parse_tool_call(name: str, arguments: dict) -> ToolInvocation:
    """Validate raw model arguments into the typed call for `name`."""
    return _invocation_adapter.validate_python({**arguments, "tool": name})


def _first_issue(error: PydanticValidationError) -> str:
    issue = error.errors()[0]
    location = ".".join(str(part) for part in issue["loc"][1:])
    if issue["type"] == "tool_params" or not location:
        return issue["msg"]
    return f"{location}: {issue['msg']}"


class ProjectTools:
    """The tool set bound to one project."""

    def __init__(self, db: databases.Database, project_id: str, storage=None):
        self.db = db
        self.project_id = project_id
        self.storage = storage

    async def execute(self, name: str, arguments: Optional[dict]) -> str:
        """Validate and run one tool call. Always returns a string."""
        if name not in TOOL_NAMES:
            return f"Error: Unknown tool: {name}"
        if not isinstance(arguments, dict):
            return "Error: Tool arguments must be a JSON object"

        try:
            call = parse_tool_call(name, arguments)
        except PydanticValidationError as e:
            return f"Error: {_first_issue(e)}"

        try:
            return await self._dispatch(call)
        except Exception as e:
            logger.exception("Tool %s failed for project %s", name, self.project_id)
            return f"Error running {name}: {e}"

    async def _dispatch(self, call: ToolInvocation) -> str:
        if isinstance(call, ListFilesCall):
            return await self.list_files()
        if isinstance(call, ReadFilesCall):
            return await self.read_files(call.fileIds)
        if isinstance(call, CreateFilesCall):
            return await self.create_files(call.parentId, [f.model_dump() for f in call.files])
        if isinstance(call, CreateFolderCall):
            return await self.create_folder(call.name, call.parentId)
        if isinstance(call, UpdateFileCall):
            return await self.update_file(call.fileId, call.content)
        if isinstance(call, RenameFileCall):
            return await self.rename_file(call.fileId, call.newName)
        return await self.delete_files(call.fileIds)

    async def list_files(self) -> str:
        try:
            nodes = await file_queries.list_files_by_project(self.db, self.project_id)
        except Exception as e:
            logger.exception("listFiles failed for project %s", self.project_id)
            return f"Error listing files: {e}"

        # Folders first, then files, alphabetically within each group
        nodes.sort(key=lambda n: (n["type"] != FileType.FOLDER.value, n["name"].lower(), n["name"]))
        return json.dumps([
            {
                "id": n["id"],
                "name": n["name"],
                "type": n["type"],
                "parentId": n["parentId"],
            }
            for n in nodes
        ])

    async def read_files(self, file_ids: List[str]) -> str:
        lookups = await asyncio.gather(
            *[file_queries.get_file(self.db, file_id) for file_id in file_ids],
            return_exceptions=True,
        )

        results = []
        for file_id, node in zip(file_ids, lookups):
            if isinstance(node, Exception):
                logger.warning("readFiles could not load %s: %s", file_id, node)
                continue
            if not node or node["projectId"] != self.project_id or not node["content"]:
                continue
            results.append({"id": node["id"], "name": node["name"], "content": node["content"]})

        if not results:
            return "Error: No files found with provided IDs. Use listFiles to get valid fileIDs."
        return json.dumps(results)

    async def create_files(self, parent_id: str, files: List[dict]) -> str:
        parent_error = await self._check_parent(parent_id)
        if parent_error:
            return parent_error

        try:
            results = await file_queries.create_files(
                self.db, self.project_id, files, parent_id=parent_id or None
            )
        except Exception as e:
            logger.exception("createFiles failed for project %s", self.project_id)
            return f"Error creating files: {e}"

        created = [r for r in results if not r.get("error")]
        failed = [r for r in results if r.get("error")]

        response = f"Created {len(created)} file(s)"
        if created:
            response += ": " + ", ".join(f"{r['name']} (id: {r['fileId']})" for r in created)
        if failed:
            response += ". Failed: " + ", ".join(f"{r['name']} ({r['error']})" for r in failed)
        return response

    async def create_folder(self, name: str, parent_id: str) -> str:
        parent_error = await self._check_parent(parent_id)
        if parent_error:
            return parent_error

        try:
            folder_id = await file_queries.create_folder(
                self.db, self.project_id, name, parent_id=parent_id or None
            )
        except Exception as e:
            return f"Error creating folder: {e}"

        return f"Folder created with ID: {folder_id}"

    async def update_file(self, file_id: str, content: str) -> str:
        node = await self._get_own_node(file_id)
        if not node:
            return f'Error: File with ID "{file_id}" not found. Use listFiles to get valid file IDs.'
        if node["type"] == FileType.FOLDER.value:
            return f'Error: "{file_id}" is a folder, not a file. You can only update file contents.'

        try:
            await file_queries.update_file_content(self.db, file_id, content)
        except Exception as e:
            return f"Error updating file: {e}"

        return f'File "{node["name"]}" updated successfully'

    async def rename_file(self, file_id: str, new_name: str) -> str:
        node = await self._get_own_node(file_id)
        if not node:
            return f'Error: File with ID "{file_id}" not found. Use listFiles to get valid file IDs.'

        try:
            await file_queries.rename_file(self.db, file_id, new_name)
        except Exception as e:
            return f"Error renaming file: {e}"

        return f'Renamed {node["type"]} "{node["name"]}" to "{new_name}"'

    async def delete_files(self, file_ids: List[str]) -> str:
        deleted, failed = [], []
        for file_id in file_ids:
            node = await self._get_own_node(file_id)
            if not node:
                failed.append(f"{file_id} (File not found)")
                continue
            try:
                removed = await file_queries.delete_recursive(self.db, file_id, storage=self.storage)
            except Exception as e:
                failed.append(f"{file_id} ({e})")
                continue
            deleted.append(f'{node["name"]} ({len(removed)} item(s))')

        response = f"Deleted {len(deleted)} of {len(file_ids)} item(s)"
        if deleted:
            response += ": " + ", ".join(deleted)
        if failed:
            response += ". Failed: " + ", ".join(failed)
        return response

    async def _check_parent(self, parent_id: str) -> Optional[str]:
        try:
            await file_queries.resolve_parent_folder(self.db, self.project_id, parent_id or None)
        except NotFoundError:
            return f'Error: Parent folder with ID "{parent_id}" not found. Use listFiles to get valid folder IDs.'
        except ValidationError:
            return f'Error: The ID "{parent_id}" is a file, not a folder. Use a folder ID as parentId.'
        except Exception as e:
            return f"Error: Invalid parentId \"{parent_id}\": {e}"
        return None

    async def _get_own_node(self, file_id: str) -> Optional[dict]:
        node = await file_queries.get_file(self.db, file_id)
        if not node or node["projectId"] != self.project_id:
            return None
        return node
