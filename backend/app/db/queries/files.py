"""File tree database queries.

Nodes are files or folders keyed by (projectId, parentId). Root nodes have a
NULL parentId. Siblings never share a (name, type) pair.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict
import databases
import secrets

from app.core.errors import NotFoundError, ValidationError
from app.schemas.messages import FileType


async def get_file(db: databases.Database, file_id: str) -> Optional[dict]:
    """Get a file or folder by ID."""
    row = await db.fetch_one("SELECT * FROM File WHERE id = :id", {"id": file_id})
    if not row:
        return None
    return _row_to_dict(row)


async def list_files_by_project(db: databases.Database, project_id: str) -> List[dict]:
    """Every node of a project, in no particular order."""
    rows = await db.fetch_all(
        "SELECT * FROM File WHERE projectId = :project_id",
        {"project_id": project_id},
    )
    return [_row_to_dict(row) for row in rows]


async def list_files_by_parent(
    db: databases.Database,
    project_id: str,
    parent_id: Optional[str],
) -> List[dict]:
    """Direct children of a folder (parent_id None or '' for the root)."""
    query = """
        SELECT * FROM File
        WHERE projectId = :project_id AND IFNULL(parentId, '') = :parent_id
    """
    rows = await db.fetch_all(query, {"project_id": project_id, "parent_id": parent_id or ""})
    return [_row_to_dict(row) for row in rows]


async def resolve_parent_folder(
    db: databases.Database,
    project_id: str,
    parent_id: Optional[str],
) -> Optional[dict]:
    """Check that parent_id names a folder of the project. None/'' means root."""
    if not parent_id:
        return None

    parent = await get_file(db, parent_id)
    if not parent or parent["projectId"] != project_id:
        raise NotFoundError(f'Parent folder with ID "{parent_id}" not found')
    if parent["type"] != FileType.FOLDER.value:
        raise ValidationError(f'The ID "{parent_id}" is a file, not a folder')
    return parent


async def create_file(
    db: databases.Database,
    project_id: str,
    name: str,
    content: str,
    parent_id: Optional[str] = None,
) -> str:
    """Create a text file. Raises ValidationError on a sibling name collision."""
    _require_name(name)
    await resolve_parent_folder(db, project_id, parent_id)

    siblings = await list_files_by_parent(db, project_id, parent_id)
    if _find_sibling(siblings, name, FileType.FILE):
        raise ValidationError("File already exists")

    return await _insert_node(db, project_id, parent_id, name, FileType.FILE, content)


async def create_files(
    db: databases.Database,
    project_id: str,
    files: List[Dict[str, str]],
    parent_id: Optional[str] = None,
) -> List[dict]:
    """Batch-create files in one folder.

    Collisions are reported per file; the rest of the batch is still created.
    Returns [{name, fileId, error?}] in request order.
    """
    await resolve_parent_folder(db, project_id, parent_id)

    existing = {
        node["name"]: node["id"]
        for node in await list_files_by_parent(db, project_id, parent_id)
        if node["type"] == FileType.FILE.value
    }

    results = []
    for file in files:
        name = file["name"]
        if not name or not name.strip():
            results.append({"name": name, "fileId": None, "error": "File name cannot be empty"})
            continue

        if name in existing:
            results.append({"name": name, "fileId": existing[name], "error": "File already exists"})
            continue

        file_id = await _insert_node(
            db, project_id, parent_id, name, FileType.FILE, file.get("content", "")
        )
        existing[name] = file_id
        results.append({"name": name, "fileId": file_id})

    return results


async def create_folder(
    db: databases.Database,
    project_id: str,
    name: str,
    parent_id: Optional[str] = None,
) -> str:
    """Create a folder. Raises ValidationError if a sibling folder has the name."""
    _require_name(name)
    await resolve_parent_folder(db, project_id, parent_id)

    siblings = await list_files_by_parent(db, project_id, parent_id)
    if _find_sibling(siblings, name, FileType.FOLDER):
        raise ValidationError("Folder already exists")

    return await _insert_node(db, project_id, parent_id, name, FileType.FOLDER, None)


async def rename_file(db: databases.Database, file_id: str, new_name: str) -> dict:
    """Rename a file or folder, keeping sibling (name, type) pairs unique."""
    _require_name(new_name)
    node = await get_file(db, file_id)
    if not node:
        raise NotFoundError("File not found")

    siblings = await list_files_by_parent(db, node["projectId"], node["parentId"])
    clash = _find_sibling(siblings, new_name, FileType(node["type"]), exclude_id=file_id)
    if clash:
        raise ValidationError(f'A {node["type"]} named "{new_name}" already exists')

    await db.execute(
        "UPDATE File SET name = :name, updatedAt = :updated_at WHERE id = :id",
        {"id": file_id, "name": new_name, "updated_at": _now()},
    )
    return {**node, "name": new_name}


async def update_file_content(db: databases.Database, file_id: str, content: str) -> dict:
    """Overwrite a file's text content and refresh updatedAt."""
    node = await get_file(db, file_id)
    if not node:
        raise NotFoundError("File not found")
    if node["type"] == FileType.FOLDER.value:
        raise ValidationError("Cannot update the content of a folder")

    await db.execute(
        "UPDATE File SET content = :content, updatedAt = :updated_at WHERE id = :id",
        {"id": file_id, "content": content, "updated_at": _now()},
    )
    return {**node, "content": content}


async def delete_recursive(db: databases.Database, file_id: str, storage=None) -> List[str]:
    """Delete a node and all of its descendants, children before parents.

    Uses an explicit stack instead of recursion. Each node's blob (if any) is
    released through `storage` before its record is removed. Returns the
    deleted IDs in deletion order.
    """
    root = await get_file(db, file_id)
    if not root:
        raise NotFoundError("File not found")

    # Post-order walk: a node is emitted only after all of its children
    order: List[dict] = []
    stack = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded:
            order.append(node)
            continue
        stack.append((node, True))
        if node["type"] == FileType.FOLDER.value:
            for child in await list_files_by_parent(db, node["projectId"], node["id"]):
                stack.append((child, False))

    deleted = []
    for node in order:
        if node["storageId"] and storage is not None:
            await storage.delete(node["storageId"])
        await db.execute("DELETE FROM File WHERE id = :id", {"id": node["id"]})
        deleted.append(node["id"])

    return deleted


async def _insert_node(
    db: databases.Database,
    project_id: str,
    parent_id: Optional[str],
    name: str,
    node_type: FileType,
    content: Optional[str],
    storage_id: Optional[str] = None,
) -> str:
    file_id = secrets.token_urlsafe(16)
    query = """
        INSERT INTO File (id, projectId, parentId, name, type, content, storageId, updatedAt)
        VALUES (:id, :project_id, :parent_id, :name, :type, :content, :storage_id, :updated_at)
    """
    await db.execute(query, {
        "id": file_id,
        "project_id": project_id,
        "parent_id": parent_id or None,
        "name": name,
        "type": node_type.value,
        "content": content,
        "storage_id": storage_id,
        "updated_at": _now(),
    })
    return file_id


async def create_binary_file(
    db: databases.Database,
    project_id: str,
    name: str,
    storage_id: str,
    parent_id: Optional[str] = None,
) -> str:
    """Register a file whose bytes live in blob storage."""
    _require_name(name)
    await resolve_parent_folder(db, project_id, parent_id)

    siblings = await list_files_by_parent(db, project_id, parent_id)
    if _find_sibling(siblings, name, FileType.FILE):
        raise ValidationError("File already exists")

    return await _insert_node(
        db, project_id, parent_id, name, FileType.FILE, None, storage_id=storage_id
    )


def _find_sibling(
    siblings: List[dict],
    name: str,
    node_type: FileType,
    exclude_id: Optional[str] = None,
) -> Optional[dict]:
    for sibling in siblings:
        if (
            sibling["name"] == name
            and sibling["type"] == node_type.value
            and sibling["id"] != exclude_id
        ):
            return sibling
    return None


def _require_name(name: str) -> None:
    if not name or not name.strip():
        raise ValidationError("Name cannot be empty")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "projectId": row["projectId"],
        "parentId": row["parentId"],
        "name": row["name"],
        "type": row["type"],
        "content": row["content"],
        "storageId": row["storageId"],
        "updatedAt": row["updatedAt"],
    }
