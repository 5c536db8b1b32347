"""Tests for the project tool set the agent calls."""

import json

import pytest

from app.agents.tools import TOOL_NAMES, TOOLS, ProjectTools
from app.db.queries import files


@pytest.fixture
def tools(db, project):
    return ProjectTools(db, project["id"])


class TestToolDefinitions:
    def test_every_definition_is_dispatchable(self):
        names = {t["function"]["name"] for t in TOOLS}
        assert names == set(TOOL_NAMES)
        assert "deleteFiles" in names


class TestValidation:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, tools):
        assert await tools.execute("formatDisk", {}) == "Error: Unknown tool: formatDisk"

    @pytest.mark.asyncio
    async def test_empty_file_ids(self, tools):
        result = await tools.execute("readFiles", {"fileIds": []})
        assert result == "Error: Provide at least one file ID"

    @pytest.mark.asyncio
    async def test_missing_folder_name(self, tools):
        result = await tools.execute("createFolder", {"name": "", "parentId": ""})
        assert result == "Error: Folder name is required"

    @pytest.mark.asyncio
    async def test_empty_file_name_in_batch(self, tools):
        result = await tools.execute(
            "createFiles", {"parentId": "", "files": [{"name": "", "content": "x"}]}
        )
        assert result == "Error: File name cannot be empty"

    @pytest.mark.asyncio
    async def test_blank_file_name_in_batch(self, db, project, tools):
        result = await tools.execute(
            "createFiles",
            {"parentId": "", "files": [{"name": "ok.txt", "content": "x"}, {"name": "   ", "content": "y"}]},
        )

        assert result == "Error: File name cannot be empty"
        assert await files.list_files_by_project(db, project["id"]) == []

    @pytest.mark.asyncio
    async def test_blank_folder_name(self, tools):
        result = await tools.execute("createFolder", {"name": " \t", "parentId": ""})
        assert result == "Error: Folder name is required"

    @pytest.mark.asyncio
    async def test_missing_field_reports_location(self, tools):
        result = await tools.execute("updateFile", {"fileId": "abc"})
        assert result.startswith("Error: content")


class TestListAndRead:
    @pytest.mark.asyncio
    async def test_folders_listed_first(self, db, project, tools):
        await files.create_file(db, project["id"], "b.txt", "")
        await files.create_file(db, project["id"], "A.txt", "")
        await files.create_folder(db, project["id"], "zeta")

        listed = json.loads(await tools.execute("listFiles", {}))

        assert [n["name"] for n in listed] == ["zeta", "A.txt", "b.txt"]
        assert set(listed[0]) == {"id", "name", "type", "parentId"}

    @pytest.mark.asyncio
    async def test_read_skips_missing_and_empty(self, db, project, tools):
        full = await files.create_file(db, project["id"], "a.txt", "hello")
        empty = await files.create_file(db, project["id"], "b.txt", "")

        result = json.loads(await tools.execute("readFiles", {"fileIds": [full, empty, "missing"]}))

        assert result == [{"id": full, "name": "a.txt", "content": "hello"}]

    @pytest.mark.asyncio
    async def test_read_nothing_found(self, tools):
        result = await tools.execute("readFiles", {"fileIds": ["missing"]})
        assert result == "Error: No files found with provided IDs. Use listFiles to get valid fileIDs."

    @pytest.mark.asyncio
    async def test_read_ignores_other_projects(self, db, tools):
        foreign = await files.create_file(db, "other-project", "secret.txt", "s3cret")

        result = await tools.execute("readFiles", {"fileIds": [foreign]})

        assert result.startswith("Error: No files found")


class TestCreate:
    @pytest.mark.asyncio
    async def test_partial_collision(self, db, project, tools):
        await files.create_file(db, project["id"], "a.txt", "old")

        result = await tools.execute(
            "createFiles",
            {
                "parentId": "",
                "files": [{"name": "a.txt", "content": "x"}, {"name": "b.txt", "content": "y"}],
            },
        )

        assert result.startswith("Created 1 file(s): b.txt (id: ")
        assert result.endswith("Failed: a.txt (File already exists)")

        names = sorted(n["name"] for n in await files.list_files_by_project(db, project["id"]))
        assert names == ["a.txt", "b.txt"]

    @pytest.mark.asyncio
    async def test_parent_is_a_file(self, db, project, tools):
        file_id = await files.create_file(db, project["id"], "a.txt", "")

        result = await tools.execute(
            "createFiles", {"parentId": file_id, "files": [{"name": "c.txt", "content": ""}]}
        )

        assert result == (
            f'Error: The ID "{file_id}" is a file, not a folder. Use a folder ID as parentId.'
        )
        assert len(await files.list_files_by_project(db, project["id"])) == 1

    @pytest.mark.asyncio
    async def test_unknown_parent(self, tools):
        result = await tools.execute("createFolder", {"name": "src", "parentId": "nope"})
        assert result == (
            'Error: Parent folder with ID "nope" not found. Use listFiles to get valid folder IDs.'
        )

    @pytest.mark.asyncio
    async def test_create_folder(self, db, tools):
        result = await tools.execute("createFolder", {"name": "src", "parentId": ""})

        assert result.startswith("Folder created with ID: ")
        folder_id = result.rsplit(" ", 1)[-1]
        assert (await files.get_file(db, folder_id))["type"] == "folder"

    @pytest.mark.asyncio
    async def test_duplicate_folder(self, tools):
        await tools.execute("createFolder", {"name": "src", "parentId": ""})

        result = await tools.execute("createFolder", {"name": "src", "parentId": ""})

        assert result == "Error creating folder: Folder already exists"


class TestUpdateRenameDelete:
    @pytest.mark.asyncio
    async def test_update_file(self, db, project, tools):
        file_id = await files.create_file(db, project["id"], "a.txt", "old")

        result = await tools.execute("updateFile", {"fileId": file_id, "content": "new"})

        assert result == 'File "a.txt" updated successfully'
        assert (await files.get_file(db, file_id))["content"] == "new"

    @pytest.mark.asyncio
    async def test_update_folder(self, db, project, tools):
        folder_id = await files.create_folder(db, project["id"], "src")

        result = await tools.execute("updateFile", {"fileId": folder_id, "content": "x"})

        assert result == (
            f'Error: "{folder_id}" is a folder, not a file. You can only update file contents.'
        )

    @pytest.mark.asyncio
    async def test_update_missing(self, tools):
        result = await tools.execute("updateFile", {"fileId": "missing", "content": "x"})
        assert result == 'Error: File with ID "missing" not found. Use listFiles to get valid file IDs.'

    @pytest.mark.asyncio
    async def test_rename(self, db, project, tools):
        folder_id = await files.create_folder(db, project["id"], "src")

        result = await tools.execute("renameFile", {"fileId": folder_id, "newName": "lib"})

        assert result == 'Renamed folder "src" to "lib"'

    @pytest.mark.asyncio
    async def test_rename_collision(self, db, project, tools):
        await files.create_file(db, project["id"], "a.txt", "")
        file_id = await files.create_file(db, project["id"], "b.txt", "")

        result = await tools.execute("renameFile", {"fileId": file_id, "newName": "a.txt"})

        assert result == 'Error renaming file: A file named "a.txt" already exists'

    @pytest.mark.asyncio
    async def test_delete_continues_past_failures(self, db, project, storage):
        tools = ProjectTools(db, project["id"], storage=storage)
        folder_id = await files.create_folder(db, project["id"], "assets")
        await files.create_binary_file(db, project["id"], "logo.png", "blob-1", parent_id=folder_id)
        file_id = await files.create_file(db, project["id"], "a.txt", "")

        result = await tools.execute("deleteFiles", {"fileIds": ["missing", folder_id, file_id]})

        assert result.startswith("Deleted 2 of 3 item(s): assets (2 item(s)), a.txt (1 item(s))")
        assert result.endswith("Failed: missing (File not found)")
        assert storage.deleted == ["blob-1"]
        assert await files.list_files_by_project(db, project["id"]) == []
