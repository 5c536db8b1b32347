from abc import ABC, abstractmethod
from pathlib import Path
import asyncio
import logging

logger = logging.getLogger(__name__)


class BlobStorage(ABC):
    @abstractmethod
    async def delete(self, storage_id: str) -> None:
        """Release the blob behind a file node. Missing blobs are not an error."""
        ...


class LocalBlobStorage(BlobStorage):
    """Blob storage backed by a local directory, one file per storage ID."""

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, storage_id: str) -> Path:
        path = (self.base_path / storage_id).resolve()
        # Ensure path is within base_path (prevent traversal)
        if path.parent != self.base_path:
            raise ValueError(f"Invalid storage ID: {storage_id}")
        return path

    async def delete(self, storage_id: str) -> None:
        path = self._path_for(storage_id)
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.debug("Released blob %s", storage_id)
