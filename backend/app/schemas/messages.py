"""Message enums shared by the store, the job and the API."""

from enum import Enum


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class FileType(str, Enum):
    FILE = "file"
    FOLDER = "folder"
