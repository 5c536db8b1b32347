from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path
import json
import os


BACKEND_DIR = Path(__file__).parent.parent.parent
SETTINGS_FILE = BACKEND_DIR / "settings.json"


def load_settings_from_file() -> dict:
    """Load settings from JSON file if exists."""
    if SETTINGS_FILE.exists():
        try:
            with open(SETTINGS_FILE) as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError):
            pass
    return {}


class Settings(BaseSettings):
    # OpenAI-compatible model endpoint
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = "gpt-4o-mini"
    title_model: str = ""  # Falls back to openai_model

    # Shared secret for every call crossing into the backend
    polaris_internal_key: str = ""

    # Storage
    database_url: str = f"sqlite:///{BACKEND_DIR / 'polaris.db'}"
    blob_storage_dir: str = str(BACKEND_DIR / "blob_storage")

    # Agent
    agent_max_iterations: int = 20
    context_message_limit: int = 10
    message_settle_delay_seconds: float = 0.0

    # Job runtime
    step_max_attempts: int = 3
    step_retry_initial_delay_ms: int = 1000

    # Server
    backend_port: int = 8000
    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    def __init__(self, **kwargs):
        # Merge: kwargs > file_settings > env vars (handled by pydantic)
        file_settings = load_settings_from_file()
        merged = {**file_settings, **kwargs}

        super().__init__(**merged)

        # Handle CORS_ORIGINS as JSON string from env
        cors_env = os.getenv("CORS_ORIGINS")
        if cors_env:
            try:
                self.cors_origins = json.loads(cors_env)
            except json.JSONDecodeError:
                pass

    @property
    def effective_title_model(self) -> str:
        return self.title_model or self.openai_model or "gpt-4o-mini"

    def get_effective_settings(self) -> dict:
        """Get current effective settings with secrets masked (for logs and health output)."""
        return {
            "openai_api_key": self._mask_key(self.openai_api_key),
            "openai_base_url": self.openai_base_url,
            "openai_model": self.openai_model,
            "title_model": self.effective_title_model,
            "polaris_internal_key": self._mask_key(self.polaris_internal_key),
            "agent_max_iterations": self.agent_max_iterations,
            "context_message_limit": self.context_message_limit,
        }

    def _mask_key(self, key: str) -> str:
        """Mask a secret key for display."""
        if not key:
            return ""
        if len(key) <= 8:
            return "*" * len(key)
        return key[:4] + "*" * (len(key) - 8) + key[-4:]


settings = Settings()
