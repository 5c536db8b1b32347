"""Internal shared-secret trust boundary."""

import secrets
from typing import Optional

from fastapi import Header, HTTPException

from app.core.config import settings
from app.core.errors import ConfigurationError, UnauthorizedError


def get_internal_key() -> str:
    """Return the configured internal key or raise ConfigurationError."""
    key = settings.polaris_internal_key
    if not key:
        raise ConfigurationError("POLARIS_INTERNAL_KEY is not configured")
    return key


def validate_internal_key(key: Optional[str]) -> None:
    """Compare a caller-supplied key with the configured one."""
    expected = get_internal_key()
    if not key or not secrets.compare_digest(key, expected):
        raise UnauthorizedError("Invalid internal key")


async def require_internal_key(x_internal_key: Optional[str] = Header(default=None)) -> None:
    """FastAPI dependency guarding every /api route."""
    try:
        validate_internal_key(x_internal_key)
    except ConfigurationError:
        raise HTTPException(status_code=500, detail="Internal key not configured")
    except UnauthorizedError:
        raise HTTPException(status_code=401, detail="Unauthorized")
