"""Dependency injection for API routes."""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.services.message_dispatch import MessageDispatcher

# Rate limiter shared by the app and the routes
limiter = Limiter(key_func=get_remote_address)


def get_dispatcher(request: Request) -> MessageDispatcher:
    """The dispatcher built at startup."""
    return request.app.state.dispatcher
