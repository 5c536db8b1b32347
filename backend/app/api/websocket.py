from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.core.errors import ConfigurationError, UnauthorizedError
from app.core.security import validate_internal_key
from app.services.event_bus import event_bus

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, key: Optional[str] = None):
    """Stream agent events. The internal key is passed as the `key` query parameter."""
    try:
        validate_internal_key(key)
    except (ConfigurationError, UnauthorizedError):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await event_bus.connect(websocket)
    try:
        while True:
            # Keep connection alive; clients do not send anything meaningful
            await websocket.receive_text()
    except WebSocketDisconnect:
        await event_bus.disconnect(websocket)
