"""
WebSocket endpoint for live queue updates.

Clients authenticate with ``/ws?token=<jwt>`` and then only receive;
anything they send is read and ignored so pings keep the socket alive.
The first message on a socket is always ``connection.ready``; events
published after it are guaranteed to reach the client.
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from printflow.dependencies.auth import decode_token
from printflow.dependencies.services import get_broadcaster
from printflow.models.base import utcnow
from printflow.services.broadcaster import RealtimeBroadcaster


router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    token: str | None = None,
    hub: RealtimeBroadcaster = Depends(get_broadcaster),
):
    payload = decode_token(token) if token else None
    if payload is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = hub.connect(websocket, user_id=payload.sub)
    connection.offer({
        "type": "connection.ready",
        "payload": {"user_id": payload.sub, "role": payload.role},
        "emitted_at": utcnow().isoformat(),
    })
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(connection)
