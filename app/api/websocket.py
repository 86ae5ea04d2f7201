from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from app.errors import ApiError, Forbidden
from app.services.auth import validate_session, auth_context_for, SESSION_COOKIE_NAME
from app.services.job_access import authorize_channel

router = APIRouter(tags=["websocket"])


@router.websocket("/api/ws/{channel}")
async def websocket_endpoint(
    websocket: WebSocket,
    channel: str,
    token: str = Query(default=""),
):
    # Channels are "job:<id>" or "engineer:<id>"
    if not channel.startswith(("job:", "engineer:")):
        await websocket.close(code=4004, reason="Unknown channel")
        return

    token = token or websocket.cookies.get(SESSION_COOKIE_NAME, "")
    async with websocket.app.state.session_factory() as db:
        user = await validate_session(token, db) if token else None
        if not user:
            await websocket.close(code=4001, reason="Unauthorized")
            return
        try:
            await authorize_channel(db, auth_context_for(user), channel)
        except ApiError as e:
            await websocket.close(code=4003 if isinstance(e, Forbidden) else 4004, reason=e.message)
            return

    broadcaster = websocket.app.state.broadcaster
    await broadcaster.subscribe(channel, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        broadcaster.unsubscribe(channel, websocket)
