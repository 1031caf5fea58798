import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from certgen.auth.dependencies import authenticate_token
from certgen.database import get_db
from certgen.progress.hub import hub

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def progress_socket(
    websocket: WebSocket,
    token: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Real-time progress channel; authenticate with ``/ws?token=<jwt>``."""
    admin = await authenticate_token(db, token) if token else None
    # Release the connection; the socket may stay open for hours
    await db.close()
    if admin is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication failed")
        return

    await hub.connect(admin.id, websocket)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.debug("Progress socket closed for admin %s", admin.id)
    finally:
        hub.disconnect(admin.id, websocket)
