"""Push progress of long-running operations to the admin's open browser tabs.

Connections are kept in memory per process and keyed by admin ID; an admin
with several tabs open receives every message on each of them.
"""

import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProgressHub:
    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = defaultdict(set)

    async def connect(self, admin_id: uuid.UUID, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[str(admin_id)].add(websocket)
        logger.info("Progress socket connected for admin %s", admin_id)
        await websocket.send_json({
            "type": "connection",
            "message": "Connected to real-time updates",
            "timestamp": _now(),
        })

    def disconnect(self, admin_id: uuid.UUID, websocket: WebSocket) -> None:
        key = str(admin_id)
        self._connections[key].discard(websocket)
        if not self._connections[key]:
            del self._connections[key]
        logger.info("Progress socket disconnected for admin %s", admin_id)

    def connection_count(self, admin_id: uuid.UUID) -> int:
        return len(self._connections.get(str(admin_id), ()))

    async def send(self, admin_id: uuid.UUID, data: dict) -> None:
        message = {"type": "progress", "data": data, "timestamp": _now()}
        for websocket in list(self._connections.get(str(admin_id), ())):
            try:
                await websocket.send_json(message)
            except Exception as exc:  # a dead socket must not abort the operation
                logger.warning("Dropping progress socket for admin %s: %s", admin_id, exc)
                self.disconnect(admin_id, websocket)

    async def bulk_download_progress(self, admin_id: uuid.UUID, **progress) -> None:
        await self.send(admin_id, {"operation": "bulk_download", **progress})

    async def bulk_download_complete(self, admin_id: uuid.UUID, **result) -> None:
        await self.send(admin_id, {"operation": "bulk_download_complete", **result})

    async def bulk_download_error(self, admin_id: uuid.UUID, error: str) -> None:
        await self.send(admin_id, {"operation": "bulk_download_error", "status": "error", "error": error})


hub = ProgressHub()
