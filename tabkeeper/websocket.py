import logging
from typing import Any, Dict, List
from fastapi import WebSocket

logger = logging.getLogger(__name__)

class ConnectionManager:
    """Tracks open popup connections."""

    def __init__(self):
        self.conns: List[WebSocket] = []

    async def connect(self, ws: WebSocket):
        await ws.accept()
        self.conns.append(ws)

    def disconnect(self, ws: WebSocket):
        if ws in self.conns:
            self.conns.remove(ws)

    async def broadcast(self, message: Dict[str, Any]):
        for c in list(self.conns):
            try:
                await c.send_json(message)
            except Exception as e:
                logger.debug(f"Dropping popup connection after failed send: {e}")
                self.disconnect(c)
