import logging
import re
from typing import Optional

from fastapi import HTTPException, Request, WebSocket, status

logger = logging.getLogger(__name__)

# Chrome extension ids are 32 letters a-p; Firefox uses a per-install UUID.
EXTENSION_ORIGIN_PATTERN = r"^(chrome-extension://[a-p]{32}|moz-extension://[0-9a-f-]{36})/?$"
EXTENSION_ORIGIN_RE = re.compile(EXTENSION_ORIGIN_PATTERN)


def is_allowed_origin(origin: Optional[str], extension_id: Optional[str] = None) -> bool:
    """
    Browsers always send Origin on WebSocket handshakes and cross-site POSTs, so a
    missing header means a local non-browser client. Web pages (including sandboxed
    frames, whose origin is "null") are refused.
    """
    if origin is None:
        return True
    match = EXTENSION_ORIGIN_RE.match(origin)
    if not match:
        return False
    if extension_id:
        return match.group(1).split("://", 1)[1] == extension_id
    return True


def require_extension_origin(request: Request) -> None:
    """Dependency for routes that close tabs or spend model tokens."""
    origin = request.headers.get("origin")
    if not is_allowed_origin(origin, request.app.state.settings.EXTENSION_ID):
        logger.warning(f"Refused {request.method} {request.url.path} from origin {origin!r}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Origin not allowed")


async def accept_extension_origin(ws: WebSocket) -> bool:
    """Closes the handshake with 1008 unless the socket comes from the extension."""
    origin = ws.headers.get("origin")
    if is_allowed_origin(origin, ws.app.state.settings.EXTENSION_ID):
        return True
    logger.warning(f"Refused WebSocket {ws.url.path} from origin {origin!r}")
    await ws.close(code=status.WS_1008_POLICY_VIOLATION)
    return False
