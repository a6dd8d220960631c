import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from tabkeeper.core.tab_host import TabHost
from tabkeeper.error_handler import ExtensionBridgeError
from tabkeeper.models import ContextMenuClick

logger = logging.getLogger(__name__)

ContextMenuCallback = Callable[[ContextMenuClick], Awaitable[Any]]


class ExtensionBridge(TabHost):
    """
    WebSocket bridge to the browser extension, which serves as the tab host.

    The service sends `{"type": "rpc", "id", "method", "params"}` and the extension
    answers with `{"type": "rpcResult", "id", "ok", "result" | "error"}`. The extension
    also pushes `hello` on connect and `contextMenuClick` when a menu item is used.
    Only one extension connection is live at a time.
    """

    def __init__(self, rpc_timeout: float = 10.0):
        self.rpc_timeout = rpc_timeout
        self.client_info: Dict[str, Any] = {}
        self._ws: Optional[WebSocket] = None
        self._next_id = 1
        self._pending: Dict[int, asyncio.Future] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._menu_items: List[Dict[str, Any]] = []
        self._menu_callback: Optional[ContextMenuCallback] = None

    @property
    def is_connected(self) -> bool:
        return self._ws is not None

    def register_context_menu(self, items: List[Dict[str, Any]], callback: ContextMenuCallback) -> None:
        """Items are (re)created on every extension hello; clicks are routed to `callback`."""
        self._menu_items = list(items)
        self._menu_callback = callback

    # --- Tab host -----------------------------------------------------------

    async def query_tabs(self) -> List[Dict[str, Any]]:
        result = await self.rpc_call("tabs.query", {})
        if not isinstance(result, list):
            raise ExtensionBridgeError(f"tabs.query returned {type(result).__name__}, expected a list")
        return result

    async def remove_tabs(self, tab_ids: List[int]) -> None:
        await self.rpc_call("tabs.remove", {"tabIds": list(tab_ids)})

    # --- RPC ----------------------------------------------------------------

    async def rpc_call(self, method: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> Any:
        ws = self._ws
        if ws is None:
            raise ExtensionBridgeError(
                "Extension is not connected. Install/enable the extension and ensure it can reach the service."
            )

        req_id = self._next_id
        self._next_id += 1
        fut = asyncio.get_running_loop().create_future()
        self._pending[req_id] = fut

        msg: Dict[str, Any] = {"type": "rpc", "id": req_id, "method": method}
        if params:
            msg["params"] = params

        try:
            try:
                await ws.send_json(msg)
            except Exception as e:
                raise ExtensionBridgeError(f"Extension RPC send failed: {e}") from e

            try:
                return await asyncio.wait_for(fut, timeout=timeout or self.rpc_timeout)
            except asyncio.TimeoutError as e:
                raise ExtensionBridgeError(f"Extension RPC timed out: method={method}") from e
        finally:
            self._pending.pop(req_id, None)

    # --- Connection ---------------------------------------------------------

    async def serve(self, ws: WebSocket) -> None:
        """Runs one extension connection until it closes."""
        await ws.accept()
        old_ws = self._ws
        if old_ws is not None:
            logger.info("New extension connection replaces the previous one.")
            self._ws = None
            self._fail_pending("Extension connection replaced")
            try:
                await old_ws.close(code=1012)
            except Exception as e:
                logger.debug(f"Previous extension socket already gone: {e}")
        self._ws = ws
        logger.info("Extension connected.")

        try:
            while True:
                raw = await ws.receive_text()
                if self._ws is not ws:
                    logger.info("Dropping message from a replaced extension connection.")
                    break
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Ignoring non-JSON message from extension: {raw[:200]}")
                    continue
                await self.handle_message(msg)
        except WebSocketDisconnect:
            logger.info("Extension disconnected.")
        finally:
            if self._ws is ws:
                self._ws = None
                self.client_info = {}
                self._fail_pending("Extension disconnected")

    async def handle_message(self, msg: Any) -> None:
        if not isinstance(msg, dict):
            return

        mtype = msg.get("type")
        if mtype == "rpcResult":
            self._resolve(msg)
        elif mtype == "hello":
            self.client_info = {k: v for k, v in msg.items() if k != "type"}
            logger.info(f"Extension hello: {self.client_info}")
            if self._menu_items:
                self._spawn(self._create_context_menus())
        elif mtype == "contextMenuClick":
            try:
                click = ContextMenuClick.model_validate(msg)
            except ValidationError as e:
                logger.warning(f"Malformed context menu click: {e}")
                return
            if self._menu_callback:
                self._spawn(self._menu_callback(click))
        else:
            logger.debug(f"Ignoring extension message of type {mtype!r}")

    def _resolve(self, msg: Dict[str, Any]) -> None:
        try:
            req_id = int(msg.get("id"))
        except (TypeError, ValueError):
            return
        fut = self._pending.get(req_id)
        if fut is None or fut.done():
            return

        if msg.get("ok"):
            fut.set_result(msg.get("result"))
            return

        err = msg.get("error")
        err_msg = err.get("message") if isinstance(err, dict) else err
        fut.set_exception(ExtensionBridgeError(str(err_msg or "Extension RPC failed")))

    def _fail_pending(self, reason: str) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(ExtensionBridgeError(reason))

    async def _create_context_menus(self) -> None:
        try:
            await self.rpc_call("contextMenus.removeAll")
            for item in self._menu_items:
                await self.rpc_call("contextMenus.create", item)
        except ExtensionBridgeError as e:
            logger.warning(f"Failed to register context menu items: {e}")

    def _spawn(self, coro: Awaitable[Any]) -> None:
        # Handlers may issue RPCs, whose replies arrive on this same receive loop.
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Extension event handler failed: {task.exception()}")
