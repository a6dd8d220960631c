import asyncio
import json
import logging
from typing import Any, Dict, Set

import requests
from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from tabkeeper.api.security import accept_extension_origin, require_extension_origin
from tabkeeper.error_handler import InferenceError
from tabkeeper.models import ActionResult, ClassifyRequest, ClassifyResult
from tabkeeper.services.inference import InferenceService
from tabkeeper.services.orchestrator import ActionOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter()
guarded = [Depends(require_extension_origin)]


def get_orchestrator(request: Request) -> ActionOrchestrator:
    return request.app.state.orchestrator

def get_inference(request: Request) -> InferenceService:
    return request.app.state.inference


@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "version": request.app.version,
        "extension_connected": request.app.state.bridge.is_connected,
    }

@router.get("/models")
async def get_models(request: Request):
    """Lists the models the local Ollama instance has pulled."""
    url = f"{request.app.state.settings.OLLAMA_BASE_URL}/api/tags"
    try:
        r = await asyncio.to_thread(requests.get, url, timeout=2)
        r.raise_for_status()
        return r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Could not list Ollama models: {e}")
        return {"models": []}


@router.post("/tabs/remove-duplicates", response_model=ActionResult, dependencies=guarded)
async def remove_duplicates(request: Request, orchestrator: ActionOrchestrator = Depends(get_orchestrator)):
    result = await orchestrator.remove_duplicates()
    await request.app.state.popups.broadcast({"status": "tabs", **result.model_dump()})
    return result

@router.post("/tabs/close-stale", response_model=ActionResult, dependencies=guarded)
async def close_stale_tabs(request: Request, orchestrator: ActionOrchestrator = Depends(get_orchestrator)):
    result = await orchestrator.close_stale_tabs()
    await request.app.state.popups.broadcast({"status": "tabs", **result.model_dump()})
    return result


@router.post("/classify", response_model=ClassifyResult, dependencies=guarded)
async def classify(req: ClassifyRequest, inference: InferenceService = Depends(get_inference)):
    try:
        return await inference.classify(req.text)
    except InferenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

@router.post("/classify/interrupt", dependencies=guarded)
async def interrupt(inference: InferenceService = Depends(get_inference)):
    return {"interrupted": inference.interrupt()}


@router.websocket("/ws/extension")
async def extension_ws(ws: WebSocket):
    if not await accept_extension_origin(ws):
        return
    await ws.app.state.bridge.serve(ws)


@router.websocket("/ws/popup")
async def popup_ws(ws: WebSocket):
    """
    Popup channel. Accepts {"action": "classify", "text"}, {"action": "interrupt"},
    {"action": "removeDuplicates"} and {"action": "closeStaleTabs"}.
    """
    if not await accept_extension_origin(ws):
        return
    state = ws.app.state
    await state.popups.connect(ws)
    tasks: Set[asyncio.Task] = set()

    def spawn(coro):
        task = asyncio.create_task(coro)
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    try:
        while True:
            raw = await ws.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring non-JSON popup message")
                continue
            if not isinstance(message, dict):
                continue

            action = message.get("action")
            if action == "classify":
                text = message.get("text")
                if isinstance(text, str) and text:
                    spawn(_stream_classification(ws, state.inference, text))
            elif action == "interrupt":
                state.inference.interrupt()
            elif action == "removeDuplicates":
                spawn(_send_action_result(ws, state.orchestrator.remove_duplicates()))
            elif action == "closeStaleTabs":
                spawn(_send_action_result(ws, state.orchestrator.close_stale_tabs()))
    except WebSocketDisconnect:
        logger.debug("Popup disconnected")
    finally:
        state.popups.disconnect(ws)
        for task in list(tasks):
            task.cancel()


async def _stream_classification(ws: WebSocket, inference: InferenceService, text: str) -> None:
    async def send(update: Dict[str, Any]) -> None:
        await ws.send_json(update)

    try:
        result = await inference.classify(text, callback=send)
    except InferenceError as e:
        logger.error(f"Classification failed: {e}")
        await ws.send_json({"status": "error", "error": str(e)})
        return
    await ws.send_json(result.model_dump(by_alias=True))

async def _send_action_result(ws: WebSocket, action) -> None:
    result = await action
    await ws.send_json({"status": "tabs", **result.model_dump()})
