import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, Callable, Optional

from fastapi import FastAPI

from tabkeeper.config import Settings
from tabkeeper.core.tab_host import TabCloser, TabSnapshotProvider
from tabkeeper.extension_bridge import ExtensionBridge
from tabkeeper.llm_manager import create_llm
from tabkeeper.services.context_menu import CONTEXT_MENU_ITEMS, ContextMenuHandler
from tabkeeper.services.inference import InferenceService
from tabkeeper.services.orchestrator import ActionOrchestrator
from tabkeeper.websocket import ConnectionManager

logger = logging.getLogger(__name__)


def initialize_services(app: FastAPI, settings: Settings, llm_factory: Optional[Callable[[], Any]] = None):
    """Builds the long-lived services once and stores them on app.state."""
    bridge = ExtensionBridge(rpc_timeout=settings.HOST_TIMEOUT_SECONDS)
    inference = InferenceService(llm_factory or partial(create_llm, settings))

    app.state.settings = settings
    app.state.bridge = bridge
    app.state.inference = inference
    app.state.popups = ConnectionManager()
    app.state.orchestrator = ActionOrchestrator(
        snapshot_provider=TabSnapshotProvider(bridge, timeout=settings.HOST_TIMEOUT_SECONDS),
        closer=TabCloser(bridge, timeout=settings.HOST_TIMEOUT_SECONDS),
        stale_threshold_millis=settings.STALE_THRESHOLD_MILLIS,
    )
    bridge.register_context_menu(CONTEXT_MENU_ITEMS, ContextMenuHandler(inference, bridge))


def lifespan_factory(settings: Settings, llm_factory: Optional[Callable[[], Any]] = None):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 {settings.APP_NAME} {settings.VERSION} starting up...")
        initialize_services(app, settings, llm_factory)
        yield
        logger.info("Application shutdown")
        app.state.inference.interrupt()
    return lifespan
