from typing import Any, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tabkeeper.api.endpoints import router as api_router
from tabkeeper.api.security import EXTENSION_ORIGIN_PATTERN
from tabkeeper.config import Settings, get_settings
from tabkeeper.lifespan import lifespan_factory


def create_middleware(app: FastAPI) -> None:
    """The popup runs from a chrome-extension:// origin."""
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=EXTENSION_ORIGIN_PATTERN,
        allow_methods=["*"],
        allow_headers=["*"],
    )

def create_app(settings: Optional[Settings] = None, llm_factory: Optional[Callable[[], Any]] = None) -> FastAPI:
    """
    Creates and configures the FastAPI application.
    """
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan_factory(settings, llm_factory),
    )
    create_middleware(app)
    app.include_router(api_router, prefix="/api/v1")
    return app
