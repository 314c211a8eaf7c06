from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI
from fastapi.responses import Response

from .routers import router as api_router
from .services.session_registry import session_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = session_registry.settings
    logger.info("Projects directory: %s", settings.projects_dir)
    logger.info("Working directory: %s", settings.work_dir)
    logger.info("Oven ledger: %s", settings.oven_ledger_path)
    yield
    # Shutdown
    session_registry.close_all()


def create_app() -> FastAPI:
    app = FastAPI(title="Lab Sample Entry", version="1.0.0", lifespan=lifespan)
    app.include_router(api_router)

    @app.get("/health")
    def health() -> Dict[str, object]:
        return {"status": "ok", "open_sessions": session_registry.open_jobs()}

    @app.get("/favicon.ico", include_in_schema=False)
    def favicon() -> Response:
        """Return an empty response so browsers stop logging 404 errors."""

        return Response(status_code=204)

    return app


app = create_app()
