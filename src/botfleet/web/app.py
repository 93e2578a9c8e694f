from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from botfleet.control import ControlPlane
from botfleet.sessions import TenantNotFoundError
from botfleet.settings import Settings
from botfleet.web.routes import router, tenant_not_found_handler

logger = logging.getLogger("botfleet.web")


def create_app(settings: Optional[Settings] = None, control: Optional[ControlPlane] = None) -> FastAPI:
    settings = settings or Settings()
    control = control or ControlPlane.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("botfleet_starting")
        await control.startup()
        try:
            yield
        finally:
            logger.info("botfleet_shutting_down")
            await control.shutdown()

    app = FastAPI(title="botfleet", lifespan=lifespan)
    app.state.settings = settings
    app.state.control = control

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TenantNotFoundError, tenant_not_found_handler)
    app.include_router(router)

    @app.get("/health")
    async def health() -> dict[str, object]:
        return {
            "status": "healthy",
            "sessions": control.registry.session_count(),
            "supervisors": len(control.directory),
        }

    return app
