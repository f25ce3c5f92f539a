"""FastAPI application factory with role-based route mounting."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Literal

from fastapi import FastAPI, Request, Response

from guestcomms.bootstrap import Engine, build_engine
from guestcomms.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from guestcomms.observability.logging import get_logger

from .routers import public, worker

AppRole = Literal["public", "worker"]

logger = get_logger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _scheduler_enabled() -> bool:
    return os.environ.get("RUN_AUTOMATION_SCHEDULER", "").strip().lower() in _TRUTHY


def create_app(
    role: AppRole | None = None,
    engine: Engine | None = None,
    run_scheduler: bool | None = None,
) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads from APP_ROLE env var.
              Defaults to "public" if env var is not set.
        engine: Prebuilt automation engine (worker role). Built lazily on
                first request if omitted.
        run_scheduler: Start the periodic jobs with the app. If None, reads
                RUN_AUTOMATION_SCHEDULER. Worker role only.

    Returns:
        Configured FastAPI application.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]
    if run_scheduler is None:
        run_scheduler = _scheduler_enabled()
    run_scheduler = run_scheduler and role == "worker"

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not run_scheduler:
            yield
            return
        if getattr(app.state, "engine", None) is None:
            app.state.engine = build_engine()
        app.state.engine.scheduler.start()
        try:
            yield
        finally:
            app.state.engine.scheduler.stop()

    app = FastAPI(
        title="Guestcomms",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    # Mount public routes (always)
    app.include_router(public.router)

    # Mount worker routes only for worker role
    if role == "worker":
        app.include_router(worker.router)

    logger.info("app created", extra={"extra_fields": {"role": role}})
    return app
