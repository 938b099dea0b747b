from __future__ import annotations

from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from deploywatch.apps.api.errors import (
    deploywatch_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from deploywatch.apps.api.response import API_VERSION
from deploywatch.apps.api.routes.cron import router as cron_router
from deploywatch.apps.api.routes.health import router as health_router
from deploywatch.apps.api.routes.ops import router as ops_router
from deploywatch.core.config import get_settings
from deploywatch.core.errors import DeployWatchError
from deploywatch.core.logging import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=get_settings().app_name)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        # Preserve incoming request IDs or assign a new one for traceability.
        request_id = request.headers.get("X-Request-Id") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(DeployWatchError, deploywatch_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(health_router, prefix=f"/{API_VERSION}")
    app.include_router(ops_router, prefix=f"/{API_VERSION}")
    # Schedulers call the cron path unversioned and read the raw summary body.
    app.include_router(cron_router)

    return app


app = create_app()
