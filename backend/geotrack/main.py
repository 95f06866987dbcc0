from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from geotrack.api.router import api_router
from geotrack.core.errors import APIError, make_error_payload
from geotrack.core.settings import Settings, get_settings
from geotrack.db.session import dispose_engine, get_sessionmaker
from geotrack.services.broadcast import TrackingBroadcaster
from geotrack.services.enrichment import EnrichmentWorker
from geotrack.services.prefix_cache import PrefixCache
from geotrack.services.presence import PresenceTracker
from geotrack.services.resolver import GeohashResolver
from geotrack.services.store import TrackingStore


logger = logging.getLogger(__name__)


def _build_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        store = TrackingStore(get_sessionmaker())
        presence = PresenceTracker()
        app.state.store = store
        app.state.presence = presence
        app.state.broadcaster = TrackingBroadcaster()
        app.state.worker = None

        task: asyncio.Task[None] | None = None
        if settings.enrichment_enabled:
            resolver = GeohashResolver(
                store,
                city_cache=PrefixCache("city"),
                country_cache=PrefixCache("country"),
                location_cache=PrefixCache("location"),
            )
            worker = EnrichmentWorker(
                store,
                resolver,
                presence,
                interval_s=settings.enrichment_interval_s,
            )
            # Location cache must be loaded before any fix can be enqueued.
            await worker.warm_up()
            app.state.worker = worker
            task = asyncio.create_task(worker.run(), name="enrichment-worker")

        try:
            yield
        finally:
            try:
                if task is not None:
                    app.state.worker.stop()
                    await task
            finally:
                await dispose_engine()

    return lifespan


def create_app() -> FastAPI:
    settings = get_settings()
    logging.getLogger("geotrack").setLevel(settings.log_level.upper())

    app = FastAPI(title="Geotrack API", lifespan=_build_lifespan(settings))

    def _with_trace_id_header(
        headers: dict[str, str] | None, trace_id: str | None
    ) -> dict[str, str] | None:
        """Return headers merged with X-Trace-Id when trace_id is present."""

        if not trace_id:
            return headers
        merged: dict[str, str] = dict(headers or {})
        merged["X-Trace-Id"] = trace_id
        return merged

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_allow_origin],
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _trace_id_middleware(request, call_next):
        trace_id = request.headers.get("X-Trace-Id") or str(uuid.uuid4())
        request.state.trace_id = trace_id
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response

    @app.exception_handler(APIError)
    async def _api_error_handler(request, exc: APIError):
        trace_id = getattr(request.state, "trace_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code=exc.code,
                message=exc.message,
                trace_id=trace_id,
                details=exc.details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(request, exc: RequestValidationError):
        trace_id = getattr(request.state, "trace_id", None)
        return JSONResponse(
            status_code=422,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code="VALIDATION_ERROR",
                message="Request validation failed",
                trace_id=trace_id,
                details=jsonable_errors(exc),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request, exc: StarletteHTTPException):
        trace_id = getattr(request.state, "trace_id", None)
        return JSONResponse(
            status_code=exc.status_code,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code="HTTP_ERROR",
                message=exc.detail if isinstance(exc.detail, str) else "HTTP error",
                trace_id=trace_id,
                details=None,
            ),
        )

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", None)
        method = getattr(request, "method", None)
        path = getattr(getattr(request, "url", None), "path", None)
        logger.error(
            "Unhandled exception (trace_id=%s method=%s path=%s)",
            trace_id,
            method,
            path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return JSONResponse(
            status_code=500,
            headers=_with_trace_id_header(None, trace_id),
            content=make_error_payload(
                code="INTERNAL_ERROR",
                message="Internal error",
                trace_id=trace_id,
                details=None,
            ),
        )

    app.include_router(api_router)

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    # pydantic error ctx may carry exception instances; keep only plain fields.
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app = create_app()
