"""
Shaadi Mantrana — FastAPI Application Entry Point

- structlog JSON logging, with a per-request id bound into the context
- Lifespan: wait for the database on startup, drain requests and dispose the
  pool on shutdown
- Request-id / logging middleware, wall-clock timeout, CORS
- Health probes: ``/health`` (liveness) and ``/health/deep`` (database and
  schema revision)
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from mantrana.config import Settings, get_settings
from mantrana.database import (
    dispose_engine,
    get_engine,
    get_session_factory,
    wait_for_database,
)

settings = get_settings()


def configure_logging(settings: Settings) -> None:
    """JSON lines on stdout, filtered at ``LOG_LEVEL``."""
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # SQLAlchemy, uvicorn and alembic log through the stdlib.
    logging.basicConfig(level=level, format="%(levelname)s %(name)s %(message)s")


configure_logging(settings)
logger = structlog.get_logger("mantrana")


class InFlightRequests:
    """Counts requests in progress so shutdown can wait for them."""

    def __init__(self, drain_timeout: float = 15.0) -> None:
        self.drain_timeout = drain_timeout
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def enter(self) -> None:
        self._count += 1

    def leave(self) -> None:
        self._count -= 1

    async def drain(self) -> None:
        deadline = time.monotonic() + self.drain_timeout
        while self._count > 0:
            if time.monotonic() >= deadline:
                logger.warning("drain_timeout_exceeded", remaining_requests=self._count)
                return
            await asyncio.sleep(0.25)


in_flight = InFlightRequests()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "startup_begin",
        environment=settings.ENVIRONMENT,
        daily_like_limit=settings.DAILY_LIKE_LIMIT,
    )
    await wait_for_database(get_engine(), attempts=settings.DB_CONNECT_ATTEMPTS)
    logger.info("startup_complete")

    yield

    logger.info("shutdown_begin", in_flight=in_flight.count)
    await in_flight.drain()
    await dispose_engine()
    logger.info("shutdown_complete")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for every log line and record the outcome."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        start = time.perf_counter()

        in_flight.enter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_error",
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise
        finally:
            in_flight.leave()

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_handled",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return response


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Answer 504 when a request runs past ``REQUEST_TIMEOUT_SECONDS``."""

    def __init__(self, app, timeout_seconds: float) -> None:
        super().__init__(app)
        self.timeout_seconds = timeout_seconds

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("request_timeout", timeout=self.timeout_seconds)
            return JSONResponse(status_code=504, content={"detail": "Request timed out"})


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Shaadi Mantrana",
    description="Mutual-match core: likes, connections and match toasts",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# Last added runs first: CORS, then timeout, then request context.
app.add_middleware(RequestContextMiddleware)
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["health"])
async def health_liveness() -> dict:
    return {"status": "healthy"}


@app.get("/health/deep", tags=["health"])
async def health_deep() -> dict:
    """Readiness: the database answers and reports its Alembic revision."""
    result: dict = {"status": "healthy", "database": "connected", "schema_revision": None}

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
            try:
                result["schema_revision"] = await session.scalar(
                    text("SELECT version_num FROM alembic_version")
                )
            except DBAPIError:
                result["schema_revision"] = "unversioned"
    except Exception as exc:
        logger.error("health_db_failure", error=str(exc))
        result["database"] = f"error: {exc}"
        result["status"] = "degraded"

    return result


from mantrana.api.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")
