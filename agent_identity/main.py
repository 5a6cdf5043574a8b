"""FastAPI application wiring for the agent identity service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .bootstrap import build_services
from .config import get_settings
from .metrics import LOCK_CHECK_FAILURES
from .repository import PostgresRepository

logger = logging.getLogger(__name__)

settings = get_settings()


def _count_lock_check_failure(exc: Exception) -> None:
    LOCK_CHECK_FAILURES.inc()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the Postgres pool and build the identity services for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.identity = build_services(
        PostgresRepository(pool),
        settings.security_policy(),
        on_lock_error=_count_lock_check_failure,
    )
    logger.info("%s %s ready", settings.app_name, settings.version)
    try:
        yield
    finally:
        pool.close()
        pool.wait_close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for the local agent console
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Authorization", "Content-Type"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


app.include_router(v1_router)


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
