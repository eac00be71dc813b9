"""
catechesis.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn catechesis.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from catechesis import __version__  # noqa: E402
from catechesis.api.deps import (  # noqa: E402
    get_catalog,
    get_config,
    get_dispatcher,
    get_engine,
)
from catechesis.api.routes.analytics import router as analytics_router  # noqa: E402
from catechesis.api.routes.community import router as community_router  # noqa: E402
from catechesis.api.routes.explanations import router as explanations_router  # noqa: E402
from catechesis.api.routes.moderation import router as moderation_router  # noqa: E402
from catechesis.database.engine import init_db  # noqa: E402
from catechesis.errors import (  # noqa: E402
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from catechesis.scheduler import PeriodicJobs  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine and background jobs."""
    engine = get_engine()
    init_db(engine)
    dispatcher = get_dispatcher()

    jobs: PeriodicJobs | None = None
    if os.getenv("CATECHESIS_DISABLE_SCHEDULER", "").lower() not in ("1", "true", "yes"):
        jobs = PeriodicJobs(engine, get_config(), get_catalog())
        jobs.start()

    logger.info("Catechesis API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("Catechesis API shutting down")
    if jobs is not None:
        await jobs.stop()
    dispatcher.shutdown(wait=True)


app = FastAPI(
    title="Catechesis Moderation API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def _not_found(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(PermissionDenied)
async def _forbidden(request: Request, exc: PermissionDenied):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def _conflict(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "code": exc.code})


@app.exception_handler(Exception)
async def _internal_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Mount routers
app.include_router(explanations_router, prefix="/api")
app.include_router(moderation_router, prefix="/api")
app.include_router(community_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
