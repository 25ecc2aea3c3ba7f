# ctaflow/main.py
"""
FastAPI application exposing CTA flow editor sessions to the canvas.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ctaflow import __version__
from ctaflow.api.v1.router import api_router
from ctaflow.core.config import BUSINESS_HEADER, settings
from ctaflow.core.exceptions import (
    InvalidTransition, ReadOnlyViolation, TransportFailure, UsageLockConflict
)
from ctaflow.core.logging_config import setup_logging
from ctaflow.db.session import init_db, test_db_connection
from ctaflow.services import get_editor_sessions, set_editor_sessions
from ctaflow.services.drafts import DraftCache, SqlDraftStore
from ctaflow.services.sessions import EditorSessions

log = logging.getLogger("ctaflow")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging("ctaflow", level=settings.LOG_LEVEL)
    log.info("🚀 CTA flow editor starting")

    if get_editor_sessions() is None:
        try:
            init_db()
            if test_db_connection():
                log.info("✅ Draft cache database initialized")
        except Exception as e:
            log.error(f"❌ Database error: {e}")
            raise
        set_editor_sessions(EditorSessions(DraftCache(SqlDraftStore())))

    yield

    sessions = get_editor_sessions()
    if sessions is not None:
        sessions.close_all()
    log.info("👋 CTA flow editor stopped")


app = FastAPI(
    title="CTA Flow Builder",
    description="Visual builder core for WhatsApp CTA flows",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# ────────────────────────────────────────────
# CORS Configuration
# ────────────────────────────────────────────
# The canvas runs on a separate origin and sends X-Business-Id on every call
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", BUSINESS_HEADER],
    max_age=3600,
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


# ────────────────────────────────────────────
# Health
# ────────────────────────────────────────────

@app.get("/health", tags=["Health"])
def health():
    """Liveness probe"""
    return {
        "status": "ok",
        "version": __version__,
        "editor_ready": get_editor_sessions() is not None
    }


# ────────────────────────────────────────────
# Exception Handlers
# ────────────────────────────────────────────

@app.exception_handler(UsageLockConflict)
async def usage_lock_handler(request: Request, exc: UsageLockConflict):
    """Flow attached to live campaigns; the client should offer a fork"""
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "campaigns": exc.campaigns}
    )


@app.exception_handler(TransportFailure)
async def transport_failure_handler(request: Request, exc: TransportFailure):
    log.error(f"❌ Flow API failure on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=502,
        content={"detail": exc.message, "upstream_status": exc.status_code}
    )


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "state": exc.state, "action": exc.action}
    )


@app.exception_handler(ReadOnlyViolation)
async def read_only_handler(request: Request, exc: ReadOnlyViolation):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8100)
