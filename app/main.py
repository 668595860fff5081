"""
Main application entry point - FastAPI app instance and configuration.
This is where the ASGI application is created and configured.
Run with: uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.routers import drive, google_auth, transfers, users
from app.services.transfer import (
    ExternalProviderError,
    InvalidManifestError,
    InvalidParticipantsError,
    InvalidStateTransitionError,
    NotFoundError,
    PersistenceError,
    TransferError,
    UnauthorizedError,
    build_transfer_orchestrator,
)

# ---------------------------------------------------------------------------
# LOGGING
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="[%(asctime)s] %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("handoff.main")


# ---------------------------------------------------------------------------
# LIFESPAN
# ---------------------------------------------------------------------------
# Startup: create the transfer orchestrator (unless one was installed on
# app.state beforehand, as tests do) and start the expired-session sweep.
# Shutdown: stop the sweep and every running batch.
@asynccontextmanager
async def lifespan(app: FastAPI):
    orchestrator = getattr(app.state, "transfer_orchestrator", None)
    if orchestrator is None:
        orchestrator = build_transfer_orchestrator()
        app.state.transfer_orchestrator = orchestrator

    if settings.EXPIRED_SESSION_SWEEP_INTERVAL_SECONDS > 0:
        orchestrator.start_expiry_loop(settings.EXPIRED_SESSION_SWEEP_INTERVAL_SECONDS)
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")

    yield

    await orchestrator.stop()
    logger.info(f"{settings.APP_NAME} stopped")


# ---------------------------------------------------------------------------
# CREATE FASTAPI APPLICATION
# ---------------------------------------------------------------------------
app = FastAPI(
    title=settings.APP_NAME,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# CORS MIDDLEWARE
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# ERROR HANDLING
# ---------------------------------------------------------------------------
# Transfer errors become {"success": false, "error": kind, "message": ...}.
# "detail" (diagnostics) is added only outside production.
ERROR_STATUS_CODES: dict[type[TransferError], int] = {
    NotFoundError: 404,
    UnauthorizedError: 403,
    InvalidStateTransitionError: 409,
    InvalidManifestError: 422,
    InvalidParticipantsError: 422,
    ExternalProviderError: 502,
    PersistenceError: 500,
}


def status_code_for(error: TransferError) -> int:
    for error_cls in type(error).__mro__:
        if error_cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_cls]
    return 500


@app.exception_handler(TransferError)
async def transfer_error_handler(request: Request, exc: TransferError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind} {exc.detail or ''}")
    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(include_detail=settings.expose_error_details),
    )


# ---------------------------------------------------------------------------
# REGISTER ROUTERS
# ---------------------------------------------------------------------------
# google_auth.router: /auth/google sign-in, callback, status, disconnect
# users.router: /users/me
# drive.router: /drive/files browsing for senders
# transfers.router: /transfers session lifecycle and progress
app.include_router(google_auth.router)
app.include_router(users.router)
app.include_router(drive.router)
app.include_router(transfers.router)


# ---------------------------------------------------------------------------
# HEALTH CHECK ENDPOINT
# ---------------------------------------------------------------------------
@app.get("/health", tags=["health"])
def health_check():
    """
    Simple liveness check for load balancers and container probes.

    Does NOT check database connectivity.

    Returns:
        {"status": "ok"}
    """
    return {"status": "ok"}
