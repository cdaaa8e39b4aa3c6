"""
SeeReal Core API
================

HTTP surface for the browser extension.

Endpoints:
- POST /messages  - Run one command message {type, payload}
- GET  /health    - Health check

Run with:
    uvicorn seereal.api:app --host 0.0.0.0 --port 8000
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .commands import CommandDispatcher
from .config import get_settings
from .coordinator import AnalysisCoordinator
from .db.store import SqlStorage
from .errors import SeeRealError
from .jobs.queue import BackgroundQueue
from .llm_client import ModelClient
from .schemas import CommandMessage, ErrorResponse, HealthResponse

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="SeeReal Core",
    description="Article bias analysis, debate cards and history for the SeeReal extension",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


CORS_ALLOW_ORIGINS = _parse_cors_origins(get_settings().cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# Lifecycle
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Open storage and wire the coordinator"""
    settings = get_settings()
    logger.info(f"Starting SeeReal Core v{settings.service_version}")

    for warning in settings.validate_llm_config():
        logger.warning(f"Config: {warning}")

    storage = SqlStorage(
        settings.database_url,
        history_limit=settings.debate_history_limit,
        echo=settings.sql_echo,
    )
    await asyncio.to_thread(storage.open)
    logger.info("Analysis store ready")

    client = ModelClient(settings)
    queue = BackgroundQueue()
    coordinator = AnalysisCoordinator(storage, client, queue=queue, settings=settings)

    app.state.storage = storage
    app.state.model_client = client
    app.state.queue = queue
    app.state.coordinator = coordinator
    app.state.dispatcher = CommandDispatcher(coordinator)


@app.on_event("shutdown")
async def shutdown_event():
    """Drain background jobs and release resources"""
    settings = get_settings()

    queue = getattr(app.state, "queue", None)
    if queue is not None:
        await queue.drain(timeout=settings.shutdown_drain_timeout)
        cancelled = await queue.cancel_all()
        if cancelled:
            logger.warning(f"Cancelled {cancelled} background jobs on shutdown")

    client = getattr(app.state, "model_client", None)
    if client is not None:
        await client.close()

    storage = getattr(app.state, "storage", None)
    if storage is not None:
        await asyncio.to_thread(storage.close)

    logger.info("SeeReal Core stopped")


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        llm_configured=settings.has_gemini_key,
        timestamp=datetime.now(),
    )


@app.post(
    "/messages",
    tags=["Messages"],
    summary="Run one extension command",
    responses={
        400: {"model": ErrorResponse, "description": "Unknown command or missing API key"},
        422: {"model": ErrorResponse, "description": "Invalid payload"},
        502: {"model": ErrorResponse, "description": "Model failure"},
    },
)
async def handle_message(message: CommandMessage, request: Request):
    """
    Dispatch ``{type, payload}`` to the coordinator.

    Successful responses wrap the result as ``{"data": ...}``; failures use
    the shared error envelope.
    """
    dispatcher: CommandDispatcher = request.app.state.dispatcher
    data = await dispatcher.dispatch(message.type, message.payload)
    return {"data": data}


# =============================================================================
# Error handling
# =============================================================================

def _build_error_payload(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        }
    }


@app.exception_handler(SeeRealError)
async def seereal_exception_handler(request: Request, exc: SeeRealError):
    """Structured errors for core failures"""
    if exc.http_status >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    details = {"retryable": exc.retryable}
    if exc.details is not None:
        details["info"] = exc.details
    return JSONResponse(
        status_code=exc.http_status,
        content=_build_error_payload(exc.code, exc.message, details),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler - always return valid JSON"""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc.__class__.__name__)
    return JSONResponse(
        status_code=500,
        content=_build_error_payload(
            "internal_error",
            "Internal server error",
            {"exception": exc.__class__.__name__},
        ),
    )
