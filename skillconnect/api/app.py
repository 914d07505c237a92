"""
FastAPI application entry point with health check route.
"""
import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.exceptions import RequestValidationError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from skillconnect.api.routes import account, admin, auth, realtime, reports, reviews, user_flow
from skillconnect.api.middleware.error_handler import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)
from skillconnect.jobs.expiry_sweeper import schedule_expiry_sweep
from skillconnect.jobs.scheduler import get_scheduler
from skillconnect.lib.logging import get_logger, set_correlation_id
from skillconnect.lib.metrics import get_metrics_collector
from skillconnect.lib.realtime import get_broker
from skillconnect.lib.settings import settings

logger = get_logger(__name__)


# Correlation ID middleware
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation_id to all requests for distributed tracing.
    Accepts X-Correlation-ID from incoming requests or generates a new one.
    """

    async def dispatch(self, request: Request, call_next):
        # Get correlation ID from header or generate new one
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Store in request state and logging context
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        logger.info(
            "Incoming request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None,
            }
        )

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            "Response sent",
            extra={"status_code": response.status_code}
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup/shutdown events.

    Starts the expired-request sweep when EXPIRY_SWEEP_ENABLED is set.
    """
    logger.info(f"{settings.app_name} starting up...")
    scheduler = None
    if settings.expiry_sweep_enabled:
        scheduler = get_scheduler()
        schedule_expiry_sweep(scheduler, loop=asyncio.get_running_loop())
        scheduler.start()
    yield
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info(f"{settings.app_name} shutting down...")


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Local services marketplace: requests, offers, bookings, reviews and admin reporting",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID", "Idempotent-Replayed"],
)

app.add_middleware(CorrelationIdMiddleware)


# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)


# Include routers
app.include_router(auth.router)
app.include_router(user_flow.router)
app.include_router(account.router)
app.include_router(reviews.router)
app.include_router(admin.router)
app.include_router(reports.router)
app.include_router(realtime.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok", "realtimeConnections": get_broker().subscriber_count()}


@app.get("/metrics", include_in_schema=False)
def metrics_endpoint():
    """
    Prometheus-compatible metrics endpoint.

    Metrics exposed:
    - state_transitions_total: Request and booking transitions by action
    - notifications_created_total: Persisted notifications by type
    - realtime_events_total: WebSocket deliveries by event and outcome
    """
    return PlainTextResponse(
        content=get_metrics_collector().export_prometheus(),
        media_type="text/plain; version=0.0.4; charset=utf-8"
    )
