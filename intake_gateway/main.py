"""
Intake Gateway - Main Application Entry Point

Receives voice AI platform callbacks for customer calls, classifies each
call and alerts on-call staff by SMS.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from intake_gateway.core.config import Settings, settings
from intake_gateway.core.logging import setup_logging, get_logger
from intake_gateway.core.exceptions import (
    IntakeGatewayException,
    CircuitOpenError,
    RateLimitError
)
from intake_gateway.api.routes import webhooks, health
from intake_gateway.api.middleware.rate_limit import RateLimiter
from intake_gateway.api.middleware.webhook_security import SignatureVerifier
from intake_gateway.db import StorageSink, create_storage
from intake_gateway.reliability import CircuitRegistry
from intake_gateway.services.event_handlers import EventHandlers
from intake_gateway.services.notification_service import NotificationFanOut, SMS_CIRCUIT
from intake_gateway.services.record_writer import RecordWriter, STORAGE_CIRCUIT
from intake_gateway.services.telephony.sms_gateway import SmsGateway, create_sms_gateway
from intake_gateway.services.tool_calls import ToolCallProcessor

# Setup logging
setup_logging()
logger = get_logger(__name__)

SHUTDOWN_DRAIN_SECONDS = 30.0


def create_app(
    config: Optional[Settings] = None,
    storage: Optional[StorageSink] = None,
    sms_gateway: Optional[SmsGateway] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """
    Build the application

    Args:
        config: Settings (defaults to the environment)
        storage: Storage sink (defaults to Supabase when configured, else in-memory)
        sms_gateway: SMS gateway (defaults to Twilio when configured, else dry-run)
        sleep: Sleep used between retries
        clock: Wall clock used for quotes and event defaults
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler for startup and shutdown events
        """
        # Startup
        logger.info("=" * 60)
        logger.info(f"Starting Intake Gateway for {config.company_name}")
        logger.info(f"Version: {config.app_version}")
        logger.info(f"Environment: {config.environment}")
        logger.info(f"Storage: {'supabase' if config.supabase_configured else 'in-memory'}")
        logger.info(f"SMS: {'twilio' if config.twilio_configured else 'dry-run'}")
        logger.info(f"Alert tiers: {', '.join(config.alert_priority_tiers)}")
        logger.info("=" * 60)

        if not config.vapi_webhook_secret:
            logger.error("VAPI_WEBHOOK_SECRET is not set, webhook events will be refused")

        circuits = CircuitRegistry.from_settings(config)
        circuits.get(SMS_CIRCUIT)
        circuits.get(STORAGE_CIRCUIT)

        store = storage or create_storage(config)
        if not await store.connect():
            logger.error("Storage sink unavailable at startup")

        gateway = sms_gateway or create_sms_gateway(config)
        extra = {"clock": clock} if clock else {}

        record_writer = RecordWriter.from_settings(store, circuits, config, sleep=sleep)
        fanout = NotificationFanOut.from_settings(gateway, circuits, config, sleep=sleep)
        tool_processor = ToolCallProcessor(fanout, record_writer, config, **extra)
        handlers = EventHandlers(record_writer, fanout, tool_processor, config, **extra)

        app.state.config = config
        app.state.circuits = circuits
        app.state.storage = store
        app.state.record_writer = record_writer
        app.state.fanout = fanout
        app.state.dispatcher = handlers.dispatcher()
        app.state.signature_verifier = SignatureVerifier.from_settings(config)
        app.state.rate_limiter = RateLimiter(requests_per_minute=config.webhook_requests_per_minute)

        logger.info("All services initialized successfully")

        yield

        # Shutdown
        logger.info("Shutting down Intake Gateway")
        await fanout.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
        await store.disconnect()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Intake Gateway API",
        description="""
        ## Customer Intake Gateway

        Authenticated webhook endpoint for the voice AI agent answering
        customer calls.

        ### Features

        - **Signed webhooks**: HMAC-SHA256/512 over the raw body
        - **Typed events**: call lifecycle, transcripts and tool calls
        - **Business rules**: service validation, priority, quotes, scheduling
        - **Staff alerts**: SMS fan-out with retries and circuit breaking
        """,
        version=config.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    # Custom Exception Handlers
    @app.exception_handler(IntakeGatewayException)
    async def intake_gateway_exception_handler(request: Request, exc: IntakeGatewayException):
        """Handle custom intake gateway exceptions"""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(f"IntakeGatewayException: {exc.error_code} - {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict()
        )

    @app.exception_handler(RateLimitError)
    async def rate_limit_exception_handler(request: Request, exc: RateLimitError):
        """Handle rate limit errors"""
        logger.warning(f"RateLimitError: {exc.message}")
        retry_after = exc.details.get("retry_after_seconds", 60)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"Retry-After": str(retry_after)}
        )

    @app.exception_handler(CircuitOpenError)
    async def circuit_open_exception_handler(request: Request, exc: CircuitOpenError):
        """Handle fast-failed downstream calls"""
        logger.error(f"CircuitOpenError: {exc.message}")
        retry_after = max(int(exc.details.get("retry_after_seconds", 0)), 1)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers={"Retry-After": str(retry_after)}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "details": {"exception": str(exc)} if config.debug else {}
                }
            }
        )

    # Include routers
    app.include_router(health.router)
    app.include_router(webhooks.router, prefix="/api/v1")

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "service": "Intake Gateway",
            "version": config.app_version,
            "docs": "/docs",
            "health": "/health",
            "webhook": "/api/v1/webhooks/vapi"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "intake_gateway.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug
    )
