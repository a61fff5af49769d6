"""FastAPI application factory.

Run with ``uvicorn detailing_billing.main:create_app --factory``.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import stripe
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from detailing_billing.adapters.stripe_adapter import PaymentGateway, StripeGateway
from detailing_billing.api.v1 import addons, health
from detailing_billing.api.webhooks import stripe as stripe_webhooks
from detailing_billing.auth.jwt import JWTAuth
from detailing_billing.config import Settings, get_settings
from detailing_billing.database import create_engine_from_settings, create_session_factory
from detailing_billing.errors import ConfigurationError
from detailing_billing.middleware.logging import LoggingMiddleware, setup_logging
from detailing_billing.middleware.metrics import MetricsMiddleware
from detailing_billing.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse

logger = structlog.get_logger(__name__)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or f"req_{uuid.uuid4().hex[:12]}"


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: list[ErrorDetail],
    remediation: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        remediation=remediation,
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def register_exception_handlers(app: FastAPI, config: Settings) -> None:
    """Attach structured error responses for the /v1 API."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Handle Pydantic validation errors with structured response.

        Returns 422 with detailed field-level validation errors.
        """
        code_mapping = {
            "enum": ErrorCode.INVALID_ENUM_VALUE,
            "missing": ErrorCode.MISSING_REQUIRED_FIELD,
        }
        details = [
            ErrorDetail(
                code=code_mapping.get(error["type"], ErrorCode.VALIDATION_ERROR),
                message=error["msg"],
                field=".".join(str(loc) for loc in error["loc"]),
                value=error.get("input"),
            )
            for error in exc.errors()
        ]

        logger.warning("validation_error", request_id=_request_id(request), error_count=len(details))

        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "ValidationError",
            "Request validation failed",
            details,
            remediation="Check the API documentation for correct request format at /docs",
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        """Returns 503 Service Unavailable for database errors."""
        logger.error(
            "database_error",
            request_id=_request_id(request),
            error_type=type(exc).__name__,
            error_message=str(exc),
        )

        # Don't expose internal database details in production
        error_message = "Database temporarily unavailable" if config.app_env == "production" else str(exc)

        return _error_response(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DatabaseError",
            "A database error occurred",
            [ErrorDetail(code=ErrorCode.DATABASE_ERROR, message=error_message)],
            remediation=REMEDIATION_HINTS.get(ErrorCode.DATABASE_ERROR),
            headers={"Retry-After": "30"},
        )

    @app.exception_handler(stripe.StripeError)
    async def stripe_exception_handler(request: Request, exc: stripe.StripeError) -> JSONResponse:
        """Returns 502 Bad Gateway for Stripe API errors."""
        stripe_message = str(exc)
        logger.error(
            "stripe_error",
            request_id=_request_id(request),
            stripe_code=getattr(exc, "code", None),
            stripe_message=stripe_message,
        )

        return _error_response(
            request,
            status.HTTP_502_BAD_GATEWAY,
            "PaymentGatewayError",
            "Payment gateway error occurred",
            [
                ErrorDetail(
                    code=ErrorCode.STRIPE_API_ERROR,
                    message=stripe_message if config.app_env != "production" else "Stripe request failed",
                )
            ],
            remediation=REMEDIATION_HINTS.get(ErrorCode.STRIPE_API_ERROR),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Returns 500 with a safe message; the full trace goes to the log."""
        logger.exception(
            "unhandled_exception",
            request_id=_request_id(request),
            exception_type=type(exc).__name__,
            exception_message=str(exc),
        )

        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "InternalServerError",
            "An unexpected error occurred",
            [
                ErrorDetail(
                    code=ErrorCode.INTERNAL_ERROR,
                    message=str(exc) if config.debug else "Internal server error",
                )
            ],
            remediation="Please contact support with the request ID",
        )


def create_app(
    settings: Settings | None = None,
    gateway: PaymentGateway | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """
    Build the application with its Stripe gateway and database session factory.

    Args:
        settings: Application settings (environment when None)
        gateway: Payment gateway (built from settings when None)
        session_factory: Session factory (engine built from settings when None)

    Returns:
        Configured FastAPI application

    Raises:
        ConfigurationError: If the Stripe secrets are missing and no gateway is given
    """
    config = settings or get_settings()
    setup_logging(config)

    if gateway is None:
        try:
            gateway = StripeGateway.from_settings(config)
        except ConfigurationError:
            logger.error("stripe_not_configured", env=config.app_env)
            raise

    engine = None
    if session_factory is None:
        engine = create_engine_from_settings(config)
        session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager for startup and shutdown events."""
        logger.info("application_starting", env=config.app_env)
        yield
        logger.info("application_shutting_down")
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title="Detailing Billing Reconciliation",
        description="Stripe webhook reconciliation and add-on management for detailing businesses",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = config
    app.state.gateway = gateway
    app.state.session_factory = session_factory
    app.state.jwt_auth = JWTAuth.from_settings(config)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.mount("/metrics", make_asgi_app())

    register_exception_handlers(app, config)

    app.include_router(health.router, tags=["Health"])
    app.include_router(stripe_webhooks.router)
    app.include_router(addons.router, prefix="/v1")

    return app
