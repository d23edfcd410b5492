"""FastAPI application entry point."""
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator

import stripe
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from awards_api.api.v1 import film_awards, games, health, keys, oscar_stats, oscars, plans, subscriptions
from awards_api.api.webhooks import stripe as stripe_webhooks
from awards_api.cache import cache
from awards_api.config import settings
from awards_api.errors import AwardsAPIError
from awards_api.middleware.logging import LoggingMiddleware, setup_logging
from awards_api.middleware.metrics import MetricsMiddleware
from awards_api.plans import plan_registry
from awards_api.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    # Startup: refuse to serve with an inconsistent plan catalogue
    plan_registry.validate()
    logger.info(
        "application_starting",
        env=settings.app_env,
        plans=len(plan_registry.plan_keys(include_legacy=True)),
    )
    yield
    # Shutdown
    await cache.close()
    logger.info("application_shutting_down")


app = FastAPI(
    title="Awards Data API",
    description="Film and board game awards data with API key entitlements and Stripe billing",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Quota-Daily-Remaining", "X-Quota-Monthly-Remaining", "X-Request-ID"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

if settings.otel_enabled:
    from awards_api.tracing import setup_tracing

    setup_tracing(app)


def _request_id(request: Request) -> str:
    return request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")


def _error_body(
    request: Request,
    error: str,
    message: str,
    code: str,
    detail_message: str | None = None,
    remediation: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    return {
        "error": error,
        "message": message,
        "details": [ErrorDetail(code=code, message=detail_message or message).model_dump(exclude_none=True)],
        "remediation": remediation if remediation is not None else REMEDIATION_HINTS.get(code),
        "request_id": _request_id(request),
        "timestamp": datetime.utcnow().isoformat() + "Z",
        **extra,
    }


# Exception handlers with structured error responses
@app.exception_handler(AwardsAPIError)
async def awards_api_exception_handler(request: Request, exc: AwardsAPIError) -> JSONResponse:
    """
    Render entitlement, billing and webhook failures.

    Status code and error code come from the exception class; extra fields
    (allowed_domains, available_plans, ...) are added to the body.
    """
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        error=exc.error,
        code=exc.code,
        status_code=exc.status_code,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.error, exc.message, exc.code, **exc.extra),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle Pydantic validation errors with structured response.

    Returns 422 with detailed field-level validation errors.
    """
    request_id = _request_id(request)

    code_mapping = {
        "value_error": ErrorCode.INVALID_PARAMETER,
        "missing": ErrorCode.MISSING_REQUIRED_FIELD,
        "enum": ErrorCode.INVALID_ENUM_VALUE,
        "literal_error": ErrorCode.INVALID_ENUM_VALUE,
    }

    details = []
    for error in exc.errors():
        field_path = ".".join(str(loc) for loc in error["loc"])
        code = code_mapping.get(error["type"], "validation_error")
        if field_path.endswith("email"):
            code = ErrorCode.INVALID_EMAIL

        details.append(
            ErrorDetail(
                code=code,
                message=error["msg"],
                field=field_path,
                value=error.get("input") if isinstance(error.get("input"), (str, int, float, bool)) else None,
            ).model_dump()
        )

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        request_id=request_id,
        error_count=len(details),
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "details": details,
            "remediation": "Check the API documentation for correct request format at /docs",
            "request_id": request_id,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable for database connection issues.
    """
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    detail = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(request, "DatabaseError", "A database error occurred", ErrorCode.DATABASE_ERROR, detail),
        headers={"Retry-After": "30"},
    )


@app.exception_handler(stripe.StripeError)
async def stripe_exception_handler(request: Request, exc: stripe.StripeError) -> JSONResponse:
    """
    Handle Stripe API errors not already translated by a service.

    Returns 502 Bad Gateway.
    """
    logger.error(
        "stripe_error",
        path=request.url.path,
        method=request.method,
        stripe_code=getattr(exc, "code", None),
        stripe_message=str(exc),
    )

    detail = str(exc) if settings.app_env != "production" else None

    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body(
            request,
            "PaymentGatewayError",
            "Payment gateway error occurred",
            ErrorCode.STRIPE_API_ERROR,
            detail,
        ),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the full stack trace but returns a safe error message to the client.
    """
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        stack_trace=traceback.format_exc(),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request,
            "InternalServerError",
            "An unexpected error occurred",
            ErrorCode.INTERNAL_ERROR,
            str(exc) if settings.debug else "Internal server error",
            remediation="Please contact support with the request ID",
        ),
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Awards Data API",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


# Rejections every dataset endpoint can return
DATASET_ERRORS: dict[int | str, dict[str, Any]] = {
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse, "description": "Missing or invalid API key"},
    status.HTTP_403_FORBIDDEN: {"model": ErrorResponse, "description": "Key suspended or domain not authorized"},
    status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse, "description": "Quota exceeded"},
}

app.include_router(health.router, tags=["Health"])
app.include_router(film_awards.router, prefix="/v1", responses=DATASET_ERRORS)
app.include_router(oscars.router, prefix="/v1", responses=DATASET_ERRORS)
app.include_router(oscar_stats.router, prefix="/v1", responses=DATASET_ERRORS)
app.include_router(games.router, prefix="/v1", responses=DATASET_ERRORS)
app.include_router(subscriptions.router, prefix="/v1")
app.include_router(plans.router, prefix="/v1")
app.include_router(keys.router, prefix="/v1")
app.include_router(stripe_webhooks.router)
