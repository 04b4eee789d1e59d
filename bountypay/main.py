"""FastAPI application entrypoint."""
from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from bountypay.api.routes import register_routes
from bountypay.core.config import Settings, get_settings
from bountypay.core.logging import configure_logging
from bountypay.obs import (
    AuditMiddleware,
    PrometheusMiddleware,
    initialise_tracing,
    instrument_fastapi_app,
    metrics_router,
)
from bountypay.services.errors import (
    GuardViolation,
    InvalidAmount,
    LedgerInvariantError,
    PayoutConcurrencyError,
    PayoutDestinationError,
    PayoutError,
    ReportNotFound,
    TransactionNotFound,
)

# first match wins
_PAYOUT_ERROR_STATUS: tuple[tuple[tuple[type[PayoutError], ...], int], ...] = (
    ((TransactionNotFound, ReportNotFound), status.HTTP_404_NOT_FOUND),
    ((GuardViolation, PayoutConcurrencyError), status.HTTP_409_CONFLICT),
    ((InvalidAmount,), status.HTTP_422_UNPROCESSABLE_ENTITY),
    ((PayoutDestinationError,), status.HTTP_400_BAD_REQUEST),
    ((LedgerInvariantError,), status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def payout_error_status(exc: PayoutError) -> int:
    for error_types, status_code in _PAYOUT_ERROR_STATUS:
        if isinstance(exc, error_types):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def handle_payout_error(request: Request, exc: PayoutError) -> JSONResponse:
    return JSONResponse(status_code=payout_error_status(exc), content={"detail": str(exc)})


def create_application(settings: Settings | None = None) -> FastAPI:
    """Build the payout admin API with audit, metrics and tracing wired in."""
    configure_logging()
    settings = settings or get_settings()

    if settings.enable_tracing:
        initialise_tracing(service_name=settings.app_name, endpoint=settings.otel_exporter_endpoint)

    application = FastAPI(
        title=settings.app_name,
        version=settings.version,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
    )

    application.add_middleware(AuditMiddleware, settings=settings)
    if settings.enable_metrics:
        application.add_middleware(PrometheusMiddleware)
        application.include_router(metrics_router)
    application.add_exception_handler(PayoutError, handle_payout_error)
    register_routes(application)

    if settings.enable_tracing:
        instrument_fastapi_app(application)

    return application


app = create_application()
