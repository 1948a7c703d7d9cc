"""FastAPI application for invoice extraction and approval.

Production-ready API with:
- Health and readiness checks for Kubernetes
- Attachment presign and upload
- Model-backed invoice extraction
- Cursor-paginated invoice listing and approval updates
- Gmail account linking
- Structured error responses
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from invoiceflow.api import metrics
from invoiceflow.api.dependencies import ServiceContainer
from invoiceflow.api.routes import attachments, auth, gmail, invoices
from invoiceflow.auth.session import SessionService
from invoiceflow.db.crud import InvoicePersistenceError
from invoiceflow.db.session import Database
from invoiceflow.extraction.base import InvoiceExtractionError, ModelProvider
from invoiceflow.extraction.factory import create_model_provider
from invoiceflow.extraction.service import InvoiceExtractor
from invoiceflow.gmail.client import GmailClient
from invoiceflow.shared.config import Settings, get_settings
from invoiceflow.shared.logging_setup import configure_logging
from invoiceflow.storage.service import StorageService

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool
    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    storage: bool


def _validation_issues(exc: RequestValidationError) -> list[dict]:
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "issues": _validation_issues(exc)},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unmatched routes carry the bare reason phrase
    detail = "Not found" if exc.status_code == 404 and exc.detail == "Not Found" else exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": detail},
        headers=getattr(exc, "headers", None),
    )


async def extraction_error_handler(request: Request, exc: InvoiceExtractionError) -> JSONResponse:
    logger.error(f"Invoice extraction failed: {exc.message}", exc_info=exc.cause or exc)
    return JSONResponse(status_code=500, content={"error": exc.message})


async def persistence_error_handler(
    request: Request, exc: InvoicePersistenceError
) -> JSONResponse:
    logger.error(f"Invoice persistence failed: {exc}")
    return JSONResponse(status_code=500, content={"error": "Failed to create invoice"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, route template, and status
    - Request duration by method and route template
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    route = request.scope.get("route")
    endpoint = getattr(route, "path", None) or "unmatched"

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    storage: StorageService | None = None,
    model_provider: ModelProvider | None = None,
    session_service: SessionService | None = None,
    gmail_client: GmailClient | None = None,
) -> FastAPI:
    """Build the application and its service handles.

    Any handle not passed in is created from settings and released when
    the application shuts down.

    Args:
        settings: Application settings (loaded from environment if omitted)
        database: Database handle
        storage: Attachment storage
        model_provider: Extraction model provider
        session_service: Session token resolver
        gmail_client: Google OAuth/Gmail client

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()
    owns_database = database is None
    owns_gmail_client = gmail_client is None

    database = database or Database(settings.database_url)
    storage = storage or StorageService(settings)
    model_provider = model_provider or create_model_provider(settings)
    services = ServiceContainer(
        settings=settings,
        database=database,
        storage=storage,
        model_provider=model_provider,
        extractor=InvoiceExtractor(settings, model_provider, storage),
        session_service=session_service or SessionService(settings),
        gmail_client=gmail_client or GmailClient(settings),
    )

    if settings.database_create_tables:
        database.create_all()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        # Injected handles belong to the caller
        services.extractor.close()
        if owns_gmail_client:
            services.gmail_client.close()
        if owns_database:
            services.database.dispose()
        logger.info(f"{settings.service_name} shut down")

    app = FastAPI(
        title="InvoiceFlow",
        description="Invoice extraction and approval API",
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.state.services = services

    app.middleware("http")(metrics_middleware)

    handlers = {
        RequestValidationError: validation_error_handler,
        StarletteHTTPException: http_error_handler,
        InvoiceExtractionError: extraction_error_handler,
        InvoicePersistenceError: persistence_error_handler,
    }
    for exc_class, handler in handlers.items():
        app.add_exception_handler(exc_class, handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health_check() -> HealthResponse:
        """Health check endpoint for liveness probe."""
        return HealthResponse(
            ok=True,
            status="healthy",
            version=settings.service_version,
            service=settings.service_name,
        )

    @app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
    def readiness_check() -> ReadinessResponse:
        """Readiness check endpoint for Kubernetes readiness probe.

        Storage only counts against readiness when it is enabled.
        """
        database_ok = services.database.ping()
        storage_ok = services.storage.health_check() if services.storage.is_available() else True
        return ReadinessResponse(
            ready=database_ok and storage_ok, database=database_ok, storage=storage_ok
        )

    @app.get("/metrics", tags=["Monitoring"])
    def get_metrics() -> Response:
        """Prometheus metrics endpoint."""
        metrics_data, content_type = metrics.get_metrics()
        return Response(content=metrics_data, media_type=content_type)

    app.include_router(attachments.router)
    app.include_router(invoices.router)
    app.include_router(auth.router)
    app.include_router(gmail.router)

    logger.info(
        f"{settings.service_name} {settings.service_version} configured "
        f"(environment={settings.environment}, model_provider={model_provider.provider_name})"
    )
    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run("invoiceflow.api.main:create_app", factory=True, host="0.0.0.0", port=8000)
