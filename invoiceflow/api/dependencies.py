"""Service container and FastAPI dependencies.

Handles are built once per application by ``create_app`` and read from
``app.state.services`` by the route dependencies.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from invoiceflow.auth.session import AuthSession, SessionService
from invoiceflow.db.session import Database
from invoiceflow.extraction.base import ModelProvider
from invoiceflow.extraction.service import InvoiceExtractor
from invoiceflow.gmail.client import GmailClient
from invoiceflow.shared.config import Settings
from invoiceflow.storage.service import StorageService


@dataclass
class ServiceContainer:
    """Process-scoped service handles shared by all requests."""

    settings: Settings
    database: Database
    storage: StorageService
    model_provider: ModelProvider
    extractor: InvoiceExtractor
    session_service: SessionService
    gmail_client: GmailClient


def get_services(request: Request) -> ServiceContainer:
    services: ServiceContainer = request.app.state.services
    return services


def get_db(services: ServiceContainer = Depends(get_services)) -> Iterator[Session]:  # noqa: B008
    yield from services.database.sessions()


def get_optional_session(
    request: Request,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> AuthSession | None:
    return services.session_service.resolve_session(request.headers)


def require_session(
    session: AuthSession | None = Depends(get_optional_session),  # noqa: B008
) -> AuthSession:
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return session
