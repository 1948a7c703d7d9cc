"""Shared fixtures for InvoiceFlow tests."""

import os
from collections.abc import Callable, Generator
from typing import Any

import pytest
from sqlalchemy.orm import Session

from invoiceflow.db.session import Database
from invoiceflow.extraction.schema import InvoiceExtraction, validate_extraction


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Clean APP_ environment variables before and after test."""
    original_env = dict(os.environ)
    for var in [k for k in os.environ if k.upper().startswith("APP_")]:
        del os.environ[var]
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """In-memory SQLite database with all tables created."""
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def db_session(database: Database) -> Generator[Session, None, None]:
    session = database.session()
    yield session
    session.close()


def _build_extraction(
    vendor: str = "Acme Corp",
    number: str = "INV-001",
    total: float = 42.0,
    line_items: list[dict[str, Any]] | None = None,
) -> InvoiceExtraction:
    """Build a valid extraction for persistence and API tests."""
    return validate_extraction(
        {
            "vendor": {"name": vendor, "taxId": "DE123"},
            "invoice": {
                "number": number,
                "date": "2024-01-15",
                "currency": "USD",
                "totalAmount": total,
            },
            "assignment": {"department": "Engineering"},
            "lineItems": line_items
            or [{"description": "Consulting", "quantity": 1, "unitPrice": total, "amount": total}],
        }
    )


@pytest.fixture
def make_extraction() -> Callable[..., InvoiceExtraction]:
    """Factory fixture for valid extractions."""
    return _build_extraction


@pytest.fixture
def sample_extraction() -> InvoiceExtraction:
    return _build_extraction()
