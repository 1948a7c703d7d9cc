"""Unit tests for session token issuing and resolution."""

import time

import jwt
import pytest

from invoiceflow.auth.session import JWT_ALGORITHM, SessionService
from invoiceflow.shared.config import Settings

SECRET = "test-secret-with-enough-length-123"


@pytest.fixture
def service() -> SessionService:
    return SessionService(Settings(auth_secret=SECRET, session_ttl_seconds=3600))


def _bearer(token: str) -> dict[str, str]:
    return {"authorization": f"Bearer {token}"}


def test_issue_and_resolve(service: SessionService) -> None:
    token = service.issue_token("user-1", email="ap@example.com")

    session = service.resolve_session(_bearer(token))

    assert session is not None
    assert session.user_id == "user-1"
    assert session.email == "ap@example.com"
    assert session.expires_at > int(time.time() * 1000)
    assert session.expires_at % 1000 == 0



def test_issued_token_claims(service: SessionService) -> None:
    claims = jwt.decode(
        service.issue_token("user-1", email="ap@example.com"),
        SECRET,
        algorithms=[JWT_ALGORITHM],
    )

    assert set(claims) == {"sub", "iat", "exp", "email"}
    assert claims["exp"] - claims["iat"] == 3600


def test_token_from_external_issuer_resolves(service: SessionService) -> None:
    """Any issuer holding the secret can mint tokens the API accepts."""
    now = int(time.time())
    token = jwt.encode(
        {"sub": "user-9", "iat": now, "exp": now + 60}, SECRET, algorithm=JWT_ALGORITHM
    )

    session = service.resolve_session(_bearer(token))

    assert session is not None
    assert session.user_id == "user-9"
    assert session.email is None

def test_scheme_is_case_insensitive(service: SessionService) -> None:
    token = service.issue_token("user-1")

    session = service.resolve_session({"authorization": f"bearer   {token}"})

    assert session is not None
    assert session.email is None


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"authorization": ""},
        {"authorization": "Basic dXNlcjpwYXNz"},
        {"authorization": "Bearer "},
        {"authorization": "Bearer not-a-jwt"},
    ],
)
def test_missing_or_malformed_header(service: SessionService, headers: dict[str, str]) -> None:
    assert service.resolve_session(headers) is None


def test_expired_token(service: SessionService) -> None:
    past = int(time.time()) - 7200
    token = jwt.encode({"sub": "user-1", "iat": past, "exp": past + 60}, SECRET, JWT_ALGORITHM)

    assert service.resolve_session(_bearer(token)) is None


def test_token_signed_with_other_secret(service: SessionService) -> None:
    other = SessionService(Settings(auth_secret="another-secret-with-enough-length"))

    assert service.resolve_session(_bearer(other.issue_token("user-1"))) is None


def test_token_without_subject(service: SessionService) -> None:
    token = jwt.encode({"exp": int(time.time()) + 60}, SECRET, JWT_ALGORITHM)

    assert service.resolve_session(_bearer(token)) is None


def test_no_secret_configured() -> None:
    """Without a secret nothing is authenticated and nothing can be issued."""
    service = SessionService(Settings(auth_secret=""))

    assert service.is_available() is False
    assert service.resolve_session({"authorization": "Bearer anything"}) is None
    with pytest.raises(ValueError, match="APP_AUTH_SECRET"):
        service.issue_token("user-1")
