"""Gmail account linking and invoice message discovery routes."""

import logging
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from invoiceflow.api.dependencies import ServiceContainer, get_db, get_services, require_session
from invoiceflow.api.schemas import GmailCheckRequest, GmailLinkedResponse, GmailLinkResponse
from invoiceflow.auth.session import AuthSession
from invoiceflow.db import crud
from invoiceflow.gmail import ingest
from invoiceflow.gmail.client import GmailApiError
from invoiceflow.gmail.state import STATE_TTL_MS, create_state, verify_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/gmail", tags=["Gmail"])

DEFAULT_CHECK_MAX_RESULTS = 5


def _require_gmail(services: ServiceContainer) -> None:
    if not services.gmail_client.is_available():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Gmail integration is not configured",
        )


def linked_redirect_url(app_url: str, redirect: str, email: str) -> str:
    """Resolve the post-link redirect.

    Only same-site paths are honored; anything else falls back to app_url.
    """
    if redirect.startswith("/") and not redirect.startswith("//"):
        target = urljoin(app_url, redirect)
    else:
        target = app_url

    parts = urlsplit(target)
    query = dict(parse_qsl(parts.query))
    query.update(status="linked", email=email)
    return urlunsplit(parts._replace(query=urlencode(query)))


@router.post("/link", response_model=GmailLinkResponse)
def link_gmail(
    session: AuthSession = Depends(require_session),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
) -> GmailLinkResponse:
    """Start the OAuth flow for the signed-in user."""
    _require_gmail(services)

    state = create_state(session.user_id, services.settings.auth_secret)
    return GmailLinkResponse(
        authorization_url=services.gmail_client.authorization_url(state),
        state=state,
        expires_in=STATE_TTL_MS // 1000,
    )


@router.get("/oauth/callback", response_model=GmailLinkedResponse, response_model_exclude_none=True)
def oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    redirect: str | None = None,
    services: ServiceContainer = Depends(get_services),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> GmailLinkedResponse | RedirectResponse:
    """Complete the OAuth flow and store the Gmail credential."""
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)
    if not code or not state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing authorization parameters"
        )

    user_id = verify_state(state, services.settings.auth_secret)
    if user_id is None or not services.settings.auth_secret:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired state"
        )

    _require_gmail(services)
    client = services.gmail_client
    existing = crud.get_gmail_credential(db, user_id)

    try:
        tokens = client.exchange_code(code)
    except GmailApiError as e:
        logger.error(f"Gmail code exchange failed for user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Failed to exchange authorization code"
        ) from e

    refresh_token = tokens.refresh_token or (existing.refresh_token if existing else None)
    if not refresh_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Google did not return a refresh token. Try again with consent.",
        )

    access_token = tokens.access_token or (existing.access_token if existing else None)
    email = None
    if access_token:
        try:
            email = client.fetch_primary_email(access_token)
        except GmailApiError as e:
            logger.warning(f"Gmail account lookup failed for user {user_id}: {e}")
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unable to fetch Google account information",
        )

    credential = crud.upsert_gmail_credential(
        db,
        user_id=user_id,
        email=email,
        access_token=access_token,
        refresh_token=refresh_token,
        scope=tokens.scope or (existing.scope if existing else None),
        expires_at=tokens.expires_at or (existing.expires_at if existing else None),
    )
    logger.info(f"Linked Gmail account for user {user_id}")

    if redirect:
        return RedirectResponse(
            linked_redirect_url(services.settings.app_url, redirect, email),
            status_code=status.HTTP_302_FOUND,
        )

    return GmailLinkedResponse(
        email=email, scope=credential.scope, expires_at=credential.expires_at
    )


@router.post("/check")
def check_gmail(
    body: GmailCheckRequest | None = None,
    session: AuthSession = Depends(require_session),  # noqa: B008
    services: ServiceContainer = Depends(get_services),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
) -> dict:
    """List recent messages of the linked account that carry invoice attachments."""
    body = body or GmailCheckRequest()

    try:
        messages = ingest.fetch_recent_invoice_messages(
            db,
            services.gmail_client,
            session.user_id,
            max_results=body.max_results or DEFAULT_CHECK_MAX_RESULTS,
            query=body.query,
        )
    except ingest.GmailNotLinkedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except (GmailApiError, ValueError) as e:
        logger.error(f"Failed to fetch Gmail messages for user {session.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch Gmail messages",
        ) from e

    return {"messages": [m.model_dump(by_alias=True, exclude_none=True) for m in messages]}
