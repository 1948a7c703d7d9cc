"""Session lookup route."""

from fastapi import APIRouter, Depends

from invoiceflow.api.dependencies import require_session
from invoiceflow.auth.session import AuthSession

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.get("/session")
def get_session(session: AuthSession = Depends(require_session)) -> dict:  # noqa: B008
    """Return the session resolved from the Authorization header."""
    return {
        "session": {
            "userId": session.user_id,
            "email": session.email,
            "expiresAt": session.expires_at,
        }
    }
