"""Signed OAuth state tokens for the Gmail linking flow.

The state binds the OAuth round trip to the user who started it:
``base64url("v1:<user_id>:<nonce>:<issued_at_ms>:<signature>")`` where the
signature is an HMAC-SHA256 over everything before it.
"""

import base64
import hashlib
import hmac
import secrets
import time

STATE_VERSION = "v1"
STATE_TTL_MS = 15 * 60 * 1000


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _sign(payload: str, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()


def create_state(user_id: str, secret: str, now: int | None = None) -> str:
    """Create a signed state token for user_id."""
    issued_at = now if now is not None else int(time.time() * 1000)
    payload = f"{STATE_VERSION}:{user_id}:{secrets.token_hex(16)}:{issued_at}"
    signature = _b64encode(_sign(payload, secret))
    return _b64encode(f"{payload}:{signature}".encode("utf-8"))


def verify_state(state: str, secret: str, now: int | None = None) -> str | None:
    """Verify a state token.

    Returns:
        The user id it was issued for, or None if invalid, tampered or expired
    """
    try:
        decoded = _b64decode(state).decode("utf-8")
        version, user_id, nonce, issued_at_raw, signature = decoded.split(":")
        provided = _b64decode(signature)
    except (ValueError, UnicodeError):
        return None

    if version != STATE_VERSION or not user_id:
        return None

    expected = _sign(f"{version}:{user_id}:{nonce}:{issued_at_raw}", secret)
    if not hmac.compare_digest(expected, provided):
        return None

    try:
        issued_at = int(issued_at_raw)
    except ValueError:
        return None

    now = now if now is not None else int(time.time() * 1000)
    if now - issued_at > STATE_TTL_MS:
        return None
    return user_id
