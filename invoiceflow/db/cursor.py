"""Opaque pagination cursors for invoice listing.

A cursor encodes the (created_at, id) sort key of the last row on a page.
Tokens carry a version prefix so the sort key can change later without
misreading old cursors: ``base64url("v1|<created_at>|<id>")`` without padding.
"""

import base64
import binascii
from dataclasses import dataclass

CURSOR_VERSION = "v1"


@dataclass(frozen=True)
class CursorPosition:
    created_at: int
    id: str


def encode_cursor(created_at: int, invoice_id: str) -> str:
    raw = f"{CURSOR_VERSION}|{created_at}|{invoice_id}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: str) -> CursorPosition | None:
    """Decode a cursor token.

    Returns:
        CursorPosition, or None if the token is malformed in any way
    """
    try:
        padded = token + "=" * (-len(token) % 4)
        decoded = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None

    parts = decoded.split("|", 2)
    if len(parts) != 3 or parts[0] != CURSOR_VERSION:
        return None

    _, created_at_raw, invoice_id = parts
    try:
        created_at = int(created_at_raw)
    except ValueError:
        return None
    if not invoice_id or not 0 <= created_at < 2**63:
        return None
    return CursorPosition(created_at=created_at, id=invoice_id)
