"""Unit tests for pagination cursors."""

import base64

import pytest

from invoiceflow.db.cursor import CursorPosition, decode_cursor, encode_cursor


def _b64(raw: str) -> str:
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def test_encode_is_unpadded_url_safe() -> None:
    token = encode_cursor(1700000000000, "a1b2-c3")

    assert "=" not in token
    assert "+" not in token and "/" not in token
    assert base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)) == b"v1|1700000000000|a1b2-c3"


def test_decode_returns_sort_position() -> None:
    token = encode_cursor(1700000000000, "invoice-id")

    assert decode_cursor(token) == CursorPosition(created_at=1700000000000, id="invoice-id")


def test_id_may_contain_separator() -> None:
    assert decode_cursor(encode_cursor(5, "a|b")) == CursorPosition(created_at=5, id="a|b")


@pytest.mark.parametrize(
    "token",
    [
        "",
        "not base64 !!",
        _b64("v2|1700000000000|id"),
        _b64("v1|yesterday|id"),
        _b64("v1|1700000000000|"),
        _b64("v1|1700000000000"),
        _b64("v1|-5|id"),
        _b64(f"v1|{2**64}|id"),
        "x" * 600,
        base64.urlsafe_b64encode(b"\xff\xfe\xfd").decode(),
    ],
)
def test_malformed_cursor_rejected(token: str) -> None:
    assert decode_cursor(token) is None
