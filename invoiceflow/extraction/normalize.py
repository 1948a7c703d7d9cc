"""Best-effort normalization of model output into the extraction shape.

Language models rarely follow a schema exactly: fields get renamed, nested
under different parents, or returned as formatted strings. This module maps
whatever came back onto the canonical camelCase layout understood by
``schema.InvoiceExtraction``. It never raises; the strict schema is the gate.

The alias tables are plain constants so they can be extended and tested on
their own.
"""

import math
import re
from datetime import date
from typing import Any

# Candidate parent keys for each section, in priority order.
SECTION_SOURCES: dict[str, tuple[str, ...]] = {
    "vendor": ("vendor",),
    "invoice": ("invoice", "billing"),
    "assignment": ("assignment", "bill_to"),
}

# Canonical field -> ordered (source, keys) rules. A source is a section name,
# "root" for the top-level object, "bill_to" for the raw bill_to object, or
# "item" for a single line item.
FIELD_ALIASES: dict[str, tuple[tuple[str, tuple[str, ...]], ...]] = {
    "vendor.name": (("vendor", ("name", "vendor_name", "company")),),
    "vendor.taxId": (
        ("vendor", ("taxId", "tax_id", "tax_id_number", "vat_number", "vatNumber")),
    ),
    "vendor.address": (("vendor", ("address", "street")),),
    "vendor.email": (("vendor", ("email", "contact_email")),),
    "vendor.phone": (("vendor", ("phone", "phone_number")),),
    "invoice.number": (
        ("invoice", ("number", "invoice_number", "id")),
        ("root", ("invoice_number",)),
    ),
    "invoice.date": (
        ("invoice", ("date", "issue_date", "invoice_date", "created_at")),
        ("root", ("issue_date",)),
    ),
    "invoice.dueDate": (
        ("invoice", ("dueDate", "due_date", "payment_due")),
        ("root", ("due_date",)),
    ),
    "invoice.currency": (("invoice", ("currency",)), ("root", ("currency",))),
    "invoice.subtotal": (("invoice", ("subtotal", "sub_total", "amount_subtotal")),),
    "invoice.taxAmount": (("invoice", ("taxAmount", "tax", "vat")),),
    "invoice.totalAmount": (
        ("invoice", ("totalAmount", "total", "total_due", "amount_due", "balance_due")),
        ("root", ("total_due", "amount_due")),
    ),
    "assignment.department": (("assignment", ("department", "department_name")),),
    "assignment.employee": (
        ("assignment", ("employee", "employee_name", "name")),
        ("bill_to", ("name",)),
    ),
    "assignment.costCenter": (("assignment", ("costCenter", "cost_center")),),
    "lineItem.description": (
        ("item", ("description", "name", "item", "line_description", "product")),
    ),
    "lineItem.quantity": (("item", ("quantity", "qty")), ("item", ("hours",))),
    "lineItem.unitPrice": (("item", ("unit_price", "unitPrice", "price")),),
    "lineItem.amount": (("item", ("amount", "total", "line_total")),),
    "lineItem.category": (("item", ("category", "gl_code")),),
}

# Where line item arrays may live: (source, key), first list wins.
LINE_ITEM_SOURCES: tuple[tuple[str, str], ...] = (
    ("invoice", "lineItems"),
    ("invoice", "line_items"),
    ("root", "lineItems"),
    ("root", "line_items"),
)

DEFAULT_VENDOR_NAME = "Unknown Vendor"
DEFAULT_INVOICE_NUMBER = "UNKNOWN"
DEFAULT_CURRENCY = "USD"

_NUMERIC_CHARS = re.compile(r"[^0-9.,-]")
_LEADING_FLOAT = re.compile(r"-?(?:\d+(?:\.\d*)?|\.\d+)")


def coerce_number(value: Any) -> float | int | None:
    """Coerce a JSON value to a finite number.

    Native numbers pass through. Strings are stripped to digits, separators
    and minus signs; a comma that is the last separator is the decimal mark
    (so ``"1.234,56"`` is 1234.56), otherwise commas are thousands
    separators. The leading numeric prefix is then parsed.

    Args:
        value: Any JSON value

    Returns:
        Finite number, or None if the value is not numeric
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    cleaned = _NUMERIC_CHARS.sub("", value)
    last_comma = cleaned.rfind(",")
    if last_comma > cleaned.rfind("."):
        integer_part = cleaned[:last_comma].replace(".", "").replace(",", "")
        cleaned = f"{integer_part}.{cleaned[last_comma + 1:]}"
    else:
        cleaned = cleaned.replace(",", "")

    match = _LEADING_FLOAT.match(cleaned)
    if match is None:
        return None
    parsed = float(match.group(0))
    return parsed if math.isfinite(parsed) else None


def _as_record(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first_string(source: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _first_number(source: dict[str, Any], keys: tuple[str, ...]) -> float | int | None:
    for key in keys:
        coerced = coerce_number(source.get(key))
        if coerced is not None:
            return coerced
    return None


def _resolve(field: str, sources: dict[str, dict[str, Any]], numeric: bool = False) -> Any:
    """Resolve a canonical field through its alias rules."""
    lookup = _first_number if numeric else _first_string
    for source_name, keys in FIELD_ALIASES[field]:
        found = lookup(sources.get(source_name, {}), keys)
        if found is not None:
            return found
    return None


def _section(root: dict[str, Any], name: str) -> dict[str, Any]:
    for key in SECTION_SOURCES[name]:
        if isinstance(root.get(key), dict):
            return root[key]
    return {}


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def normalize_line_item(value: Any) -> dict[str, Any] | None:
    """Normalize one line item, or return None if it should be dropped.

    Items without a description or without a resolvable amount are dropped.
    """
    if not isinstance(value, dict):
        return None
    sources = {"item": value}

    description = _resolve("lineItem.description", sources)
    quantity = _resolve("lineItem.quantity", sources, numeric=True)
    if quantity is None:
        quantity = 1
    unit_price = _resolve("lineItem.unitPrice", sources, numeric=True)
    amount = _resolve("lineItem.amount", sources, numeric=True)
    if amount is None and unit_price is not None:
        amount = unit_price * quantity

    if not description or amount is None:
        return None

    return _compact(
        {
            "description": description,
            "quantity": quantity,
            "unitPrice": unit_price if unit_price is not None else amount,
            "amount": amount,
            "category": _resolve("lineItem.category", sources),
        }
    )


def _line_items(sources: dict[str, dict[str, Any]]) -> list[Any]:
    for source_name, key in LINE_ITEM_SOURCES:
        items = sources[source_name].get(key)
        if isinstance(items, list):
            return items
    return []


def normalize_extraction_payload(payload: Any, today: date | None = None) -> dict[str, Any]:
    """Map arbitrary model output onto the canonical extraction layout.

    Args:
        payload: Parsed JSON from the model (any type)
        today: Fallback invoice date (defaults to the current date)

    Returns:
        Candidate dict with vendor, invoice, assignment, lineItems and,
        when supplied as an object, aiEnhancements
    """
    root = _as_record(payload)
    sources = {
        "root": root,
        "vendor": _section(root, "vendor"),
        "invoice": _section(root, "invoice"),
        "assignment": _section(root, "assignment"),
        "bill_to": _as_record(root.get("bill_to")),
    }

    line_items = [
        item
        for item in (normalize_line_item(raw) for raw in _line_items(sources))
        if item is not None
    ]

    candidate: dict[str, Any] = {
        "vendor": _compact(
            {
                "name": _resolve("vendor.name", sources) or DEFAULT_VENDOR_NAME,
                "taxId": _resolve("vendor.taxId", sources),
                "address": _resolve("vendor.address", sources),
                "email": _resolve("vendor.email", sources),
                "phone": _resolve("vendor.phone", sources),
            }
        ),
        "invoice": _compact(
            {
                "number": _resolve("invoice.number", sources) or DEFAULT_INVOICE_NUMBER,
                "date": _resolve("invoice.date", sources)
                or (today or date.today()).isoformat(),
                "dueDate": _resolve("invoice.dueDate", sources),
                "currency": _resolve("invoice.currency", sources) or DEFAULT_CURRENCY,
                "subtotal": _resolve("invoice.subtotal", sources, numeric=True),
                "taxAmount": _resolve("invoice.taxAmount", sources, numeric=True),
                "totalAmount": _resolve("invoice.totalAmount", sources, numeric=True),
            }
        ),
        "assignment": _compact(
            {
                "department": _resolve("assignment.department", sources),
                "employee": _resolve("assignment.employee", sources),
                "costCenter": _resolve("assignment.costCenter", sources),
            }
        ),
        "lineItems": line_items,
    }
    if isinstance(root.get("aiEnhancements"), dict):
        candidate["aiEnhancements"] = root["aiEnhancements"]
    return candidate
