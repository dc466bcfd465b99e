# Overview: Strict parsing and cleaning of client JSON input for the API routes.

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from flask import request

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Text limits for client-supplied fields
MAX_CUSTOMER_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 500
MAX_SPECIAL_INSTRUCTIONS_LENGTH = 500
MAX_REFERENCE_NUMBER_LENGTH = 100

# Per-line quantity ceiling; keeps totals far from integer overflow
MAX_ITEM_QUANTITY = 1000

_TAG_RE = re.compile(r"<[^>]*>")


def parse_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer parsing for JSON input.

    Rejects booleans, floats, decimal strings and scientific notation so that
    money and quantities are never silently truncated.
    """
    if value is None:
        raise ValidationError(f"{field} is required", code=f"{field}_required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", code=f"invalid_{field}")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", code=f"invalid_{field}")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)",
                code=f"invalid_{field}",
            )
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", code=f"invalid_{field}")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", code=f"invalid_{field}")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", code=f"invalid_{field}")
    else:
        raise ValidationError(f"{field} must be an integer", code=f"invalid_{field}")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", code=f"invalid_{field}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be at most {maximum}", code=f"invalid_{field}")
    return result


def parse_amount(value: Any, field: str = "amount") -> int:
    """Money in integer minor units. Zero and negative amounts are rejected by callers."""
    return parse_int(value, field)


def strip_html_tags(value: str) -> str:
    return _TAG_RE.sub("", value)


def clean_text(value: Any, field: str, *, max_length: int, sanitize: bool = True) -> str | None:
    """
    Normalize optional free text: trim, bound length, strip HTML tags.

    Returns None for missing or blank input.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", code=f"invalid_{field}")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(
            f"{field.replace('_', ' ').capitalize()} is too long (max {max_length} characters)",
            code=f"{field}_too_long",
        )
    if sanitize:
        text = strip_html_tags(text)
    return text or None


def parse_datetime_param(value: str | None, field: str, *, end_of_day: bool = False) -> datetime | None:
    try:
        return parse_iso_datetime(value, end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", code=f"invalid_{field}")


def parse_order_items(raw_items: Any) -> list[dict]:
    """
    Validate the items array of an order request.

    Each entry: {"product_id": int, "quantity": int > 0, "special_instructions": str?}
    An empty list is left for the order service to reject as EmptyOrder.
    """
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list", code="invalid_items")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object", code="invalid_items")
        items.append({
            "product_id": parse_int(raw.get("product_id"), "product_id", minimum=1),
            "quantity": parse_int(raw.get("quantity"), "quantity", minimum=1, maximum=MAX_ITEM_QUANTITY),
            "special_instructions": clean_text(
                raw.get("special_instructions"),
                "special_instructions",
                max_length=MAX_SPECIAL_INSTRUCTIONS_LENGTH,
            ),
        })
    return items


def json_body() -> dict:
    """Request JSON object, or ValidationError for a missing or non-object body."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid request body", code="invalid_json")
    return data


def query_int(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return parse_int(raw, name)
