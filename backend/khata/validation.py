from __future__ import annotations

import re
from dataclasses import dataclass, field as dc_field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Largest accepted list price: 9,999,999.99 in major units
MAX_PRICE_CENTS = 999_999_999

# Largest quantity on one sale line or one stock adjustment
MAX_QUANTITY = 1_000_000

# Largest sale total or payment: 9,999,999,999.99 in major units
MAX_AMOUNT_CENTS = 999_999_999_999

# Signed 64-bit column range; ids beyond it cannot exist
MAX_DB_INT = 2**63 - 1

# Optional sign followed by digits; no decimals, no exponent
_PLAIN_INT = re.compile(r"^[+-]?\d+$")

_PHONE_SEPARATORS = str.maketrans("", "", "+ -")


class ValidationError(ValueError):
    """400-level input problem; `field` names the offending input when known."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.field:
            body["field"] = self.field
        return body


class NotFoundError(LookupError):
    """404-level reference to a product or customer that does not exist."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which a create must carry.

    Anything outside writable_fields is refused, so server-owned columns
    (balances, versions, timestamps) can never arrive through a payload.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = dc_field(default_factory=frozenset)


# =============================================================================
# SCALAR COERCION
# =============================================================================


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for money and quantities.

    Accepts ints and plain digit strings; rejects bools, floats, decimals and
    scientific notation so that no fractional amount ever reaches the ledger.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer, not a boolean", field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be a whole number of minor units", field=field)
    if isinstance(value, str) and _PLAIN_INT.match(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", field=field)


def coerce_optional_int(value: Any, field: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return coerce_int(value, field)


def check_range(value: int, field: str, low: int, high: int) -> int:
    if not low <= value <= high:
        raise ValidationError(f"{field} must be between {low} and {high}", field=field)
    return value


def coerce_id(value: Any, field: str) -> int:
    """Row ids are positive and fit a 64-bit column."""
    return check_range(coerce_int(value, field), field, 1, MAX_DB_INT)


def coerce_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


# =============================================================================
# PAYLOADS
# =============================================================================


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _clean_value(col, raw: Any):
    """Coerce one non-null value by column type, then apply string limits."""
    if isinstance(col.type, Integer):
        return coerce_int(raw, col.key)

    if isinstance(col.type, Boolean):
        return raw if isinstance(raw, bool) else bool(raw)

    if not isinstance(col.type, (String, Text)):
        return raw

    text = str(raw).strip()
    if not text:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank", field=col.key)
        # Blank optional strings are stored as NULL
        return None

    limit = getattr(col.type, "length", None)
    if limit and len(text) > limit:
        raise ValidationError(f"{col.key} exceeds max length {limit}", field=col.key)
    return text


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON body into a clean patch for `model`.

    Checks, in order: the body is an object; on create (partial=False) the
    required fields are present; every key is writable under `policy` and is
    a real column; each value fits its column (nullability, integer
    strictness, string length). Only the keys that were sent come back.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    if not partial:
        missing = sorted(policy.required_on_create - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}", field=key)
        col = cols.get(key)
        if col is None:
            raise ValidationError(f"Unknown field: {key}", field=key)

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null", field=key)
            patch[key] = None
        else:
            patch[key] = _clean_value(col, raw)

    return patch


# =============================================================================
# BUSINESS RULES
# =============================================================================


def enforce_rules_product(patch: dict) -> None:
    """Rules the column metadata cannot express: price, threshold and stock ranges."""
    price = patch.get("price_cents")
    if price is not None and not 0 <= price <= MAX_PRICE_CENTS:
        raise ValidationError(f"price_cents must be between 0 and {MAX_PRICE_CENTS}", field="price_cents")

    level = patch.get("min_stock_level")
    if level is not None:
        check_range(level, "min_stock_level", 0, MAX_QUANTITY)

    stock = patch.get("stock_quantity")
    if stock is not None:
        check_range(stock, "stock_quantity", -MAX_QUANTITY, MAX_QUANTITY)


def enforce_rules_customer(patch: dict) -> None:
    phone = patch.get("phone")
    if phone is not None and not phone.translate(_PHONE_SEPARATORS).isdigit():
        raise ValidationError("phone may contain only digits, spaces, '+' and '-'", field="phone")
