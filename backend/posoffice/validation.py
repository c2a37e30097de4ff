from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

_INT_RE = re.compile(r"[+-]?\d+")


def normalize(fields: Mapping[str, Any], exceptions: Iterable[str] = ()) -> dict[str, Any]:
    """
    Trim every string field and lower-case all of them except `exceptions`.

    Each form type names its own case-preserving fields (barcode, URLs)
    instead of relying on introspection. Non-string values pass through.
    """
    keep_case = set(exceptions)
    out: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, str):
            value = value.strip()
            if key not in keep_case:
                value = value.lower()
        out[key] = value
    return out


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - preserve_case: string fields that are trimmed but never lower-cased
    - immutable_fields: set on create, may not change afterwards
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)
    preserve_case: frozenset[str] = field(default_factory=frozenset)
    immutable_fields: frozenset[str] = field(default_factory=frozenset)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field_name: str) -> int:
    """Strict integer: rejects floats, decimals, scientific notation and bools."""
    if isinstance(value, bool):
        raise ValidationError(f"invalid {field_name}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
        return int(value.strip())
    raise ValidationError(f"invalid {field_name}")


def parse_quantity(value: Any, field_name: str = "quantity", *, allow_zero: bool = True) -> int:
    qty = parse_int(value, field_name)
    if qty < 0:
        raise ValidationError(f"{field_name} must be non-negative")
    if qty == 0 and not allow_zero:
        raise ValidationError(f"{field_name} must be positive")
    return qty


def parse_money_cents(value: Any, field_name: str) -> int:
    """
    Parse a decimal amount ("12.5", 12.5, "12") into integer cents exactly.

    Must be positive, at most two decimal places, and not above
    MAX_PRICE_CENTS.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"invalid {field_name}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"invalid {field_name}")
    if not amount.is_finite():
        raise ValidationError(f"invalid {field_name}")
    if amount <= 0:
        raise ValidationError(f"{field_name} must be positive")
    if amount.as_tuple().exponent < -2 and amount != amount.quantize(Decimal("0.01")):
        raise ValidationError(f"{field_name} must have at most 2 decimal places")
    cents = int(amount.quantize(Decimal("0.01")) * 100)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field_name} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int, float)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value)

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        patch[k] = _coerce_value(col, raw)

    patch = normalize(patch, exceptions=policy.preserve_case)

    for k, val in patch.items():
        col = cols[k]
        if isinstance(col.type, (String, Text)) and isinstance(val, str):
            if val == "":
                if not col.nullable:
                    raise ValidationError(f"{k} cannot be blank")
                patch[k] = None
            elif isinstance(col.type, String) and col.type.length and len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "mrp_cents" in patch:
        mrp = patch["mrp_cents"]
        if mrp is None or mrp <= 0:
            raise ValidationError("mrp must be positive")
        if mrp > MAX_PRICE_CENTS:
            raise ValidationError(f"mrp cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")


def enforce_immutable(policy: ModelValidationPolicy, patch: dict, instance) -> None:
    """Reject a patch that would change an immutable field (same value is fine)."""
    for k in policy.immutable_fields:
        if k in patch and patch[k] != getattr(instance, k):
            raise ValidationError(f"{k} cannot be changed")
