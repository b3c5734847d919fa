# Overview: Payload validation and query-arg coercion shared by routes and services.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Largest accepted purchase price (Numeric(12, 2))
MAX_PURCHASE_PRICE = Decimal("9999999999.99")

# Signed 64-bit range of an INTEGER column
MIN_INT = -(2 ** 63)
MAX_INT = 2 ** 63 - 1


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: column keys clients are allowed to set (security boundary)
    - required_on_create: column keys required for POST
    - aliases: wire (camelCase) key -> column key
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _in_int_range(name: str, value: int) -> int:
    if not MIN_INT <= value <= MAX_INT:
        raise ValidationError(f"{name} is out of range")
    return value


def coerce_int(name: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return _in_int_range(name, value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        # Reject scientific notation and decimals ("1e3", "12.5")
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{name} must be a plain integer")
        try:
            return _in_int_range(name, int(stripped))
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    raise ValidationError(f"{name} must be an integer")


def coerce_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    if isinstance(value, int):
        return bool(value)
    raise ValidationError(f"{name} must be a boolean")


def coerce_datetime(name: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return parse_iso_datetime(value.isoformat())
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{name} must be an ISO-8601 datetime")


def coerce_str(name: str, value: Any) -> str | None:
    """Optional free-text body field: stripped string, None when absent or blank."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    return value.strip() or None


def coerce_decimal(name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a number")
    if amount < 0:
        raise ValidationError(f"{name} must be >= 0")
    if amount > MAX_PURCHASE_PRICE:
        raise ValidationError(f"{name} exceeds {MAX_PURCHASE_PRICE}")
    return amount.quantize(Decimal("0.01"))


def _coerce_value(col, name: str, value: Any):
    coltype = col.type

    if value is None:
        return None
    if isinstance(coltype, Boolean):
        return coerce_bool(name, value)
    if isinstance(coltype, Integer):
        return coerce_int(name, value)
    if isinstance(coltype, Numeric):
        return coerce_decimal(name, value)
    if isinstance(coltype, DateTime):
        return coerce_datetime(name, value)
    if isinstance(coltype, (String, Text)):
        # Numbers are accepted as text (serials, models); structures are not
        if isinstance(value, (dict, list, bool)):
            raise ValidationError(f"{name} must be a string")
        return str(value).strip()
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: Mapping | None,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name.

    Keys the policy does not know are ignored rather than rejected; clients
    post whole form objects (with id, timestamps, nested relations).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid JSON payload")

    cols = _columns_by_key(model)
    patch: dict = {}
    wire_names: dict[str, str] = {}

    for wire_key, raw in payload.items():
        key = policy.aliases.get(wire_key, wire_key)
        if key not in policy.writable_fields or key not in cols:
            continue
        col = cols[key]
        wire_names[key] = wire_key

        if raw is None or (isinstance(raw, str) and not raw.strip() and col.nullable):
            if not col.nullable:
                raise ValidationError(f"{wire_key} cannot be null")
            patch[key] = None
            continue

        val = _coerce_value(col, wire_key, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{wire_key} cannot be blank")
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{wire_key} exceeds max length {col.type.length}")

        patch[key] = val

    if not partial:
        reverse = {v: k for k, v in policy.aliases.items()}
        missing = [
            reverse.get(f, f) for f in sorted(policy.required_on_create)
            if patch.get(f) in (None, "")
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return patch


def optional_int(args: Mapping, key: str) -> int | None:
    raw = args.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return coerce_int(key, raw)


def optional_bool(args: Mapping, key: str) -> bool | None:
    raw = args.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return coerce_bool(key, raw)


def optional_datetime(args: Mapping, key: str) -> datetime | None:
    raw = args.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return coerce_datetime(key, raw)


def optional_str(args: Mapping, key: str) -> str | None:
    return coerce_str(key, args.get(key))


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> dict:
        return {
            "total": total,
            "page": self.page,
            "limit": self.limit,
            "totalPages": (total + self.limit - 1) // self.limit if total else 0,
        }


def parse_page_request(args: Mapping, *, default_limit: int = 10, max_limit: int = 100) -> PageRequest:
    """page/limit from query args; junk or non-positive values fall back to defaults."""
    def _positive(key: str, fallback: int) -> int:
        try:
            value = coerce_int(key, args.get(key))
        except ValidationError:
            return fallback
        return value if value > 0 else fallback

    # offset must stay inside the INTEGER range
    page = min(_positive("page", 1), MAX_INT // max_limit)
    limit = min(_positive("limit", default_limit), max_limit)
    return PageRequest(page=page, limit=limit)
