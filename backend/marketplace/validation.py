from __future__ import annotations
from datetime import datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .models.vendors import BUSINESS_TYPES
from .services.pricing import percent_to_bps
from .time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Shipping address keys that must be present and non-blank
REQUIRED_ADDRESS_FIELDS = ("first_name", "last_name", "street", "city", "state", "zip_code", "country")
OPTIONAL_ADDRESS_FIELDS = ("phone",)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what callers are allowed to set (security boundary)
    - required_on_create: fields required on create
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


VENDOR_APPLICATION_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "business_name",
        "business_description",
        "business_type",
        "address_json",
        "contact_json",
        "bank_details_json",
        "shipping_policies_json",
        "return_policy_enabled",
        "return_policy_period_days",
        "return_policy_description",
    }),
    required_on_create=frozenset({"business_name", "business_type"}),
)

VENDOR_PROFILE_POLICY = ModelValidationPolicy(
    writable_fields=VENDOR_APPLICATION_POLICY.writable_fields,
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer", field=col.key)
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)", field=col.key)
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)", field=col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer", field=col.key)
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal", field=col.key)
        raise ValidationError(f"{col.key} must be an integer", field=col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", field=col.key)

    # Structured records are stored as JSON objects/lists only
    if isinstance(coltype, JSON):
        if not isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be an object", field=col.key)
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes an incoming payload against:
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
        raise ValidationError("Invalid payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", field=k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(
                    f"{k} exceeds max length {col.type.length}",
                    field=k,
                    expected=f"<= {col.type.length} chars",
                )

        patch[k] = val

    return patch


def enforce_rules_vendor(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "business_type" in patch and patch["business_type"] not in BUSINESS_TYPES:
        raise ValidationError(
            f"business_type must be one of: {', '.join(BUSINESS_TYPES)}",
            field="business_type",
            expected=list(BUSINESS_TYPES),
        )
    period = patch.get("return_policy_period_days")
    if period is not None and period < 0:
        raise ValidationError("return_policy_period_days must be >= 0", field="return_policy_period_days")


def require_commission_rate(rate_percent) -> int:
    """Validate a commission percent (0-100) and return it as basis points."""
    if isinstance(rate_percent, bool) or rate_percent is None:
        raise ValidationError("commission_rate must be a number", field="commission_rate", expected="0-100")
    try:
        bps = percent_to_bps(rate_percent)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError("commission_rate must be a number", field="commission_rate", expected="0-100")
    if bps < 0 or bps > 10000:
        raise ValidationError(
            "commission_rate must be between 0 and 100",
            field="commission_rate",
            expected="0-100",
        )
    return bps


def validate_address(address: Any, *, field: str) -> dict:
    if not isinstance(address, dict):
        raise ValidationError(f"{field} must be an object", field=field)
    cleaned: dict = {}
    for key in REQUIRED_ADDRESS_FIELDS:
        value = address.get(key)
        if value is None or not str(value).strip():
            raise ValidationError(f"{field}.{key} is required", field=f"{field}.{key}")
        cleaned[key] = str(value).strip()
    for key in OPTIONAL_ADDRESS_FIELDS:
        if address.get(key):
            cleaned[key] = str(address[key]).strip()
    return cleaned


def _require_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    return value


def validate_order_item(item: Any, *, index: int) -> dict:
    """Normalize one cart line; price_cents >= 0 and quantity >= 1."""
    prefix = f"items[{index}]"
    if not isinstance(item, dict):
        raise ValidationError(f"{prefix} must be an object", field=prefix)

    product_id = _require_int(item.get("product_id"), field=f"{prefix}.product_id")
    price = _require_int(item.get("price_cents"), field=f"{prefix}.price_cents")
    quantity = _require_int(item.get("quantity"), field=f"{prefix}.quantity")
    if price < 0:
        raise ValidationError(f"{prefix}.price_cents must be >= 0", field=f"{prefix}.price_cents", expected=">= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(
            f"{prefix}.price_cents cannot exceed {MAX_PRICE_CENTS}",
            field=f"{prefix}.price_cents",
            expected=f"<= {MAX_PRICE_CENTS}",
        )
    if quantity < 1:
        raise ValidationError(f"{prefix}.quantity must be >= 1", field=f"{prefix}.quantity", expected=">= 1")

    name = str(item.get("name") or "").strip()
    if not name:
        raise ValidationError(f"{prefix}.name is required", field=f"{prefix}.name")

    variant = item.get("variant") or {}
    if not isinstance(variant, dict):
        raise ValidationError(f"{prefix}.variant must be an object", field=f"{prefix}.variant")
    image = item.get("image") or {}
    if not isinstance(image, dict):
        raise ValidationError(f"{prefix}.image must be an object", field=f"{prefix}.image")
    return {
        "product_id": product_id,
        "name": name,
        "price_cents": price,
        "quantity": quantity,
        "sku": item.get("sku"),
        "image_url": image.get("url"),
        "image_alt": image.get("alt"),
        "variant_name": variant.get("name"),
        "variant_value": variant.get("value"),
    }


def require_non_negative_cents(value: Any, *, field: str) -> int:
    value = _require_int(value, field=field)
    if value < 0:
        raise ValidationError(f"{field} must be >= 0", field=field, expected=">= 0")
    return value
