"""
Input coercion for orchestrator payloads.

Payloads arrive as plain dicts from the (excluded) transport layer; these
helpers turn the few typed fields the core cares about into Python values
and raise ``ValidationError`` with a field-level ``details`` entry when a
value cannot be used.
"""

from datetime import date, datetime, timezone

from docflow.core.exceptions import ValidationError


def require_text(data: dict, field: str, *, max_length: int | None = None) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{field} is too long (max {max_length})", details={field: "too_long"})
    return value


def require_choice(value, choices, field: str, *, default=None):
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required", details={field: "required"})
        return default
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(sorted(choices))}",
            details={field: "invalid"},
        )
    return value


def parse_date(value, field: str = "due_date") -> date | None:
    """Accept a date, a datetime or an ISO string; empty means None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"{field} is not a valid date", details={field: "invalid"}) from None


def parse_datetime(value, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} is not a valid timestamp", details={field: "invalid"}) from None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def optional_int(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "invalid"}) from None
