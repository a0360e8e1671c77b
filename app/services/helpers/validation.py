"""
Input validation helpers for the service layer.

Each helper either returns the normalised value or raises
ValidationError with a field-level ``details`` entry, so blueprints can
surface the message verbatim.
"""

from app.core.exceptions import ValidationError


def require_text(data: dict, field: str, label: str | None = None) -> str:
    """Return ``data[field]`` stripped; raise if missing or blank."""
    label = label or field
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required", details={field: "required"})
    return value.strip()


def optional_text(data: dict, field: str, default: str = "") -> str:
    value = data.get(field)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid"})
    return value.strip()


def positive_int(value, field: str, maximum: int | None = None) -> int:
    """Coerce ``value`` to an int in 1..maximum.

    Digit strings are accepted (form posts); booleans and floats are not.
    """
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(
            f"{field} must be a positive whole number", details={field: "invalid"},
        )
    if maximum is not None and value > maximum:
        raise ValidationError(
            f"{field} must be no more than {maximum}", details={field: "too_large"},
        )
    return value


def one_of(value, field: str, allowed) -> str:
    if value not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(allowed)}", details={field: "invalid"},
        )
    return value


def string_list(value, field: str) -> list[str]:
    """Normalise a list of strings: strip each, drop blanks.

    A single newline-separated string is accepted too.
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = value.splitlines()
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{field} must be a list of strings", details={field: "invalid"})
    return [v.strip() for v in value if v.strip()]
