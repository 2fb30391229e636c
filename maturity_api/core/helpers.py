import re
import uuid

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def generate_id(prefix: str) -> str:
    return f'{prefix}_{uuid.uuid4().hex}'


def is_valid_email(value: str | None) -> bool:
    return bool(value) and EMAIL_PATTERN.match(value) is not None


def percentage(part: int | float, whole: int | float) -> int:
    """Whole-number percentage, rounding halves up."""
    if not whole:
        return 0
    return int(part * 100 / whole + 0.5)


def clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None
