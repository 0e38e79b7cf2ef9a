"""
Field validators

Each check returns None when the value passes and a Violation when it does
not; nothing here raises. Apart from `required`, every check lets a missing
value (None) through, so checks can be chained with `first_violation`.
"""
import re
from typing import Optional

from pydantic import EmailStr, HttpUrl, TypeAdapter, ValidationError

from schemas import Violation

DISPLAY_NAME = re.compile(r"^[A-Za-zÀ-ȕ\s\-]+$")
TOKEN = re.compile(r"^[A-Za-z0-9\-]+$")
TAG = re.compile(r"^[A-Za-z0-9\s\-]+$")

_email = TypeAdapter(EmailStr)
_url = TypeAdapter(HttpUrl)


def _blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def required(field: str, value, label: str) -> Optional[Violation]:
    if _blank(value):
        return Violation(field=field, message=f"{label} is required")
    return None


def not_blank(field: str, value, label: str) -> Optional[Violation]:
    if isinstance(value, str) and value.strip() == "":
        return Violation(field=field, value=value, message=f"{label} cannot be empty")
    return None


def display_name(field: str, value, label: str) -> Optional[Violation]:
    if value is None:
        return None
    blank = not_blank(field, value, label)
    if blank:
        return blank
    if not isinstance(value, str) or not DISPLAY_NAME.match(value):
        return Violation(field=field, value=value,
                         message=f"{label} cannot contain special characters")
    return None


def token(field: str, value, label: str) -> Optional[Violation]:
    if value is None:
        return None
    if not isinstance(value, str) or not TOKEN.match(value):
        return Violation(field=field, value=value,
                         message=f"{label} cannot contain special characters and/or spaces")
    return None


def tag(field: str, value, label: str) -> Optional[Violation]:
    if value is None:
        return None
    blank = not_blank(field, value, label)
    if blank:
        return blank
    if not isinstance(value, str) or not TAG.match(value):
        return Violation(field=field, value=value,
                         message=f"{label} can only contain letters, digits, spaces and hyphens")
    return None


def length_bounds(field: str, value, label: str, min_length: Optional[int] = None,
                  max_length: Optional[int] = None) -> Optional[Violation]:
    if value is None:
        return None
    size = len(value.strip()) if isinstance(value, str) else len(value)
    if min_length is not None and size < min_length:
        return Violation(field=field, value=value,
                         message=f"{label} must be at least {min_length} characters")
    if max_length is not None and size > max_length:
        return Violation(field=field, value=value,
                         message=f"{label} must be at most {max_length} characters")
    return None


def email(field: str, value, label: str) -> Optional[Violation]:
    if value is None:
        return None
    try:
        _email.validate_python(value)
    except ValidationError:
        return Violation(field=field, value=value, message=f"{label} must be a valid email address")
    return None


def url(field: str, value, label: str) -> Optional[Violation]:
    if value is None:
        return None
    try:
        _url.validate_python(value)
    except ValidationError:
        return Violation(field=field, value=value, message=f"{label} must be a valid URL")
    return None


def numeric_range(field: str, value, label: str, lo: float, hi: float) -> Optional[Violation]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not lo <= value <= hi:
        return Violation(field=field, value=value, message=f"{label} must be between {lo} and {hi}")
    return None


def first_violation(*results: Optional[Violation]) -> Optional[Violation]:
    """One violation per field: the first failing check wins."""
    for result in results:
        if result is not None:
            return result
    return None
