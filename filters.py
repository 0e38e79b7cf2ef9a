"""
Filter normalization

Decides, per incoming filter value, whether it is an identity (exact
ObjectId match) or free text (case-insensitive substring). Anything that
is not shaped like an ObjectId falls through to pattern matching.
"""
import re
from dataclasses import dataclass
from typing import Any, Optional

from bson import ObjectId

OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")

# Filter names whose values may be an identity. "city" and "subcat" are
# child lookups that accept either a child id or a child name.
IDENTITY_FIELDS = {
    "id", "countryId", "cityId", "articleId", "catId", "subcatId", "commentId",
    "city", "subcat",
}

IDENTITY = "identity"
PATTERN = "pattern"


@dataclass(frozen=True)
class Match:
    kind: str
    value: Any

    @property
    def is_identity(self) -> bool:
        return self.kind == IDENTITY


def is_object_id(value) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and bool(OBJECT_ID.match(value))


def clean(value) -> Optional[str]:
    """Strip a raw filter value; blank means "not supplied"."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def pattern(value: str, exact: bool = False) -> dict:
    escaped = re.escape(value)
    if exact:
        escaped = f"^{escaped}$"
    return {"$regex": escaped, "$options": "i"}


def classify(field: str, value) -> Match:
    if field in IDENTITY_FIELDS and is_object_id(value):
        return Match(IDENTITY, ObjectId(value))
    return Match(PATTERN, value)


def condition(field: str, value, exact: bool = False):
    """Store condition for a single filter value."""
    match = classify(field, value)
    if match.is_identity:
        return match.value
    return pattern(str(value), exact)
