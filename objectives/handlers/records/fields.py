"""
fields.py — Client field bag → Airtable column mapping.

Only fields named in the allow-lists below reach the store; everything else in
the request body is ignored. Free-text columns are truncated to the configured
maximum, rating columns are integer-parsed and dropped when parsing fails.

Also owns the filterByFormula predicate used to find a session's row.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Column names
# ---------------------------------------------------------------------------

SESSION_COLUMN = "SessionID"
TIMESTAMP_COLUMN = "Timestamp"

# client key → column, truncated to the max text length
TEXT_FIELDS = {
    "initialResponse": "InitialResponse",
    "refinedResponse": "RefinedResponse",
}
# client key → column, written as-is when non-empty
PLAIN_FIELDS = {
    "selectedProfile": "SelectedProfile",
    "email": "UserEmail",
}
# client key → column, integer-parsed
RATING_FIELDS = {
    "experienceRating": "ExperienceRating",
    "recommendRating": "RecommendRating",
}

TRUNCATION_MARKER = "... [truncated]"

_INTEGER_RE = re.compile(r"^[+-]?\d+$")


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def truncate_if_needed(text: str, max_length: int) -> str:
    """Cut text longer than max_length and append a visible truncation marker."""
    if len(text) > max_length:
        logger.warning("Truncating text from %d to %d characters", len(text), max_length)
        return text[:max_length] + TRUNCATION_MARKER
    return text


def parse_rating(value: Any) -> Optional[int]:
    """
    Return value as an int, or None when it does not hold an integer.

    Accepted: ints, integral floats (8.0), strings of base-10 digits (" 8 ").
    Rejected: bools, fractional floats, anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
        return int(value.strip())
    return None


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------

def format_fields(data: dict[str, Any], max_length: int) -> dict[str, Any]:
    """Map an arbitrary client field bag onto the allow-listed store columns."""
    formatted: dict[str, Any] = {}

    for key, column in TEXT_FIELDS.items():
        value = data.get(key)
        if value:
            formatted[column] = truncate_if_needed(str(value), max_length)

    for key, column in PLAIN_FIELDS.items():
        value = data.get(key)
        if not value:
            continue
        if not isinstance(value, str):
            logger.debug("Dropping non-string field=%s", key)
            continue
        formatted[column] = value

    for key, column in RATING_FIELDS.items():
        if key not in data:
            continue
        rating = parse_rating(data[key])
        if rating is None:
            logger.debug("Dropping non-integer rating field=%s", key)
            continue
        formatted[column] = rating

    return formatted


def build_record_fields(session_id: str, data: dict[str, Any], max_length: int) -> dict[str, Any]:
    """Session id + fresh timestamp + the mapped client fields."""
    return {
        SESSION_COLUMN: session_id,
        TIMESTAMP_COLUMN: utc_timestamp(),
        **format_fields(data, max_length),
    }


# ---------------------------------------------------------------------------
# Filter predicate
# ---------------------------------------------------------------------------

def escape_formula_string(value: str) -> str:
    """Escape backslashes and single quotes for a '...' Airtable string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_session_formula(session_id: str) -> str:
    """filterByFormula expression matching the row for one session."""
    return f"{{{SESSION_COLUMN}}} = '{escape_formula_string(session_id)}'"
