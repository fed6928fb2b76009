"""
Opaque keyset pagination cursors.

A cursor binds the sort column's value at a page boundary to the id of the
row that holds it, so the next page can resume strictly after that row even
when several rows share the same sort value. Tokens are URL-safe base64 of a
small JSON document::

    {"value": "Ann", "id": "6f1c..."}
    {"value": "2024-01-01T00:00:00+00:00", "id": "6f1c..."}

The codec knows nothing about the contacts schema: whether ``value`` is
decoded as a timestamp depends entirely on the sort field the caller names.
"""

import base64
import binascii
import json
from datetime import datetime
from typing import Tuple, Union

from shared.errors import ValidationError

from ..models import SortField

CursorValue = Union[str, datetime]

# Sort fields whose cursor value is a timestamp
TIMESTAMP_FIELDS = frozenset({SortField.CREATED_AT.value})


class MalformedCursor(ValidationError):
    """Cursor token could not be decoded."""

    def __init__(self, reason: str):
        super().__init__(
            "Invalid cursor format. Keyset pagination requires a properly encoded cursor.",
            details={"reason": reason},
            code="MALFORMED_CURSOR"
        )


def encode_cursor(value: CursorValue, contact_id: str) -> str:
    """Encode a sort value and tie-break id into an opaque token."""
    payload = {
        "value": value.isoformat() if isinstance(value, datetime) else value,
        "id": str(contact_id),
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: str, sort_field: Union[SortField, str]) -> Tuple[CursorValue, str]:
    """Decode a token produced by :func:`encode_cursor`.

    Raises:
        MalformedCursor: if the token is not base64, not JSON, not an object,
            lacks ``value``/``id``, or carries an unparsable or timezone-less
            timestamp.
    """
    field_name = sort_field.value if isinstance(sort_field, SortField) else sort_field

    try:
        padded = token + "=" * (-len(token) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise MalformedCursor(f"undecodable token: {e}") from e

    if not isinstance(data, dict):
        raise MalformedCursor("token is not an object")

    value = data.get("value")
    contact_id = data.get("id")
    if not isinstance(value, str) or not isinstance(contact_id, str):
        raise MalformedCursor("token is missing value or id")

    if field_name in TIMESTAMP_FIELDS:
        try:
            timestamp = datetime.fromisoformat(value)
        except ValueError as e:
            raise MalformedCursor(f"invalid timestamp: {value}") from e
        if timestamp.tzinfo is None:
            raise MalformedCursor(f"timestamp without timezone: {value}")
        return timestamp, contact_id

    return value, contact_id
