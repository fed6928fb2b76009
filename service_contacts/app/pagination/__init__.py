"""Keyset pagination cursors."""

from .cursor import MalformedCursor, decode_cursor, encode_cursor

__all__ = ["MalformedCursor", "decode_cursor", "encode_cursor"]
