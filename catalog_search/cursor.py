"""
Pagination cursor codec.

A cursor is an opaque, URL-safe token holding the last row's id, its
ranking key (tagged by sort kind) and a fingerprint of the request that
produced it.
"""

import base64
import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from catalog_search.errors import CursorError
from catalog_search.models import KeyKind, RankingKey

CURSOR_VERSION = 1

# Anything longer cannot have been produced by encode_cursor
MAX_TOKEN_LENGTH = 512


@dataclass(frozen=True)
class Cursor:
    """Decoded pagination state."""
    product_id: int
    key: RankingKey
    fingerprint: str = ""


def _is_int(value) -> bool:
    """True for 64-bit integers (the widest the stores can bind)."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and -(2 ** 63) <= value < 2 ** 63
    )


def _encode_value(key: RankingKey):
    if key.kind is KeyKind.SCORE:
        score = float(key.value)
        if not math.isfinite(score):
            raise ValueError(f"Cannot encode non-finite score: {key.value}")
        return score
    if key.kind is KeyKind.PRICE:
        return int(key.value)
    created = key.value
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created.isoformat()


def _decode_value(kind: KeyKind, raw) -> RankingKey:
    if kind is KeyKind.SCORE:
        if not (_is_int(raw) or isinstance(raw, float)) or not math.isfinite(float(raw)):
            raise CursorError("Cursor score must be a finite number")
        return RankingKey(kind, float(raw))
    if kind is KeyKind.PRICE:
        if not _is_int(raw):
            raise CursorError("Cursor price must be an integer")
        return RankingKey(kind, raw)
    if not isinstance(raw, str):
        raise CursorError("Cursor timestamp must be a string")
    try:
        created = datetime.fromisoformat(raw)
    except ValueError as e:
        raise CursorError("Cursor timestamp is not ISO-8601") from e
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return RankingKey(kind, created)


def encode_cursor(product_id: int, key: RankingKey, fingerprint: str = "") -> str:
    """
    Encode pagination state into an opaque token.

    Raises:
        ValueError: If the key holds a non-finite score.
    """
    payload = {
        "v": CURSOR_VERSION,
        "id": int(product_id),
        "k": key.kind.value,
        "r": _encode_value(key),
        "fp": fingerprint,
    }
    data = json.dumps(payload, separators=(",", ":"), allow_nan=False)
    return base64.urlsafe_b64encode(data.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(token: str) -> Cursor:
    """
    Decode a token produced by encode_cursor.

    Raises:
        CursorError: For any malformed, truncated or foreign token.
    """
    if not isinstance(token, str) or not token or len(token) > MAX_TOKEN_LENGTH:
        raise CursorError("Malformed cursor")

    try:
        padded = token + "=" * (-len(token) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except ValueError as e:
        raise CursorError("Malformed cursor") from e

    if not isinstance(payload, dict) or payload.get("v") != CURSOR_VERSION:
        raise CursorError("Unsupported cursor version")

    product_id = payload.get("id")
    if not _is_int(product_id):
        raise CursorError("Cursor id must be an integer")

    try:
        kind = KeyKind(payload.get("k"))
    except ValueError as e:
        raise CursorError("Unknown cursor key kind") from e

    fingerprint = payload.get("fp", "")
    if not isinstance(fingerprint, str):
        raise CursorError("Cursor fingerprint must be a string")

    return Cursor(
        product_id=product_id,
        key=_decode_value(kind, payload.get("r")),
        fingerprint=fingerprint,
    )
