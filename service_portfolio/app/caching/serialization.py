"""
Value codec shared by the cache backends.

Both backends hold encoded bytes, never live objects, so a value read back is
always a fresh copy and the in-process fallback behaves like Redis.
"""

import json
import re
from typing import Any, Pattern

from shared.errors import CacheSerializationError

_JSON_MARKER = b"j:"
_BINARY_MARKER = b"b:"

_REDIS_GLOB_SPECIALS = re.compile(r"([?\[\]\\])")


def encode_value(value: Any) -> bytes:
    """Encode a cache value, raising CacheSerializationError when impossible."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _BINARY_MARKER + bytes(value)

    try:
        payload = json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise CacheSerializationError(
            "Failed to serialize cache value",
            {"type": type(value).__name__, "error": str(exc)},
        ) from exc

    return _JSON_MARKER + payload.encode("utf-8")


def decode_value(raw: Any) -> Any:
    """Decode bytes produced by encode_value."""
    if isinstance(raw, str):
        raw = raw.encode("utf-8")

    if raw.startswith(_BINARY_MARKER):
        return raw[len(_BINARY_MARKER):]

    if raw.startswith(_JSON_MARKER):
        try:
            return json.loads(raw[len(_JSON_MARKER):].decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CacheSerializationError(
                "Failed to deserialize cache value", {"error": str(exc)}
            ) from exc

    raise CacheSerializationError(
        "Unrecognised cache payload", {"prefix": raw[:8].decode("utf-8", "replace")}
    )


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Compile a single-wildcard glob; ``*`` matches any run, everything else is literal."""
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile(".*".join(parts), re.DOTALL)


def glob_to_redis_match(pattern: str) -> str:
    """Escape Redis glob metacharacters other than ``*``."""
    return _REDIS_GLOB_SPECIALS.sub(r"\\\1", pattern)


def matches(pattern: Pattern[str], key: str) -> bool:
    return pattern.fullmatch(key) is not None


__all__ = [
    "encode_value",
    "decode_value",
    "glob_to_regex",
    "glob_to_redis_match",
    "matches",
]
