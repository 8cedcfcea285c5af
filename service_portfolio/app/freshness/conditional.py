"""
Conditional request handling (ETag / Last-Modified).
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

from pydantic import BaseModel
from starlette.responses import Response

from shared.errors import EntityTagError
from shared.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_http_date(value: datetime) -> str:
    """Render an IMF-fixdate, e.g. ``Wed, 21 Oct 2015 07:28:00 GMT``."""
    return format_datetime(_as_utc(value).replace(microsecond=0), usegmt=True)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP date, returning None for anything malformed."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
        if parsed is None:
            return None
        return _as_utc(parsed)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


@dataclass(frozen=True)
class ConditionalContext:
    """Validators computed for one response."""

    entity_tag: Optional[str] = None
    last_modified: Optional[datetime] = None

    def validator_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.entity_tag:
            headers["ETag"] = self.entity_tag
        if self.last_modified is not None:
            headers["Last-Modified"] = format_http_date(self.last_modified)
        return headers


class ConditionalRequestValidator:
    """Decide whether a client's cached representation is still valid."""

    def __init__(self, metrics: Optional["MetricsCollector"] = None):
        self.metrics = metrics
        self.logger = get_logger("portfolio.freshness.conditional")

    def compute_entity_tag(self, payload: Any) -> str:
        """Strong ETag: quoted SHA-256 of the payload's serialized form.

        JSON payloads are serialized the way JSONResponse renders them, so the
        tag fingerprints the exact body sent. Raises EntityTagError for payloads
        that cannot be serialized.
        """
        digest = hashlib.sha256(self._serialize(payload)).hexdigest()
        return f'"{digest}"'

    def context_for(self, payload: Any, last_modified: Optional[datetime] = None) -> ConditionalContext:
        return ConditionalContext(entity_tag=self.compute_entity_tag(payload), last_modified=last_modified)

    def is_fresh(
        self,
        request_headers: Mapping[str, str],
        entity_tag: Optional[str] = None,
        last_modified: Optional[datetime] = None,
    ) -> bool:
        """True when If-None-Match equals the tag or If-Modified-Since is not older than last_modified."""
        if entity_tag is None and last_modified is None:
            return False

        if entity_tag is not None:
            if_none_match = _header(request_headers, "If-None-Match")
            if if_none_match is not None and if_none_match.strip() == entity_tag:
                return True

        if last_modified is not None:
            if_modified_since = parse_http_date(_header(request_headers, "If-Modified-Since"))
            # HTTP dates carry whole seconds only
            if if_modified_since is not None and if_modified_since >= _as_utc(last_modified).replace(microsecond=0):
                return True

        return False

    def not_modified_response(self, headers: Optional[Mapping[str, str]] = None) -> Response:
        """Empty-bodied 304 response."""
        return Response(status_code=304, headers=dict(headers) if headers else None)

    def evaluate(
        self,
        request_headers: Mapping[str, str],
        context: ConditionalContext,
        *,
        endpoint_class: str = "unclassified",
        headers: Optional[Mapping[str, str]] = None,
    ) -> Optional[Response]:
        """Return a ready 304 when the client copy is fresh, otherwise None."""
        fresh = self.is_fresh(request_headers, context.entity_tag, context.last_modified)
        if self.metrics:
            self.metrics.record_conditional_request(endpoint_class, "not_modified" if fresh else "full")
        if not fresh:
            return None

        self.logger.debug("Conditional request satisfied", endpoint_class=endpoint_class, etag=context.entity_tag)
        response_headers = dict(headers or {})
        response_headers.update(context.validator_headers())
        return self.not_modified_response(response_headers)

    @staticmethod
    def _serialize(payload: Any) -> bytes:
        if isinstance(payload, (bytes, bytearray, memoryview)):
            return bytes(payload)
        if isinstance(payload, str):
            return payload.encode("utf-8")
        if isinstance(payload, BaseModel):
            return payload.model_dump_json().encode("utf-8")
        try:
            rendered = json.dumps(payload, ensure_ascii=False, allow_nan=False, indent=None, separators=(",", ":"))
        except (TypeError, ValueError, RecursionError) as exc:
            raise EntityTagError(
                "Payload cannot be serialized for an entity tag",
                {"type": type(payload).__name__, "error": str(exc)},
            ) from exc
        return rendered.encode("utf-8")
