"""
HTTP freshness package: per-endpoint-class Cache-Control policy and
conditional request (ETag / Last-Modified) validation.
"""

from .conditional import (
    ConditionalContext,
    ConditionalRequestValidator,
    format_http_date,
    parse_http_date,
)
from .policy import DEFAULT_FRESHNESS_CONFIGS, DEFAULT_VARY, FreshnessConfig, FreshnessPolicy, Visibility
from .responses import ResponseDecorator, freshness_response

__all__ = [
    "ConditionalContext",
    "ConditionalRequestValidator",
    "format_http_date",
    "parse_http_date",
    "DEFAULT_FRESHNESS_CONFIGS",
    "DEFAULT_VARY",
    "FreshnessConfig",
    "FreshnessPolicy",
    "Visibility",
    "ResponseDecorator",
    "freshness_response",
]
