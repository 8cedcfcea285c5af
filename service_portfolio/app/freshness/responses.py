"""
Response decoration surface consumed by route handlers.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from .conditional import ConditionalContext, ConditionalRequestValidator
from .policy import FreshnessPolicy


class ResponseDecorator:
    """Attach freshness headers to responses and short-circuit fresh conditional requests."""

    def __init__(
        self,
        policy: Optional[FreshnessPolicy] = None,
        validator: Optional[ConditionalRequestValidator] = None,
    ):
        self.policy = policy or FreshnessPolicy()
        self.validator = validator or ConditionalRequestValidator()

    def decorate(
        self,
        response: Response,
        endpoint_class: str,
        *,
        context: Optional[ConditionalContext] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Response:
        """Return the same response with Cache-Control, Vary and validators set."""
        return self.policy.apply(response, endpoint_class, overrides, context=context)

    def check(
        self,
        request_headers: Mapping[str, str],
        endpoint_class: str,
        *,
        entity_tag: Optional[str] = None,
        last_modified: Optional[datetime] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Response]:
        """None means proceed with the full response; otherwise a ready 304."""
        context = ConditionalContext(entity_tag=entity_tag, last_modified=last_modified)
        return self.validator.evaluate(
            request_headers,
            context,
            endpoint_class=endpoint_class,
            headers=self.policy.headers_for(endpoint_class, overrides),
        )

    def json(
        self,
        request_headers: Mapping[str, str],
        payload: Any,
        endpoint_class: str,
        *,
        last_modified: Optional[datetime] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        status_code: int = 200,
    ) -> Response:
        """Render a JSON payload with freshness headers, or a 304 when the client copy matches."""
        context = self.validator.context_for(payload, last_modified)
        cache_headers = dict(headers or {})
        cache_headers.update(self.policy.headers_for(endpoint_class, overrides))

        not_modified = self.validator.evaluate(
            request_headers, context, endpoint_class=endpoint_class, headers=cache_headers
        )
        if not_modified is not None:
            return not_modified

        response = JSONResponse(content=payload, status_code=status_code, headers=dict(headers or {}))
        return self.decorate(response, endpoint_class, context=context, overrides=overrides)


def freshness_response(
    request: Request,
    payload: Any,
    endpoint_class: str,
    *,
    decorator: Optional[ResponseDecorator] = None,
    **kwargs: Any,
) -> Response:
    """One-call JSON handler helper: 304 when the client copy is fresh, otherwise the decorated body."""
    decorator = decorator or ResponseDecorator()
    return decorator.json(request.headers, payload, endpoint_class, **kwargs)
