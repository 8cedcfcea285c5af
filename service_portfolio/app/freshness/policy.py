"""
Per-endpoint-class HTTP freshness policy.

Each endpoint class maps to a FreshnessConfig which is rendered into
``Cache-Control`` and ``Vary`` headers.
"""

from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from starlette.responses import Response

from shared.errors import UnknownEndpointClassError, ValidationError
from .conditional import ConditionalContext


class Visibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class FreshnessConfig(BaseModel):
    """Immutable freshness settings for one endpoint class."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_age: int = Field(ge=0)
    stale_while_revalidate: int = Field(default=0, ge=0)
    visibility: Visibility = Visibility.PRIVATE

    def cache_control(self) -> str:
        directives = [self.visibility.value, f"max-age={self.max_age}"]
        if self.stale_while_revalidate > 0:
            directives.append(f"stale-while-revalidate={self.stale_while_revalidate}")
        return ", ".join(directives)


DEFAULT_FRESHNESS_CONFIGS: Mapping[str, FreshnessConfig] = MappingProxyType({
    # Template catalogue changes on deploys only
    "templates": FreshnessConfig(max_age=3600, stale_while_revalidate=86400, visibility=Visibility.PUBLIC),
    "static": FreshnessConfig(max_age=86400, stale_while_revalidate=604800, visibility=Visibility.PUBLIC),
    "public-portfolios": FreshnessConfig(max_age=300, stale_while_revalidate=3600, visibility=Visibility.PUBLIC),
    # Authenticated per-user data
    "portfolios": FreshnessConfig(max_age=60, visibility=Visibility.PRIVATE),
    "analytics": FreshnessConfig(max_age=300, visibility=Visibility.PRIVATE),
    "ai-results": FreshnessConfig(max_age=3600, visibility=Visibility.PRIVATE),
    "realtime": FreshnessConfig(max_age=0, visibility=Visibility.PRIVATE),
})

DEFAULT_VARY: Tuple[str, ...] = ("Accept-Encoding", "Accept", "Authorization")


class FreshnessPolicy:
    """Translate endpoint classes into HTTP caching headers."""

    def __init__(
        self,
        configs: Optional[Mapping[str, FreshnessConfig]] = None,
        vary: Iterable[str] = DEFAULT_VARY,
    ):
        self._configs: Mapping[str, FreshnessConfig] = MappingProxyType(
            dict(configs if configs is not None else DEFAULT_FRESHNESS_CONFIGS)
        )
        self.vary = tuple(vary)

    @property
    def endpoint_classes(self) -> Tuple[str, ...]:
        return tuple(self._configs)

    def config_for(self, endpoint_class: str, overrides: Optional[Mapping[str, Any]] = None) -> FreshnessConfig:
        """Look up an endpoint class and apply per-call overrides."""
        try:
            config = self._configs[endpoint_class]
        except KeyError:
            raise UnknownEndpointClassError(endpoint_class) from None

        if not overrides:
            return config

        try:
            return FreshnessConfig.model_validate({**config.model_dump(), **overrides})
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid freshness override",
                {"endpoint_class": endpoint_class, "error": str(exc)},
            ) from exc

    def headers_for(self, endpoint_class: str, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, str]:
        """Render Cache-Control and Vary for an endpoint class."""
        config = self.config_for(endpoint_class, overrides)
        return {
            "Cache-Control": config.cache_control(),
            "Vary": ", ".join(self.vary),
        }

    def apply(
        self,
        response: Response,
        endpoint_class: str,
        overrides: Optional[Mapping[str, Any]] = None,
        *,
        context: Optional[ConditionalContext] = None,
    ) -> Response:
        """Decorate a response in place and return it."""
        for name, value in self.headers_for(endpoint_class, overrides).items():
            response.headers[name] = value
        if context is not None:
            for name, value in context.validator_headers().items():
                response.headers[name] = value
        return response
