"""
Portfolio service: content routes served through the cache store and HTTP
freshness layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Body, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from service_portfolio.app.adapters import ContentStore
from service_portfolio.app.caching import CacheStore, KeyNamespace, memoize, set_cache_store
from service_portfolio.app.freshness import (
    ConditionalRequestValidator,
    FreshnessPolicy,
    ResponseDecorator,
    freshness_response,
)

PORTFOLIO_TTL_SECONDS = 300
TEMPLATE_TTL_SECONDS = 3600


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class PortfolioService(BaseService):
    """Portfolio content service."""

    def __init__(
        self,
        content_store: Optional[ContentStore] = None,
        cache_store: Optional[CacheStore] = None,
    ):
        super().__init__("portfolio", 8000)
        self.content_store = content_store or ContentStore()
        self.cache_store = cache_store or CacheStore.from_config(self.config, metrics=self.metrics)
        set_cache_store(self.cache_store)

        self.freshness_policy = FreshnessPolicy()
        self.conditional_validator = ConditionalRequestValidator(metrics=self.metrics)
        self.responses = ResponseDecorator(self.freshness_policy, self.conditional_validator)

        self.list_templates = memoize(
            f"{KeyNamespace.TEMPLATE.value}list",
            TEMPLATE_TTL_SECONDS,
            self.content_store.list_templates,
            store=self.cache_store,
        )

        self.app.state.portfolio_service = self
        self._setup_lifecycle()
        self._setup_portfolio_routes()

    @staticmethod
    def portfolio_key(portfolio_id: str) -> str:
        return f"{KeyNamespace.PORTFOLIO.value}{portfolio_id}"

    def _setup_lifecycle(self):
        @self.app.on_event("startup")
        async def startup():
            await self.cache_store.connect()

        @self.app.on_event("shutdown")
        async def shutdown():
            await self.cache_store.disconnect()

    def _setup_portfolio_routes(self):
        """Set up content and cache admin routes."""

        @self.app.get("/api/v1/templates")
        async def list_templates(request: Request, category: Optional[str] = Query(None)):
            templates = await self.list_templates(category=category)
            return freshness_response(
                request,
                {"templates": templates, "count": len(templates)},
                "templates",
                decorator=self.responses,
            )

        @self.app.get("/api/v1/portfolios/{portfolio_id}")
        async def get_portfolio(portfolio_id: str, request: Request):
            key = self.portfolio_key(portfolio_id)
            portfolio = await self.cache_store.get(key)
            cache_status = "HIT"

            if portfolio is None:
                cache_status = "MISS"
                portfolio = await self.content_store.get_portfolio(portfolio_id)
                if portfolio is None:
                    raise HTTPException(status_code=404, detail="Portfolio not found")
                await self.cache_store.set(key, portfolio, PORTFOLIO_TTL_SECONDS)

            self.logger.debug("Portfolio lookup", portfolio_id=portfolio_id, cache=cache_status)
            return freshness_response(
                request,
                portfolio,
                "portfolios",
                last_modified=_parse_timestamp(portfolio.get("updated_at")),
                headers={"X-Cache": cache_status},
                decorator=self.responses,
            )

        @self.app.put("/api/v1/portfolios/{portfolio_id}")
        async def update_portfolio(portfolio_id: str, changes: Dict[str, Any] = Body(...)):
            portfolio = await self.content_store.update_portfolio(portfolio_id, changes)
            if portfolio is None:
                raise HTTPException(status_code=404, detail="Portfolio not found")

            # Derived entries (e.g. portfolio:{id}:analytics) go with the record
            key = self.portfolio_key(portfolio_id)
            cleared = await self.cache_store.delete(key)
            cleared += await self.cache_store.clear_pattern(f"{key}:*")
            self.logger.info("Portfolio updated", portfolio_id=portfolio_id, invalidated=cleared)

            response = JSONResponse(content=portfolio)
            return self.responses.decorate(response, "realtime")

        @self.app.get("/api/v1/analytics/realtime")
        async def realtime_analytics(request: Request):
            snapshot = await self.content_store.realtime_snapshot()
            return freshness_response(request, snapshot, "realtime", decorator=self.responses)

        @self.app.get("/api/v1/cache/stats")
        async def cache_stats():
            return await self.cache_store.get_stats()

        @self.app.delete("/api/v1/cache")
        async def clear_cache(pattern: str = Query(..., min_length=1)):
            deleted = await self.cache_store.clear_pattern(pattern)
            return {"pattern": pattern, "deleted": deleted}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report cache backend state; the fallback keeps the service healthy."""
        health = await self.cache_store.health_check()
        if health["available"]:
            return {"cache": "ok"}
        if health["configured"]:
            return {"cache": "degraded"}
        return {"cache": "memory"}


def create_app():
    """Create the FastAPI application."""
    service = PortfolioService()
    return service.app


if __name__ == "__main__":
    service = PortfolioService()
    service.run()
