from __future__ import annotations

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from shared.logging import get_logger

_SEED_TEMPLATES: List[Dict[str, Any]] = [
    {
        "template_id": "developer",
        "name": "Developer",
        "category": "technology",
        "sections": ["hero", "about", "projects", "skills", "experience", "contact"],
        "premium": False,
    },
    {
        "template_id": "designer",
        "name": "Designer",
        "category": "creative",
        "sections": ["hero", "gallery", "about", "testimonials", "contact"],
        "premium": False,
    },
    {
        "template_id": "consultant",
        "name": "Consultant",
        "category": "business",
        "sections": ["hero", "services", "case_studies", "testimonials", "contact"],
        "premium": True,
    },
]

_SEED_PORTFOLIOS: List[Dict[str, Any]] = [
    {
        "portfolio_id": "demo",
        "owner_id": "user-demo",
        "template_id": "developer",
        "title": "Jane Doe",
        "tagline": "Full-stack engineer",
        "subdomain": "jane",
        "status": "published",
        "updated_at": "2025-01-15T10:00:00+00:00",
    },
]


class ContentStore:
    """In-process system of record for portfolios and templates.

    Stands in for the database collaborator; the cache layer only ever holds
    derived copies of what lives here.
    """

    def __init__(
        self,
        portfolios: Optional[List[Dict[str, Any]]] = None,
        templates: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self._portfolios: Dict[str, Dict[str, Any]] = {
            item["portfolio_id"]: copy.deepcopy(item)
            for item in (portfolios if portfolios is not None else _SEED_PORTFOLIOS)
        }
        self._templates: List[Dict[str, Any]] = copy.deepcopy(
            templates if templates is not None else _SEED_TEMPLATES
        )
        self._lock = asyncio.Lock()
        self._logger = get_logger("portfolio.adapters.content_store")
        self.reads = 0

    async def list_templates(self, *, category: Optional[str] = None) -> List[Dict[str, Any]]:
        self.reads += 1
        templates = [
            template for template in self._templates
            if category is None or template.get("category") == category
        ]
        return copy.deepcopy(templates)

    async def get_portfolio(self, portfolio_id: str) -> Optional[Dict[str, Any]]:
        self.reads += 1
        portfolio = self._portfolios.get(portfolio_id)
        return copy.deepcopy(portfolio) if portfolio is not None else None

    async def update_portfolio(self, portfolio_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        async with self._lock:
            portfolio = self._portfolios.get(portfolio_id)
            if portfolio is None:
                return None

            protected = {"portfolio_id", "owner_id", "updated_at"}
            ignored = sorted(set(changes) & protected)
            if ignored:
                self._logger.warning("Ignoring protected portfolio fields", portfolio_id=portfolio_id, fields=ignored)

            portfolio.update({key: value for key, value in changes.items() if key not in protected})
            portfolio["updated_at"] = datetime.now(timezone.utc).isoformat()
            return copy.deepcopy(portfolio)

    async def realtime_snapshot(self) -> Dict[str, Any]:
        published = sum(1 for item in self._portfolios.values() if item.get("status") == "published")
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "portfolios": len(self._portfolios),
            "published": published,
            "templates": len(self._templates),
        }
