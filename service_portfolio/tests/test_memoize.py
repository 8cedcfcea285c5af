"""
Unit tests for memoization through the cache store.
"""

import hashlib
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from service_portfolio.app.caching import KeyNamespace, build_memo_key, memoize, memoized, set_cache_store


class TestBuildMemoKey:
    """Test cases for memo key derivation."""

    def test_key_shape(self):
        key = build_memo_key("ai:score", ("p-1",), {"model": "small"})

        expected_digest = hashlib.md5(
            json.dumps([["p-1"], {"model": "small"}], sort_keys=True, separators=(",", ":")).encode("utf-8")
        ).hexdigest()
        assert key == f"ai:score:{expected_digest}"

    def test_trailing_colon_is_normalised(self):
        assert build_memo_key("template:", (), {}) == build_memo_key("template", (), {})

    def test_keyword_order_does_not_matter(self):
        assert build_memo_key("x", (), {"a": 1, "b": 2}) == build_memo_key("x", (), {"b": 2, "a": 1})

    def test_different_arguments_give_different_keys(self):
        assert build_memo_key("x", (1,), {}) != build_memo_key("x", (2,), {})


class TestMemoize:
    """Test cases for the memoize wrapper."""

    @pytest.mark.asyncio
    async def test_second_call_uses_cached_result(self, memory_store):
        work = AsyncMock(return_value={"score": 0.9})
        scored = memoize(f"{KeyNamespace.AI_RESULT.value}score", 3600, work, store=memory_store)

        assert await scored("p-1") == {"score": 0.9}
        assert await scored("p-1") == {"score": 0.9}

        work.assert_awaited_once_with("p-1")

    @pytest.mark.asyncio
    async def test_distinct_arguments_compute_separately(self, memory_store):
        work = AsyncMock(side_effect=lambda portfolio_id: {"id": portfolio_id})
        scored = memoize("ai:score", 60, work, store=memory_store)

        assert await scored("p-1") == {"id": "p-1"}
        assert await scored("p-2") == {"id": "p-2"}
        assert work.await_count == 2

    @pytest.mark.asyncio
    async def test_plain_callable_is_supported(self, memory_store):
        work = MagicMock(return_value=[1, 2, 3])
        summarise = memoize("analytics:summary", 60, work, store=memory_store)

        assert await summarise(window="7d") == [1, 2, 3]
        assert await summarise(window="7d") == [1, 2, 3]
        work.assert_called_once_with(window="7d")

    @pytest.mark.asyncio
    async def test_none_results_are_recomputed(self, memory_store):
        work = AsyncMock(return_value=None)
        lookup = memoize("github:repo", 60, work, store=memory_store)

        await lookup("octocat/hello")
        await lookup("octocat/hello")

        assert work.await_count == 2

    @pytest.mark.asyncio
    async def test_result_is_stored_under_cache_key(self, memory_store):
        work = AsyncMock(return_value={"ok": True})
        lookup = memoize("github:repo", 60, work, store=memory_store)

        await lookup("octocat/hello")

        key = lookup.cache_key("octocat/hello")
        assert key == build_memo_key("github:repo", ("octocat/hello",), {})
        assert await memory_store.get(key) == {"ok": True}

    @pytest.mark.asyncio
    async def test_invalidate_forces_recompute(self, memory_store):
        work = AsyncMock(return_value={"ok": True})
        lookup = memoize("github:repo", 60, work, store=memory_store)

        await lookup("octocat/hello")
        assert await lookup.invalidate("octocat/hello") == 1
        await lookup("octocat/hello")

        assert work.await_count == 2

    @pytest.mark.asyncio
    async def test_ttl_is_passed_to_redis(self, redis_store):
        await redis_store.connect()
        work = AsyncMock(return_value={"views": 3})
        summarise = memoize("analytics:views", 120, work, store=redis_store)

        await summarise("p-1")

        assert 0 < await redis_store.get_ttl(summarise.cache_key("p-1")) <= 120

    @pytest.mark.asyncio
    async def test_custom_key_builder(self, memory_store):
        work = AsyncMock(return_value="rendered")
        render = memoize(
            "template:render",
            60,
            work,
            store=memory_store,
            key_builder=lambda prefix, args, kwargs: f"{prefix}:{args[0]}",
        )

        await render("developer")

        assert await memory_store.get("template:render:developer") == "rendered"

    @pytest.mark.asyncio
    async def test_work_errors_propagate_and_are_not_cached(self, memory_store):
        work = AsyncMock(side_effect=[RuntimeError("model timeout"), {"score": 1}])
        scored = memoize("ai:score", 60, work, store=memory_store)

        with pytest.raises(RuntimeError):
            await scored("p-1")
        assert await scored("p-1") == {"score": 1}

    @pytest.mark.asyncio
    async def test_wrapper_keeps_metadata(self, memory_store):
        async def fetch_templates(category=None):
            """List templates."""
            return []

        wrapped = memoize("template:list", 60, fetch_templates, store=memory_store)

        assert wrapped.__name__ == "fetch_templates"
        assert wrapped.__doc__ == "List templates."

    @pytest.mark.asyncio
    async def test_decorator_form_uses_process_wide_store(self, memory_store):
        set_cache_store(memory_store)
        calls = []

        @memoized("analytics:daily", ttl=300)
        async def daily_views(portfolio_id):
            calls.append(portfolio_id)
            return {"portfolio_id": portfolio_id, "views": 7}

        assert await daily_views("p-1") == {"portfolio_id": "p-1", "views": 7}
        assert await daily_views("p-1") == {"portfolio_id": "p-1", "views": 7}
        assert calls == ["p-1"]
        assert await memory_store.get(daily_views.cache_key("p-1")) is not None
