"""
Shared fixtures for portfolio service tests.
"""

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from shared.retry import RetryConfig
from service_portfolio.app.caching import CacheStore, set_cache_store
from service_portfolio.app.caching.backends import RedisCacheBackend


@pytest.fixture
def fast_retry():
    """Connect retry settings without sleeping."""
    return RetryConfig(max_attempts=2, base_delay=0, max_delay=0, jitter=False)


@pytest.fixture
def metrics():
    """Metrics collector with an isolated registry."""
    return MetricsCollector("portfolio-test", registry=CollectorRegistry())


@pytest.fixture
def redis_server():
    """In-process Redis server; set ``connected = False`` to simulate an outage."""
    return FakeServer()


@pytest.fixture
def redis_client(redis_server):
    return FakeAsyncRedis(server=redis_server)


@pytest.fixture
def redis_backend(redis_client):
    return RedisCacheBackend("redis://cache.test:6379/0", client=redis_client)


@pytest.fixture
def memory_store(metrics):
    """Store with no Redis configured: always on the in-process fallback."""
    return CacheStore(metrics=metrics)


@pytest.fixture
def redis_store(redis_backend, fast_retry, metrics):
    """Store backed by fakeredis. Call ``connect()`` in the test."""
    return CacheStore(remote=redis_backend, connect_retry=fast_retry, metrics=metrics)


@pytest.fixture(autouse=True)
def reset_cache_store():
    """Keep the process-wide store from leaking between tests."""
    set_cache_store(None)
    yield
    set_cache_store(None)
