"""
Shared utilities for the portfolio cache layer.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorators with capped backoff
- base_service: FastAPI service skeleton

Do not import from service packages into shared/.
"""
