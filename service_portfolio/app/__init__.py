"""
Portfolio service package.

Serves portfolio content through a cache layer that keeps working when Redis
does not, and labels every response with HTTP freshness headers.

Structure:
- app.main: FastAPI app, routes, and lifecycle wiring.
- app.adapters: System-of-record collaborators.
- app.caching: Key namespaces, the fail-open cache store, memoization.
- app.freshness: Cache-Control policy and conditional request validation.
"""
