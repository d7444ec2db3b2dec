"""
Shared utilities for the Mirror service.

Common building blocks used by the service, the sync script and the tests:

- config: Service settings via pydantic-settings (``MIRROR_`` environment)
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Error types, API error responses and diagnostic records
- retry: Bounded retry of remote calls
- base_service: FastAPI service skeleton with health and metrics routes
- test_helpers: In-memory remote collection and test data

Nothing here imports from service_mirror.
"""
