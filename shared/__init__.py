"""
Shared utilities for the entitlement engine.

This package aggregates common building blocks consumed by services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for remote calls
- circuit_breaker: Resilient external call protection

Do not import from service_* packages into shared/.
"""
