"""
Shared utilities for the Library Gateway.

This package aggregates common building blocks consumed by the gateway
service package:

- config: Immutable gateway configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Gateway failure taxonomy and error responses
- retry: Classified retry with exponential backoff

Do not import from service_* packages into shared/.
"""
