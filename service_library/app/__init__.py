"""
Library Gateway service package.

Sits between the presentation layer and the book-collection content API:
- Transport: one HTTP call with API-key header and envelope decoding
- Retries: exponential backoff on transient and 5xx failures only
- Caching: per-operation TTLs, date-scoped keys, memory or Redis store
- Fan-out: concurrent batches joined into a complete keyed result

Structure:
- app.adapters: HTTP client for the upstream API.
- app.caching: TTL cache, stores and cache policy.
- app.aggregation: Request pipeline and fan-out aggregator.
- app.domain: Request specs, envelope, typed records and formatting.
- app.library: The LibraryGateway facade.
"""
