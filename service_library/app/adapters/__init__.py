"""
Adapters package for the Library Gateway.

Contains the HTTP client wrapper for the upstream content API. The adapter
encapsulates:

- Base URL, API-key header and query encoding
- The classified retry policy
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .upstream_client import UpstreamClient

__all__ = [
    "UpstreamClient",
]
