"""
Request specifications and the upstream response envelope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from shared.errors import DecodeFailure

Scalar = Union[str, int, float, bool, None]


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"


@dataclass(frozen=True)
class RequestSpec:
    """One named upstream call.

    ``cache_ttl`` of ``None`` means the default TTL applies; ``cacheable``
    set to False bypasses the cache entirely (random selections, writes).
    """

    key: str
    path: str
    method: HttpMethod = HttpMethod.GET
    query: Mapping[str, Scalar] = field(default_factory=dict)
    body: Any = None
    cache_key: Optional[str] = None
    cache_ttl: Optional[float] = None
    cacheable: bool = True
    refresh: bool = False

    def __post_init__(self) -> None:
        if not self.path.startswith("/"):
            raise ValueError(f"path must start with '/': {self.path!r}")
        object.__setattr__(self, "method", HttpMethod(self.method))
        object.__setattr__(self, "query", MappingProxyType(dict(self.query)))
        if self.method is HttpMethod.POST:
            object.__setattr__(self, "cacheable", False)

    @property
    def effective_cache_key(self) -> str:
        """Cache key for this spec, derived from method, path and query when unset."""
        if self.cache_key:
            return self.cache_key
        parts = [self.method.value, self.path]
        # refresh only controls freshness, it does not select different data
        params = sorted((k, v) for k, v in self.query.items() if k != "refresh")
        if params:
            parts.append("&".join(f"{k}={serialize_query_value(v)}" for k, v in params))
        return ":".join(parts)

    def encoded_query(self) -> Dict[str, str]:
        """Query parameters as upstream expects them (booleans as 'true'/'false')."""
        return {
            name: serialize_query_value(value)
            for name, value in self.query.items()
            if value is not None
        }


def serialize_query_value(value: Scalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class Envelope:
    """The upstream ``{success, data, message}`` wrapper.

    Extra top-level members (``pagination``, ``date_info``, ``cached``) are
    kept in ``extras``.
    """

    success: bool
    data: Any = None
    message: Optional[str] = None
    extras: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return self.success and self.data is not None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extras)
        payload["success"] = self.success
        if self.data is not None:
            payload["data"] = self.data
        if self.message is not None:
            payload["message"] = self.message
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> "Envelope":
        if not isinstance(payload, dict):
            raise DecodeFailure(
                f"Envelope must be a JSON object, got {type(payload).__name__}",
                kind="envelope",
            )
        success = payload.get("success")
        if not isinstance(success, bool):
            raise DecodeFailure("Envelope is missing boolean 'success'", kind="envelope")

        message = payload.get("message")
        extras = {k: v for k, v in payload.items() if k not in ("success", "data", "message")}
        return cls(
            success=success,
            data=payload.get("data"),
            message=str(message) if message is not None else None,
            extras=extras,
        )
