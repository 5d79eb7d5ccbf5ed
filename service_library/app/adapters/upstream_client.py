"""
Upstream content API client.
"""

import time
from typing import Any, Optional

import httpx

from shared.config import GatewayConfig
from shared.errors import DecodeFailure, TransportFailure, UpstreamError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryExecutor

from ..domain.requests import Envelope, RequestSpec


class UpstreamClient:
    """Executes request specs against the upstream and decodes the envelope.

    Holds no per-call state; an ``httpx.AsyncClient`` is opened per request
    so the client can be shared freely between concurrent units.
    """

    def __init__(
        self,
        config: GatewayConfig,
        *,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_executor: Optional[RetryExecutor] = None,
    ):
        self.config = config
        self.base_url = config.normalized_base_url
        self.metrics = metrics
        self._transport = transport
        self.logger = get_logger("library.upstream_client")
        self.retry_executor = retry_executor or RetryExecutor(
            RetryConfig(
                max_attempts=config.max_retry_attempts,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
                jitter=config.retry_jitter,
            ),
            metrics=metrics,
        )

    def _headers(self) -> dict:
        return {
            "X-API-Key": self.config.api_key.get_secret_value(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def execute(self, spec: RequestSpec) -> Envelope:
        """Perform one HTTP call for ``spec``."""
        url = f"{self.base_url}{spec.path}"
        method = spec.method.value
        start = time.perf_counter()

        try:
            async with httpx.AsyncClient(
                timeout=self.config.request_timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(
                    method,
                    url,
                    params=spec.encoded_query(),
                    json=spec.body,
                    headers=self._headers(),
                )
        except httpx.TimeoutException as exc:
            self.logger.error("Upstream request timed out", method=method, path=spec.path, error=str(exc))
            raise TransportFailure(
                f"Timed out calling {spec.path}",
                endpoint=spec.path,
                timeout=True,
                details={"error": str(exc)},
            ) from exc
        except httpx.HTTPError as exc:
            self.logger.error(
                "Upstream request failed",
                method=method,
                path=spec.path,
                error=str(exc),
                error_class=type(exc).__name__,
            )
            raise TransportFailure(
                f"Could not reach upstream for {spec.path}: {exc}",
                endpoint=spec.path,
                details={"error": str(exc), "error_class": type(exc).__name__},
            ) from exc

        duration = time.perf_counter() - start
        self._observe(method, spec.path, response, duration)

        if response.status_code >= 400:
            message = _error_message(response)
            self.logger.error(
                "Upstream returned error status",
                method=method,
                path=spec.path,
                status_code=response.status_code,
                message=message,
            )
            raise UpstreamError(response.status_code, message, endpoint=spec.path)

        try:
            payload = response.json()
        except ValueError as exc:
            raise DecodeFailure(
                f"Response from {spec.path} is not valid JSON",
                kind="envelope",
                details={"endpoint": spec.path, "status": response.status_code},
            ) from exc

        return Envelope.from_payload(payload)

    async def execute_with_retry(self, spec: RequestSpec, max_attempts: Optional[int] = None) -> Envelope:
        """``execute`` wrapped in classified retries."""
        return await self.retry_executor.call(
            self.execute,
            spec,
            max_attempts=max_attempts,
            operation=f"{spec.method.value} {spec.path}",
        )

    def _observe(self, method: str, path: str, response: httpx.Response, duration: float) -> None:
        self.logger.info(
            "Upstream response received",
            method=method,
            path=path,
            status_code=response.status_code,
            response_size=len(response.content),
            duration_ms=round(duration * 1000, 2),
        )
        if self.metrics is not None:
            self.metrics.record_upstream_request(method, response.status_code, duration)


def _error_message(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for field in ("message", "error", "detail"):
            if body.get(field):
                return str(body[field])
    return response.reason_phrase or f"HTTP {response.status_code}"
