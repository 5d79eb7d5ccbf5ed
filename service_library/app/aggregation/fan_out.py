"""
Concurrent fan-out of named request specs with a complete, keyed join.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Iterator, Mapping, Optional, Union

from shared.errors import DecodeFailure, GatewayError, TransportFailure, UpstreamError
from shared.logging import bound_batch_id, get_logger
from shared.metrics import MetricsCollector

from ..domain.requests import Envelope, RequestSpec

Outcome = Union[Envelope, TransportFailure, UpstreamError, DecodeFailure]
UnitRunner = Callable[[RequestSpec], Awaitable[Envelope]]


class AggregateResult(Mapping):
    """Read-only map of spec key -> outcome (an Envelope or a GatewayError)."""

    def __init__(self, outcomes: Dict[str, Outcome]):
        self._outcomes = dict(outcomes)

    def __getitem__(self, key: str) -> Outcome:
        return self._outcomes[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outcomes)

    def __len__(self) -> int:
        return len(self._outcomes)

    def __repr__(self) -> str:
        return f"AggregateResult({self._outcomes!r})"

    def successes(self) -> Dict[str, Envelope]:
        return {k: v for k, v in self._outcomes.items() if isinstance(v, Envelope)}

    def failures(self) -> Dict[str, GatewayError]:
        return {k: v for k, v in self._outcomes.items() if isinstance(v, GatewayError)}

    def envelope(self, key: str) -> Optional[Envelope]:
        outcome = self._outcomes.get(key)
        return outcome if isinstance(outcome, Envelope) else None

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        rendered: Dict[str, Dict[str, Any]] = {}
        for key, outcome in self._outcomes.items():
            if isinstance(outcome, Envelope):
                rendered[key] = {"ok": True, "envelope": outcome.to_dict()}
            else:
                rendered[key] = {"ok": False, "error": outcome.to_response().model_dump()}
        return rendered


class Aggregator:
    """Runs every spec concurrently and waits for all of them.

    A failing unit never cancels its siblings. Each unit is bounded by
    ``unit_timeout``; the whole batch by an optional deadline, after which
    unfinished units are cancelled and recorded as timeouts.
    """

    def __init__(
        self,
        runner: UnitRunner,
        *,
        unit_timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.runner = runner
        self.unit_timeout = unit_timeout
        self.metrics = metrics
        self.logger = get_logger("library.aggregator")

    async def _run_unit(self, name: str, spec: RequestSpec) -> Outcome:
        try:
            if self.unit_timeout is not None:
                return await asyncio.wait_for(self.runner(spec), timeout=self.unit_timeout)
            return await self.runner(spec)
        except asyncio.TimeoutError:
            self.logger.error("Batch unit timed out", key=name, path=spec.path, timeout=self.unit_timeout)
            return TransportFailure(
                f"Unit '{name}' exceeded {self.unit_timeout}s",
                endpoint=spec.path,
                timeout=True,
            )
        except (TransportFailure, UpstreamError, DecodeFailure) as exc:
            self.logger.error(
                "Batch unit failed",
                key=name,
                path=spec.path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return exc
        except Exception as exc:
            self.logger.error(
                "Batch unit raised unexpected error",
                key=name,
                path=spec.path,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            return TransportFailure(
                f"Unexpected error in unit '{name}': {exc}",
                endpoint=spec.path,
                details={"error_class": type(exc).__name__},
            )

    async def fan_out(
        self,
        specs: Mapping[str, RequestSpec],
        *,
        deadline: Optional[float] = None,
    ) -> AggregateResult:
        if not specs:
            return AggregateResult({})

        with bound_batch_id():
            start = time.perf_counter()
            outcomes = await self._join(specs, deadline)
            duration = time.perf_counter() - start

            result = AggregateResult(outcomes)
            failed = len(result.failures())
            self.logger.info(
                "Batch completed",
                total=len(result),
                succeeded=len(result) - failed,
                failed=failed,
                duration_ms=round(duration * 1000, 2),
            )

        if self.metrics is not None:
            for outcome in outcomes.values():
                label = "success" if isinstance(outcome, Envelope) else type(outcome).__name__
                self.metrics.increment_counter("batch_units_total", outcome=label)
            self.metrics.observe_histogram("batch_duration_seconds", duration)
        return result

    async def _join(self, specs: Mapping[str, RequestSpec], deadline: Optional[float]) -> Dict[str, Outcome]:
        tasks: Dict[str, "asyncio.Task[Outcome]"] = {
            name: asyncio.create_task(self._run_unit(name, spec), name=f"unit:{name}")
            for name, spec in specs.items()
        }

        try:
            done, pending = await asyncio.wait(tasks.values(), timeout=deadline)
        except asyncio.CancelledError:
            for task in tasks.values():
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: Dict[str, Outcome] = {}
        for name, task in tasks.items():
            if task in done:
                outcomes[name] = task.result()
            else:
                self.logger.error("Batch deadline expired before unit completed", key=name, deadline=deadline)
                outcomes[name] = TransportFailure(
                    f"Batch deadline of {deadline}s expired",
                    endpoint=specs[name].path,
                    timeout=True,
                )
        return outcomes
