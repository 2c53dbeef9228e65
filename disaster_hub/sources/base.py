"""
base.py — Source adapter contract and the settle-all combinator.

Every adapter produces one alert variant. `fetch()` never raises: it runs the
adapter's `_fetch()` under its own timeout and returns a SourceOutcome that
carries either the batch or the error (SourceUnavailable / SourceTimeout).
There are no retries here — the aggregator's next scheduled cycle is the
retry.

To add a source:
  1. Subclass SourceAdapter, set `name` and `variant`
  2. Implement `_fetch()` returning a list of that variant's model
  3. Register it in core/runtime.py
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx

from disaster_hub.core.config import settings
from disaster_hub.core.errors import SourceError, SourceTimeout, SourceUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceOutcome:
    """Result of one adapter invocation: a batch, or the reason there is none."""

    source: str
    variant: str
    alerts: tuple = ()
    error: Optional[SourceError] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class SourceAdapter:
    """
    Base class for a source-specific fetcher.

    Subclasses override `_fetch()`. Real-mode HTTP calls go through
    `_get_json()`, which maps httpx failures to SourceUnavailable. Pass a
    custom `transport` (e.g. httpx.MockTransport) to stub the network.
    """

    name: str = "source"
    variant: str = "unknown"

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        mock_mode: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.adapter_timeout_seconds
        self.mock_mode = settings.sources_mock_mode if mock_mode is None else mock_mode
        self._transport = transport

    async def fetch(self) -> SourceOutcome:
        started = time.monotonic()
        try:
            alerts = await asyncio.wait_for(self._fetch(), timeout=self.timeout)
        except asyncio.TimeoutError:
            return self._failed(SourceTimeout(self.name, self.timeout), started)
        except SourceError as exc:
            return self._failed(exc, started)
        except Exception as exc:
            return self._failed(SourceUnavailable(self.name, repr(exc)), started)

        return SourceOutcome(
            source=self.name,
            variant=self.variant,
            alerts=tuple(alerts),
            elapsed=time.monotonic() - started,
        )

    async def _fetch(self) -> list:
        raise NotImplementedError

    def _failed(self, error: SourceError, started: float) -> SourceOutcome:
        return SourceOutcome(
            source=self.name,
            variant=self.variant,
            error=error,
            elapsed=time.monotonic() - started,
        )

    async def _get_json(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": "disaster-response-hub/0.1", "Accept": "application/json"},
        ) as client:
            try:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as exc:
                raise SourceTimeout(self.name, self.timeout) from exc
            except httpx.HTTPStatusError as exc:
                raise SourceUnavailable(
                    self.name,
                    f"HTTP {exc.response.status_code} — {exc.response.text[:200]}",
                ) from exc
            except (httpx.HTTPError, ValueError) as exc:
                raise SourceUnavailable(self.name, repr(exc)) from exc


async def settle_all(adapters: Sequence[SourceAdapter]) -> list[SourceOutcome]:
    """
    Invoke every adapter concurrently and wait for all of them to settle.

    The result has one SourceOutcome per adapter, in input order. A failing
    or slow adapter never blanks out the others; total latency is bounded by
    the slowest adapter's timeout.
    """
    results = await asyncio.gather(
        *(adapter.fetch() for adapter in adapters),
        return_exceptions=True,
    )

    outcomes: list[SourceOutcome] = []
    for adapter, result in zip(adapters, results):
        if isinstance(result, SourceOutcome):
            outcomes.append(result)
        elif isinstance(result, asyncio.CancelledError):
            raise result
        else:
            # fetch() is not supposed to raise; keep the cycle alive if it does
            outcomes.append(SourceOutcome(
                source=adapter.name,
                variant=adapter.variant,
                error=SourceUnavailable(adapter.name, repr(result)),
            ))
    return outcomes
