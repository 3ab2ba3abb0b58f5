"""Telemetry sources: aggregate solar production and recent per-plug usage."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from .const import (
    DEFAULT_SOURCE_POWER_QUERY,
    RECENT_USAGE_LABEL,
    RECENT_USAGE_QUERY,
    TELEMETRY_TIMEOUT_SECONDS,
)
from .exceptions import TelemetryUnavailable

if TYPE_CHECKING:
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)


class TelemetrySource(ABC):
    """Abstract base class for telemetry sources."""

    @abstractmethod
    async def async_fetch_source_power(self) -> float:
        """Return current solar production in W.

        Raises:
            TelemetryUnavailable: no usable reading.
        """

    async def async_fetch_recent_usage(self) -> dict[str, float]:
        """Return recent peak usage in W keyed by plug alias.

        Best-effort; a missing entry means no bias is available.

        Raises:
            TelemetryUnavailable: history could not be fetched.
        """
        return {}


class PrometheusTelemetry(TelemetrySource):
    """Reads solar production and plug history from a Prometheus server."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        source_power_query: str = DEFAULT_SOURCE_POWER_QUERY,
        recent_usage_window: timedelta = timedelta(minutes=5),
        timeout: float = TELEMETRY_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session
        self._url = url.rstrip("/")
        self._source_power_query = source_power_query
        self._recent_usage_window = recent_usage_window
        self._timeout = timeout

    async def _async_query(self, expr: str) -> list[dict[str, Any]]:
        """Evaluate an instant query, returning the result vector."""
        async with self._session.get(
            f"{self._url}/api/v1/query",
            params={"query": expr},
            timeout=aiohttp.ClientTimeout(total=self._timeout),
        ) as response:
            response.raise_for_status()
            body = await response.json()

        if body.get("status") != "success":
            raise ValueError(f"query failed: {body.get('error', 'unknown error')}")
        for warning in body.get("warnings", []):
            _LOGGER.debug("During Prometheus query evaluation: %s", warning)
        data = body.get("data", {})
        if data.get("resultType") != "vector":
            raise ValueError(f"query yielded {data.get('resultType')}, want vector")
        return data.get("result", [])

    async def async_fetch_source_power(self) -> float:
        try:
            vec = await self._async_query(self._source_power_query)
            if len(vec) != 1:
                raise ValueError(f"query yielded vector of {len(vec)} values, want 1")
            return float(vec[0]["value"][1])
        except (aiohttp.ClientError, TimeoutError, ValueError, KeyError, IndexError) as err:
            raise TelemetryUnavailable(f"Prometheus source power: {err}") from err

    async def async_fetch_recent_usage(self) -> dict[str, float]:
        window = f"{int(self._recent_usage_window.total_seconds())}s"
        usage: dict[str, float] = {}
        try:
            vec = await self._async_query(RECENT_USAGE_QUERY.format(window=window))
            for sample in vec:
                name = sample.get("metric", {}).get(RECENT_USAGE_LABEL)
                if name:
                    usage[name] = float(sample["value"][1])
        except (aiohttp.ClientError, TimeoutError, ValueError, KeyError, IndexError) as err:
            raise TelemetryUnavailable(f"Prometheus recent usage: {err}") from err
        return usage


class SensorTelemetry(TelemetrySource):
    """Reads solar production from a Home Assistant power sensor."""

    def __init__(self, hass: HomeAssistant, entity_id: str) -> None:
        self._hass = hass
        self._entity_id = entity_id

    async def async_fetch_source_power(self) -> float:
        state = self._hass.states.get(self._entity_id)
        if state is None or state.state in ("unavailable", "unknown"):
            raise TelemetryUnavailable(f"{self._entity_id} is unavailable")
        try:
            value = float(state.state)
        except (ValueError, TypeError) as err:
            raise TelemetryUnavailable(
                f"{self._entity_id} has non-numeric state {state.state!r}"
            ) from err
        if state.attributes.get("unit_of_measurement") == "kW":
            value *= 1000
        return value
