"""Unit tests for telemetry sources. HTTP session and hass are mocked."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from custom_components.solar_plugs.exceptions import TelemetryUnavailable
from custom_components.solar_plugs.telemetry import PrometheusTelemetry, SensorTelemetry


def _vector(*samples: tuple[dict, str]) -> dict:
    return {
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [
                {"metric": metric, "value": [1780000000.0, value]}
                for metric, value in samples
            ],
        },
    }


def _session(body: dict | None = None, error: Exception | None = None) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock(side_effect=error)
    response.json = AsyncMock(return_value=body)
    session = MagicMock()
    session.get.return_value.__aenter__.return_value = response
    session.get.return_value.__aexit__.return_value = False
    return session


class TestPrometheusSourcePower:
    @pytest.mark.asyncio
    async def test_single_sample(self):
        session = _session(_vector(({}, "2345.5")))
        telemetry = PrometheusTelemetry(session, "http://prometheus:9090/")

        assert await telemetry.async_fetch_source_power() == 2345.5

        args, kwargs = session.get.call_args
        assert args[0] == "http://prometheus:9090/api/v1/query"
        assert kwargs["params"] == {"query": 'sum(power_production_watts{job="solarmon"})'}

    @pytest.mark.asyncio
    async def test_custom_query(self):
        session = _session(_vector(({}, "10")))
        telemetry = PrometheusTelemetry(session, "http://p", source_power_query="sum(pv_watts)")

        await telemetry.async_fetch_source_power()

        assert session.get.call_args.kwargs["params"] == {"query": "sum(pv_watts)"}

    @pytest.mark.asyncio
    async def test_empty_vector(self):
        telemetry = PrometheusTelemetry(_session(_vector()), "http://p")
        with pytest.raises(TelemetryUnavailable, match="0 values"):
            await telemetry.async_fetch_source_power()

    @pytest.mark.asyncio
    async def test_wrong_result_type(self):
        body = {"status": "success", "data": {"resultType": "matrix", "result": []}}
        telemetry = PrometheusTelemetry(_session(body), "http://p")
        with pytest.raises(TelemetryUnavailable, match="matrix"):
            await telemetry.async_fetch_source_power()

    @pytest.mark.asyncio
    async def test_query_error(self):
        body = {"status": "error", "error": "parse error"}
        telemetry = PrometheusTelemetry(_session(body), "http://p")
        with pytest.raises(TelemetryUnavailable, match="parse error"):
            await telemetry.async_fetch_source_power()

    @pytest.mark.asyncio
    async def test_http_error(self):
        session = _session(error=aiohttp.ClientError("503"))
        telemetry = PrometheusTelemetry(session, "http://p")
        with pytest.raises(TelemetryUnavailable):
            await telemetry.async_fetch_source_power()


class TestPrometheusRecentUsage:
    @pytest.mark.asyncio
    async def test_keyed_by_name(self):
        session = _session(
            _vector(({"name": "Pool pump"}, "812.4"), ({"name": "Heater"}, "0"), ({}, "5"))
        )
        telemetry = PrometheusTelemetry(
            session, "http://p", recent_usage_window=timedelta(minutes=10)
        )

        usage = await telemetry.async_fetch_recent_usage()

        assert usage == {"Pool pump": 812.4, "Heater": 0.0}
        query = session.get.call_args.kwargs["params"]["query"]
        assert "[600s]" in query

    @pytest.mark.asyncio
    async def test_failure_raises_telemetry_unavailable(self):
        telemetry = PrometheusTelemetry(_session(error=aiohttp.ClientError()), "http://p")
        with pytest.raises(TelemetryUnavailable):
            await telemetry.async_fetch_recent_usage()


def _hass(state: str | None, unit: str = "W") -> MagicMock:
    hass = MagicMock()
    if state is None:
        hass.states.get.return_value = None
    else:
        hass.states.get.return_value = MagicMock(
            state=state, attributes={"unit_of_measurement": unit}
        )
    return hass


class TestSensorTelemetry:
    @pytest.mark.asyncio
    async def test_watts(self):
        telemetry = SensorTelemetry(_hass("1520"), "sensor.solar")
        assert await telemetry.async_fetch_source_power() == 1520.0

    @pytest.mark.asyncio
    async def test_kilowatts(self):
        telemetry = SensorTelemetry(_hass("1.5", unit="kW"), "sensor.solar")
        assert await telemetry.async_fetch_source_power() == 1500.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", [None, "unavailable", "unknown", "n/a"])
    async def test_unusable_state(self, state):
        telemetry = SensorTelemetry(_hass(state), "sensor.solar")
        with pytest.raises(TelemetryUnavailable):
            await telemetry.async_fetch_source_power()

    @pytest.mark.asyncio
    async def test_no_recent_usage(self):
        telemetry = SensorTelemetry(_hass("100"), "sensor.solar")
        assert await telemetry.async_fetch_recent_usage() == {}
