"""Unit tests for the coordinator and service plumbing.

Uses lightweight mocks: no running Home Assistant instance required.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from homeassistant.exceptions import ServiceValidationError

from custom_components.solar_plugs import _find_coordinator
from custom_components.solar_plugs.const import DOMAIN
from custom_components.solar_plugs.coordinator import SolarPlugsCoordinator
from custom_components.solar_plugs.engine import (
    DecisionEngine,
    EvaluationResult,
    Outcome,
    StatusSnapshot,
)
from custom_components.solar_plugs.registry import Config, Load, LoadRegistry
from custom_components.solar_plugs.state_store import StateStore

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_engine() -> DecisionEngine:
    config = Config(
        baseline_consumption=200,
        min_toggle_interval=timedelta(minutes=5),
        update_interval=timedelta(minutes=1),
        recent_usage_window=timedelta(minutes=5),
    )
    return DecisionEngine(
        config,
        LoadRegistry([Load(identity="Heater", fallback_consumption=500)]),
        controller=AsyncMock(),
        telemetry=AsyncMock(),
        store=StateStore(),
        clock=lambda: NOW,
    )


def _make_coordinator(engine: DecisionEngine | MagicMock | None = None) -> SolarPlugsCoordinator:
    """Build a coordinator with mocked HA plumbing."""
    # Bypass DataUpdateCoordinator.__init__
    coord = object.__new__(SolarPlugsCoordinator)
    coord.hass = MagicMock()
    coord._engine = engine if engine is not None else _make_engine()
    coord.async_update_listeners = MagicMock()
    coord.logger = MagicMock()
    return coord


# ---------------------------------------------------------------------------
# Tests: coordinator
# ---------------------------------------------------------------------------


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_returns_engine_result(self):
        result = EvaluationResult(started=NOW, outcome=Outcome.PARTIAL, surplus=-40)
        engine = MagicMock()
        engine.async_evaluate = AsyncMock(return_value=result)
        coord = _make_coordinator(engine)

        assert await coord._async_update_data() is result
        engine.async_evaluate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_aborted_cycle_is_still_data(self):
        result = EvaluationResult(started=NOW)
        result.abort("querying solar power: down")
        engine = MagicMock()
        engine.async_evaluate = AsyncMock(return_value=result)
        coord = _make_coordinator(engine)

        data = await coord._async_update_data()

        assert data.outcome == Outcome.ABORTED
        assert data.errors == ["querying solar power: down"]


class TestPause:
    def test_pause_records_and_notifies(self):
        coord = _make_coordinator()

        until = coord.pause("Heater", timedelta(hours=1))

        assert until == NOW + timedelta(hours=1)
        assert coord.snapshot().pauses == {"Heater": until}
        coord.async_update_listeners.assert_called_once()

    def test_snapshot_delegates(self):
        coord = _make_coordinator()
        snap = coord.snapshot()
        assert isinstance(snap, StatusSnapshot)
        assert snap.result is None


# ---------------------------------------------------------------------------
# Tests: service routing
# ---------------------------------------------------------------------------


class TestFindCoordinator:
    def test_finds_entry_owning_alias(self):
        coord = _make_coordinator()
        hass = MagicMock()
        hass.data = {DOMAIN: {"entry1": coord}}

        assert _find_coordinator(hass, "Heater") is coord

    def test_unknown_alias(self):
        hass = MagicMock()
        hass.data = {DOMAIN: {"entry1": _make_coordinator()}}

        with pytest.raises(ServiceValidationError):
            _find_coordinator(hass, "Kettle")

    def test_no_entries(self):
        hass = MagicMock()
        hass.data = {}

        with pytest.raises(ServiceValidationError):
            _find_coordinator(hass, "Heater")
