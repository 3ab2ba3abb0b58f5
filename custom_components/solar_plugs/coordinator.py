"""DataUpdateCoordinator for Solar Plugs."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging

from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator

from .const import DOMAIN
from .engine import DecisionEngine, EvaluationResult, StatusSnapshot

_LOGGER = logging.getLogger(__name__)


class SolarPlugsCoordinator(DataUpdateCoordinator[EvaluationResult]):
    """Coordinator that runs one evaluation cycle per tick.

    The next tick is only scheduled once the previous refresh has returned,
    so cycles never overlap.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        engine: DecisionEngine,
        update_interval: timedelta,
    ) -> None:
        super().__init__(
            hass,
            _LOGGER,
            name=DOMAIN,
            update_interval=update_interval,
        )
        self._engine = engine

    @property
    def engine(self) -> DecisionEngine:
        return self._engine

    def snapshot(self) -> StatusSnapshot:
        return self._engine.snapshot()

    def pause(self, alias: str, duration: timedelta) -> datetime:
        """Register an operator pause. Does not wait for a running cycle."""
        until = self._engine.pause(alias, duration)
        self.async_update_listeners()
        return until

    async def _async_update_data(self) -> EvaluationResult:
        result = await self._engine.async_evaluate()
        _LOGGER.debug(
            "Solar plugs: %s, surplus=%s, %d decisions",
            result.outcome.value,
            result.surplus,
            len(result.decisions),
        )
        return result
