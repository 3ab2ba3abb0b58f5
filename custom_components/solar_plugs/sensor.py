"""Sensor entities for Solar Plugs."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN
from .coordinator import SolarPlugsCoordinator

ENTITY_ID_PREFIX = "sensor.solar_plugs_"


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up sensor entities from a config entry."""
    coordinator: SolarPlugsCoordinator = hass.data[DOMAIN][entry.entry_id]

    async_add_entities(
        [
            SolarPlugsSourcePower(coordinator, entry),
            SolarPlugsSurplus(coordinator, entry),
            SolarPlugsLastEvaluation(coordinator, entry),
            SolarPlugsPausedLoads(coordinator, entry),
            SolarPlugsLastToggle(coordinator, entry),
        ]
    )


class SolarPlugsBaseSensor(CoordinatorEntity[SolarPlugsCoordinator], SensorEntity):
    """Base class for solar plugs sensors."""

    def __init__(
        self,
        coordinator: SolarPlugsCoordinator,
        entry: ConfigEntry,
        key: str,
        name: str,
    ) -> None:
        super().__init__(coordinator)
        self._attr_unique_id = f"{entry.entry_id}_{key}"
        self._attr_name = f"Solar Plugs {name}"
        self.entity_id = f"{ENTITY_ID_PREFIX}{key}"
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, entry.entry_id)},
            name="Solar Plugs",
            manufacturer="Custom",
            model="Solar Plugs",
            sw_version="1.0.0",
            entry_type=None,
        )


class SolarPlugsSourcePower(SolarPlugsBaseSensor):
    """Solar production seen by the last evaluation."""

    _attr_native_unit_of_measurement = "W"
    _attr_device_class = SensorDeviceClass.POWER
    _attr_state_class = SensorStateClass.MEASUREMENT

    def __init__(self, coordinator: SolarPlugsCoordinator, entry: ConfigEntry) -> None:
        super().__init__(coordinator, entry, "source_power", "Source Power")

    @property
    def native_value(self) -> float | None:
        result = self.coordinator.snapshot().result
        return result.source_power if result else None


class SolarPlugsSurplus(SolarPlugsBaseSensor):
    """Surplus before decisions, as computed by the last evaluation."""

    _attr_native_unit_of_measurement = "W"
    _attr_device_class = SensorDeviceClass.POWER
    _attr_state_class = SensorStateClass.MEASUREMENT

    def __init__(self, coordinator: SolarPlugsCoordinator, entry: ConfigEntry) -> None:
        super().__init__(coordinator, entry, "surplus", "Surplus")

    @property
    def native_value(self) -> float | None:
        result = self.coordinator.snapshot().result
        return result.surplus if result else None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        result = self.coordinator.snapshot().result
        return {"remaining_surplus": result.remaining_surplus if result else None}


class SolarPlugsLastEvaluation(SolarPlugsBaseSensor):
    """Outcome of the last evaluation, with its log."""

    _attr_icon = "mdi:solar-power"

    def __init__(self, coordinator: SolarPlugsCoordinator, entry: ConfigEntry) -> None:
        super().__init__(coordinator, entry, "last_evaluation", "Last Evaluation")

    @property
    def native_value(self) -> str:
        result = self.coordinator.snapshot().result
        return result.outcome.value if result else "never evaluated"

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        result = self.coordinator.snapshot().result
        if result is None:
            return {}
        attrs = result.as_dict()
        del attrs["outcome"]
        return attrs


class SolarPlugsPausedLoads(SolarPlugsBaseSensor):
    """Number of plugs under an active operator pause."""

    _attr_icon = "mdi:pause-circle"

    def __init__(self, coordinator: SolarPlugsCoordinator, entry: ConfigEntry) -> None:
        super().__init__(coordinator, entry, "paused_loads", "Paused Loads")

    @property
    def native_value(self) -> int:
        return len(self.coordinator.snapshot().pauses)

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        pauses = self.coordinator.snapshot().pauses
        return {alias: until.isoformat() for alias, until in pauses.items()}


class SolarPlugsLastToggle(SolarPlugsBaseSensor):
    """Most recent toggle time; per-plug times as attributes."""

    _attr_device_class = SensorDeviceClass.TIMESTAMP

    def __init__(self, coordinator: SolarPlugsCoordinator, entry: ConfigEntry) -> None:
        super().__init__(coordinator, entry, "last_toggle", "Last Toggle")

    @property
    def native_value(self) -> datetime | None:
        toggles = self.coordinator.snapshot().toggles
        return max(toggles.values()) if toggles else None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        toggles = self.coordinator.snapshot().toggles
        return {alias: when.isoformat() for alias, when in toggles.items()}
