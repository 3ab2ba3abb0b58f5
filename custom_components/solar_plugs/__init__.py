"""Solar Plugs integration."""

from __future__ import annotations

import logging

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import (
    HomeAssistant,
    ServiceCall,
    ServiceResponse,
    SupportsResponse,
)
from homeassistant.exceptions import ConfigEntryError, ServiceValidationError
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.util import dt as dt_util

from .const import (
    ATTR_ALIAS,
    ATTR_DURATION,
    CONF_PROMETHEUS_URL,
    CONF_SOURCE_POWER_QUERY,
    CONF_SOURCE_POWER_SENSOR,
    CONF_TELEMETRY_SOURCE,
    DEFAULT_SOURCE_POWER_QUERY,
    DOMAIN,
    SERVICE_PAUSE,
    SERVICE_STATUS,
    TELEMETRY_SENSOR,
)
from .coordinator import SolarPlugsCoordinator
from .engine import DecisionEngine
from .exceptions import ConfigInvalid, UnknownLoad
from .registry import Config, build_config
from .state_store import StateStore
from .telemetry import PrometheusTelemetry, SensorTelemetry, TelemetrySource
from .tplink import TplinkController

_LOGGER = logging.getLogger(__name__)

PLATFORMS = ["sensor"]

PAUSE_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_ALIAS): cv.string,
        vol.Required(ATTR_DURATION): cv.positive_time_period,
    }
)


def _make_telemetry(hass: HomeAssistant, entry: ConfigEntry, config: Config) -> TelemetrySource:
    if entry.data.get(CONF_TELEMETRY_SOURCE) == TELEMETRY_SENSOR:
        return SensorTelemetry(hass, entry.data[CONF_SOURCE_POWER_SENSOR])
    return PrometheusTelemetry(
        async_get_clientsession(hass),
        entry.data[CONF_PROMETHEUS_URL],
        source_power_query=entry.data.get(
            CONF_SOURCE_POWER_QUERY, DEFAULT_SOURCE_POWER_QUERY
        ),
        recent_usage_window=config.recent_usage_window,
    )


def _find_coordinator(hass: HomeAssistant, alias: str) -> SolarPlugsCoordinator:
    for coordinator in hass.data.get(DOMAIN, {}).values():
        if alias in coordinator.engine.registry:
            return coordinator
    raise ServiceValidationError(f"No discretionary plug named {alias!r}")


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Solar Plugs from a config entry."""
    try:
        config, registry = build_config(entry.data)
    except ConfigInvalid as err:
        raise ConfigEntryError(f"Invalid Solar Plugs configuration: {err}") from err

    engine = DecisionEngine(
        config,
        registry,
        TplinkController(),
        _make_telemetry(hass, entry, config),
        StateStore(),
        clock=dt_util.utcnow,
    )
    coordinator = SolarPlugsCoordinator(hass, engine, config.update_interval)
    await coordinator.async_config_entry_first_refresh()

    hass.data.setdefault(DOMAIN, {})
    hass.data[DOMAIN][entry.entry_id] = coordinator

    _async_register_services(hass)

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info("Solar plugs: controlling %d discretionary plugs", len(registry))
    return True


def _async_register_services(hass: HomeAssistant) -> None:
    if hass.services.has_service(DOMAIN, SERVICE_PAUSE):
        return

    async def handle_pause(call: ServiceCall) -> None:
        alias = call.data[ATTR_ALIAS]
        coordinator = _find_coordinator(hass, alias)
        try:
            coordinator.pause(alias, call.data[ATTR_DURATION])
        except UnknownLoad as err:
            raise ServiceValidationError(str(err)) from err

    async def handle_status(call: ServiceCall) -> ServiceResponse:
        return {
            entry_id: coordinator.snapshot().as_dict()
            for entry_id, coordinator in hass.data.get(DOMAIN, {}).items()
        }

    hass.services.async_register(DOMAIN, SERVICE_PAUSE, handle_pause, schema=PAUSE_SCHEMA)
    hass.services.async_register(
        DOMAIN,
        SERVICE_STATUS,
        handle_status,
        supports_response=SupportsResponse.ONLY,
    )


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id)
        if not hass.data[DOMAIN]:
            hass.services.async_remove(DOMAIN, SERVICE_PAUSE)
            hass.services.async_remove(DOMAIN, SERVICE_STATUS)
    return unload_ok
