"""Config flow for Solar Plugs."""

from __future__ import annotations

from typing import Any

import voluptuous as vol

from homeassistant.config_entries import ConfigFlow
from homeassistant.helpers import selector

from .const import (
    CONF_ADD_ANOTHER,
    CONF_ALIAS,
    CONF_BASELINE_CONSUMPTION,
    CONF_CAN_TURN_OFF,
    CONF_CAN_TURN_ON,
    CONF_CONSUMPTION,
    CONF_HOST,
    CONF_LOADS,
    CONF_MIN_TOGGLE_MINUTES,
    CONF_PROMETHEUS_URL,
    CONF_RECENT_USAGE_MINUTES,
    CONF_SOURCE_POWER_QUERY,
    CONF_SOURCE_POWER_SENSOR,
    CONF_TELEMETRY_SOURCE,
    CONF_UPDATE_INTERVAL,
    DEFAULT_BASELINE_CONSUMPTION,
    DEFAULT_MIN_TOGGLE_MINUTES,
    DEFAULT_RECENT_USAGE_MINUTES,
    DEFAULT_SOURCE_POWER_QUERY,
    DEFAULT_UPDATE_INTERVAL_SECONDS,
    DOMAIN,
    TELEMETRY_PROMETHEUS,
    TELEMETRY_SENSOR,
)

STEP_USER_SCHEMA = vol.Schema(
    {
        vol.Required(
            CONF_TELEMETRY_SOURCE, default=TELEMETRY_PROMETHEUS
        ): selector.SelectSelector(
            selector.SelectSelectorConfig(
                options=[TELEMETRY_PROMETHEUS, TELEMETRY_SENSOR],
                translation_key=CONF_TELEMETRY_SOURCE,
            ),
        ),
        vol.Optional(
            CONF_BASELINE_CONSUMPTION, default=DEFAULT_BASELINE_CONSUMPTION
        ): selector.NumberSelector(
            selector.NumberSelectorConfig(
                min=0, max=10000, step=10, unit_of_measurement="W",
                mode=selector.NumberSelectorMode.BOX,
            ),
        ),
        vol.Optional(
            CONF_UPDATE_INTERVAL, default=DEFAULT_UPDATE_INTERVAL_SECONDS
        ): selector.NumberSelector(
            selector.NumberSelectorConfig(
                min=10, max=3600, step=10, unit_of_measurement="s",
                mode=selector.NumberSelectorMode.BOX,
            ),
        ),
        vol.Optional(
            CONF_MIN_TOGGLE_MINUTES, default=DEFAULT_MIN_TOGGLE_MINUTES
        ): selector.NumberSelector(
            selector.NumberSelectorConfig(
                min=0, max=120, step=1, unit_of_measurement="min",
                mode=selector.NumberSelectorMode.BOX,
            ),
        ),
    }
)

STEP_PROMETHEUS_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_PROMETHEUS_URL): selector.TextSelector(
            selector.TextSelectorConfig(type=selector.TextSelectorType.URL),
        ),
        vol.Optional(
            CONF_SOURCE_POWER_QUERY, default=DEFAULT_SOURCE_POWER_QUERY
        ): str,
        vol.Optional(
            CONF_RECENT_USAGE_MINUTES, default=DEFAULT_RECENT_USAGE_MINUTES
        ): selector.NumberSelector(
            selector.NumberSelectorConfig(
                min=1, max=60, step=1, unit_of_measurement="min",
                mode=selector.NumberSelectorMode.BOX,
            ),
        ),
    }
)

STEP_SENSOR_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_SOURCE_POWER_SENSOR): selector.EntitySelector(
            selector.EntitySelectorConfig(domain="sensor", device_class="power"),
        ),
    }
)

STEP_LOAD_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_ALIAS): str,
        vol.Required(CONF_CONSUMPTION): selector.NumberSelector(
            selector.NumberSelectorConfig(
                min=0, max=5000, step=10, unit_of_measurement="W",
                mode=selector.NumberSelectorMode.BOX,
            ),
        ),
        vol.Optional(CONF_HOST): str,
        vol.Optional(CONF_CAN_TURN_ON, default=True): bool,
        vol.Optional(CONF_CAN_TURN_OFF, default=True): bool,
        vol.Optional(CONF_ADD_ANOTHER, default=False): bool,
    }
)


class SolarPlugsConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Solar Plugs."""

    VERSION = 1

    def __init__(self) -> None:
        self._data: dict[str, Any] = {CONF_LOADS: []}

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> dict:
        """Step 1: Telemetry source and regulation parameters."""
        if user_input is not None:
            self._data.update(user_input)
            if user_input[CONF_TELEMETRY_SOURCE] == TELEMETRY_SENSOR:
                return await self.async_step_sensor()
            return await self.async_step_prometheus()

        return self.async_show_form(
            step_id="user",
            data_schema=STEP_USER_SCHEMA,
        )

    async def async_step_prometheus(
        self, user_input: dict[str, Any] | None = None
    ) -> dict:
        """Step 2a: Prometheus server."""
        if user_input is not None:
            self._data.update(user_input)
            return await self.async_step_load()

        return self.async_show_form(
            step_id="prometheus",
            data_schema=STEP_PROMETHEUS_SCHEMA,
        )

    async def async_step_sensor(
        self, user_input: dict[str, Any] | None = None
    ) -> dict:
        """Step 2b: Solar production sensor."""
        if user_input is not None:
            self._data.update(user_input)
            return await self.async_step_load()

        return self.async_show_form(
            step_id="sensor",
            data_schema=STEP_SENSOR_SCHEMA,
        )

    async def async_step_load(
        self, user_input: dict[str, Any] | None = None
    ) -> dict:
        """Step 3 (repeated): One discretionary plug."""
        errors: dict[str, str] = {}
        if user_input is not None:
            load = dict(user_input)
            add_another = load.pop(CONF_ADD_ANOTHER, False)
            if any(
                existing[CONF_ALIAS] == load[CONF_ALIAS]
                for existing in self._data[CONF_LOADS]
            ):
                errors[CONF_ALIAS] = "duplicate_alias"
            else:
                self._data[CONF_LOADS].append(load)
                if not add_another:
                    return self.async_create_entry(
                        title="Solar Plugs",
                        data=self._data,
                    )

        return self.async_show_form(
            step_id="load",
            data_schema=STEP_LOAD_SCHEMA,
            errors=errors,
        )
