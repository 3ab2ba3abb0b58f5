"""Configured discretionary loads and regulation parameters. No Home Assistant imports."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import voluptuous as vol

from .const import (
    ADDRESS_HISTORY_MINUTES,
    COMMAND_TIMEOUT_SECONDS,
    CONF_ALIAS,
    CONF_BASELINE_CONSUMPTION,
    CONF_CAN_TURN_OFF,
    CONF_CAN_TURN_ON,
    CONF_CONSUMPTION,
    CONF_HOST,
    CONF_LOADS,
    CONF_MIN_TOGGLE_MINUTES,
    CONF_RECENT_USAGE_MINUTES,
    CONF_UPDATE_INTERVAL,
    CYCLE_TIMEOUT_SECONDS,
    DEFAULT_BASELINE_CONSUMPTION,
    DEFAULT_MIN_TOGGLE_MINUTES,
    DEFAULT_RECENT_USAGE_MINUTES,
    DEFAULT_UPDATE_INTERVAL_SECONDS,
    DISCOVERY_TIMEOUT_SECONDS,
    QUERY_TIMEOUT_SECONDS,
)
from .exceptions import ConfigInvalid


@dataclass(frozen=True)
class Load:
    identity: str  # Plug alias, stable across cycles
    fallback_consumption: float  # W, assumed while off or unmeasured
    can_turn_on: bool = True
    can_turn_off: bool = True
    host: str | None = None  # Optional fixed address; otherwise learned by discovery


@dataclass(frozen=True)
class Config:
    baseline_consumption: float  # W, always-on household load
    min_toggle_interval: timedelta
    update_interval: timedelta
    recent_usage_window: timedelta
    discovery_timeout: float = DISCOVERY_TIMEOUT_SECONDS  # s
    query_timeout: float = QUERY_TIMEOUT_SECONDS  # s
    command_timeout: float = COMMAND_TIMEOUT_SECONDS  # s
    cycle_timeout: float = CYCLE_TIMEOUT_SECONDS  # s
    address_history: timedelta = timedelta(minutes=ADDRESS_HISTORY_MINUTES)


class LoadRegistry:
    """Immutable view of the configured loads, in configuration order."""

    def __init__(self, loads: list[Load]) -> None:
        by_identity: dict[str, Load] = {}
        for load in loads:
            if load.identity in by_identity:
                raise ConfigInvalid(f"load {load.identity!r} configured twice")
            by_identity[load.identity] = load
        self._loads = by_identity

    def get(self, identity: str) -> Load | None:
        return self._loads.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._loads

    def __iter__(self) -> Iterator[Load]:
        return iter(self._loads.values())

    def __len__(self) -> int:
        return len(self._loads)


_NON_NEGATIVE = vol.All(vol.Coerce(float), vol.Range(min=0))

LOAD_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_ALIAS): vol.All(str, vol.Length(min=1)),
        vol.Required(CONF_CONSUMPTION): _NON_NEGATIVE,
        vol.Optional(CONF_HOST): vol.Any(None, str),
        vol.Optional(CONF_CAN_TURN_ON, default=True): bool,
        vol.Optional(CONF_CAN_TURN_OFF, default=True): bool,
    },
    extra=vol.REMOVE_EXTRA,
)

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(
            CONF_BASELINE_CONSUMPTION, default=DEFAULT_BASELINE_CONSUMPTION
        ): _NON_NEGATIVE,
        vol.Optional(
            CONF_UPDATE_INTERVAL, default=DEFAULT_UPDATE_INTERVAL_SECONDS
        ): vol.All(vol.Coerce(float), vol.Range(min=1)),
        vol.Optional(
            CONF_MIN_TOGGLE_MINUTES, default=DEFAULT_MIN_TOGGLE_MINUTES
        ): _NON_NEGATIVE,
        vol.Optional(
            CONF_RECENT_USAGE_MINUTES, default=DEFAULT_RECENT_USAGE_MINUTES
        ): vol.All(vol.Coerce(float), vol.Range(min=1)),
        vol.Required(CONF_LOADS): [LOAD_SCHEMA],
    },
    extra=vol.ALLOW_EXTRA,
)


def build_config(data: Mapping[str, Any]) -> tuple[Config, LoadRegistry]:
    """Validate raw config entry data.

    Raises:
        ConfigInvalid: on any schema violation or duplicate load.
    """
    try:
        validated = CONFIG_SCHEMA(dict(data))
    except vol.Invalid as err:
        raise ConfigInvalid(str(err)) from err

    config = Config(
        baseline_consumption=validated[CONF_BASELINE_CONSUMPTION],
        min_toggle_interval=timedelta(minutes=validated[CONF_MIN_TOGGLE_MINUTES]),
        update_interval=timedelta(seconds=validated[CONF_UPDATE_INTERVAL]),
        recent_usage_window=timedelta(minutes=validated[CONF_RECENT_USAGE_MINUTES]),
    )
    registry = LoadRegistry(
        [
            Load(
                identity=item[CONF_ALIAS],
                fallback_consumption=item[CONF_CONSUMPTION],
                can_turn_on=item[CONF_CAN_TURN_ON],
                can_turn_off=item[CONF_CAN_TURN_OFF],
                host=item.get(CONF_HOST) or None,
            )
            for item in validated[CONF_LOADS]
        ]
    )
    return config, registry
