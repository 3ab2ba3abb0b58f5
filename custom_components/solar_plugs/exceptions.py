"""Errors raised by the Solar Plugs collaborators and core. No Home Assistant imports."""

from __future__ import annotations


class SolarPlugsError(Exception):
    """Base class for Solar Plugs errors."""


class TelemetryUnavailable(SolarPlugsError):
    """Aggregate source power could not be fetched. Aborts the cycle."""


class DiscoveryFailed(SolarPlugsError):
    """Plug discovery failed at the transport level. Aborts the cycle."""


class LoadQueryFailed(SolarPlugsError):
    """A single plug did not answer a state query."""

    def __init__(self, host: str, reason: str) -> None:
        super().__init__(f"querying {host}: {reason}")
        self.host = host


class ToggleCommandFailed(SolarPlugsError):
    """A relay command was not acknowledged."""

    def __init__(self, host: str, reason: str) -> None:
        super().__init__(f"setting relay on {host}: {reason}")
        self.host = host


class UnknownLoad(SolarPlugsError):
    """An operator request named a load that is not configured."""


class ConfigInvalid(SolarPlugsError):
    """Configuration failed validation at startup."""
