"""Abstract smart plug controller interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PlugState:
    """A plug's reported state, as seen in one discovery or query reply."""

    alias: str  # Human-readable name, used as the load identity
    host: str  # Address the reply came from
    is_on: bool
    power: float | None  # W, None if the plug has no energy meter
    mac: str = ""
    model: str = ""  # e.g. "HS110(AU)"


class PlugController(ABC):
    """Abstract base class for smart plug controllers."""

    @abstractmethod
    async def async_discover(self, timeout: float) -> list[PlugState]:
        """Broadcast a query and collect every reply received within timeout.

        Raises:
            DiscoveryFailed: the transport could not be set up or used.
        """

    @abstractmethod
    async def async_query(self, host: str, timeout: float) -> PlugState:
        """Query a single plug.

        Raises:
            LoadQueryFailed: no valid reply within timeout.
        """

    @abstractmethod
    async def async_set_relay(self, host: str, on: bool, timeout: float) -> None:
        """Switch the plug's relay on or off.

        Raises:
            ToggleCommandFailed: the command was not acknowledged.
        """
