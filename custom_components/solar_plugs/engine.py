"""Decision engine: runs one evaluation cycle per call. No Home Assistant imports."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
import logging
import threading
from typing import Any

from .controller import PlugController, PlugState
from .exceptions import (
    DiscoveryFailed,
    LoadQueryFailed,
    TelemetryUnavailable,
    ToggleCommandFailed,
    UnknownLoad,
)
from .registry import Config, Load, LoadRegistry
from .state_store import StateStore
from .telemetry import TelemetrySource

_LOGGER = logging.getLogger(__name__)


class Action(StrEnum):
    TURN_ON = "turn_on"
    TURN_OFF = "turn_off"


class Outcome(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"  # some plugs unreachable or some commands failed
    ABORTED = "aborted"  # no toggles attempted past the failure point


@dataclass(frozen=True)
class Decision:
    identity: str
    action: Action
    power: float  # W, used power of the plug when decided
    surplus: float  # W, surplus after this decision took effect
    succeeded: bool
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "alias": self.identity,
            "action": self.action.value,
            "power": self.power,
            "surplus": self.surplus,
            "succeeded": self.succeeded,
            "error": self.error,
        }


@dataclass
class EvaluationResult:
    """Everything one cycle computed and did, including why it stopped."""

    started: datetime
    finished: datetime | None = None
    outcome: Outcome = Outcome.SUCCESS
    source_power: float | None = None  # W
    surplus: float | None = None  # W, before any decision
    remaining_surplus: float | None = None  # W, after all decisions
    decisions: list[Decision] = field(default_factory=list)
    seen: set[str] = field(default_factory=set)
    log: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def note(self, msg: str, *args: Any) -> None:
        self.log.append(msg % args if args else msg)

    def fail(self, msg: str, *args: Any) -> None:
        """Record an error that only affects part of the cycle."""
        text = msg % args if args else msg
        self.log.append(f"ERROR: {text}")
        self.errors.append(text)
        if self.outcome is Outcome.SUCCESS:
            self.outcome = Outcome.PARTIAL

    def abort(self, msg: str, *args: Any) -> None:
        self.fail(msg, *args)
        self.outcome = Outcome.ABORTED

    def as_dict(self) -> dict[str, Any]:
        return {
            "started": self.started.isoformat(),
            "finished": self.finished.isoformat() if self.finished else None,
            "outcome": self.outcome.value,
            "source_power": self.source_power,
            "surplus": self.surplus,
            "remaining_surplus": self.remaining_surplus,
            "decisions": [d.as_dict() for d in self.decisions],
            "seen": sorted(self.seen),
            "log": list(self.log),
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class StatusSnapshot:
    result: EvaluationResult | None  # None until the first cycle finishes
    toggles: dict[str, datetime]
    pauses: dict[str, datetime]

    def as_dict(self) -> dict[str, Any]:
        return {
            "last_evaluation": self.result.as_dict() if self.result else None,
            "last_toggles": {k: v.isoformat() for k, v in self.toggles.items()},
            "paused_until": {k: v.isoformat() for k, v in self.pauses.items()},
        }


def format_power(watts: float) -> str:
    if watts > 1000:
        return f"{watts / 1000:.2f}kW"
    return f"{watts:.0f}W"


def used_power(reading: PlugState, fallback: float, recent_peak: float | None = None) -> float:
    """Power a plug is assumed to draw.

    Off plugs (and on plugs without a meter) use the configured fallback.
    Otherwise the measurement, nudged up to the recent peak for spiky loads.
    """
    if not reading.is_on or reading.power is None:
        return fallback
    if recent_peak is not None:
        return max(reading.power, recent_peak)
    return reading.power


def compute_surplus(
    source_power: float,
    baseline: float,
    readings: Iterable[PlugState],
    registry: LoadRegistry,
    recent_usage: Mapping[str, float],
) -> float:
    """Source minus baseline minus every plug that is on, discretionary or not."""
    surplus = source_power - baseline
    for reading in readings:
        if not reading.is_on:
            continue
        load = registry.get(reading.alias)
        fallback = load.fallback_consumption if load is not None else 0.0
        surplus -= used_power(reading, fallback, recent_usage.get(reading.alias))
    return surplus


def decide(surplus: float, is_on: bool, power: float) -> Action | None:
    """Greedy per-plug rule. First match wins."""
    if surplus < 0 and is_on:
        return Action.TURN_OFF
    if surplus > power and not is_on:
        return Action.TURN_ON
    return None


class DecisionEngine:
    """Owns the per-cycle evaluation and the last published result."""

    def __init__(
        self,
        config: Config,
        registry: LoadRegistry,
        controller: PlugController,
        telemetry: TelemetrySource,
        store: StateStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._controller = controller
        self._telemetry = telemetry
        self._store = store
        self._clock = clock or (lambda: datetime.now(UTC))
        # alias => (host, last seen); lets plugs that miss discovery be queried directly
        self._addresses: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()
        self._last_result: EvaluationResult | None = None

    @property
    def registry(self) -> LoadRegistry:
        return self._registry

    @property
    def last_result(self) -> EvaluationResult | None:
        with self._lock:
            return self._last_result

    def snapshot(self) -> StatusSnapshot:
        now = self._clock()
        with self._lock:
            result = self._last_result
        return StatusSnapshot(
            result=result,
            toggles=self._store.toggles(),
            pauses=self._store.active_pauses(now),
        )

    def pause(self, identity: str, duration: timedelta) -> datetime:
        """Exclude a load from automatic control until now + duration."""
        if identity not in self._registry:
            raise UnknownLoad(f"no discretionary plug named {identity!r}")
        until = self._clock() + duration
        self._store.set_pause(identity, until)
        _LOGGER.info("Pausing %r until %s", identity, until.isoformat())
        return until

    async def async_evaluate(self) -> EvaluationResult:
        """Run one cycle to completion or abandonment, then publish its result."""
        result = EvaluationResult(started=self._clock())
        try:
            async with asyncio.timeout(self._config.cycle_timeout):
                await self._async_run_cycle(result)
        except TimeoutError:
            result.abort("Evaluation exceeded %ss; abandoned", self._config.cycle_timeout)
        except (TelemetryUnavailable, DiscoveryFailed) as err:
            result.abort("%s", err)
        except Exception as err:
            result.abort("Unexpected error: %s", err)
            raise
        finally:
            result.finished = self._clock()
            with self._lock:
                self._last_result = result

        if result.outcome is Outcome.ABORTED:
            _LOGGER.warning("Evaluation aborted: %s", result.errors[-1])
        elif result.errors:
            _LOGGER.warning("Evaluation finished with %d errors", len(result.errors))
        else:
            _LOGGER.debug("Evaluation finished: %d decisions", len(result.decisions))
        return result

    async def _async_run_cycle(self, result: EvaluationResult) -> None:
        now = result.started
        result.note("Starting evaluation at %s", now.isoformat())

        try:
            source = await self._telemetry.async_fetch_source_power()
        except TelemetryUnavailable as err:
            raise TelemetryUnavailable(f"querying solar power: {err}") from err
        result.source_power = source
        result.note("Current solar: %s", format_power(source))

        readings = await self._async_fetch_readings(result, now)
        recent_usage = await self._async_fetch_recent_usage(result)

        surplus = compute_surplus(
            source,
            self._config.baseline_consumption,
            readings.values(),
            self._registry,
            recent_usage,
        )
        result.surplus = surplus
        discretionary = sum(1 for alias in readings if alias in self._registry)
        result.note("Found %d plugs, %d discretionary", len(readings), discretionary)
        result.note("Spare solar: %s", format_power(surplus))

        for load in self._registry:
            reading = readings.get(load.identity)
            if reading is None:
                result.note("Plug %r not reporting; leaving it alone", load.identity)
                continue
            result.seen.add(load.identity)
            surplus = await self._async_consider(
                result, load, reading, recent_usage.get(load.identity), surplus
            )
        result.remaining_surplus = surplus

    async def _async_fetch_readings(
        self, result: EvaluationResult, now: datetime
    ) -> dict[str, PlugState]:
        """Discover all plugs, then query known plugs that did not answer."""
        try:
            discovered = await self._controller.async_discover(self._config.discovery_timeout)
        except DiscoveryFailed as err:
            raise DiscoveryFailed(f"discovering plugs: {err}") from err
        readings = {state.alias: state for state in discovered}

        missing: list[tuple[Load, str]] = []
        for load in self._registry:
            if load.identity in readings:
                continue
            host = self._address_of(load, now)
            if host is not None:
                missing.append((load, host))

        if missing:
            states = await asyncio.gather(
                *(self._async_query(result, load, host) for load, host in missing)
            )
            undiscovered = 0
            for (load, _), state in zip(missing, states):
                if state is not None:
                    readings[load.identity] = state
                    undiscovered += 1
            result.note("Queried %d plugs missing from discovery", undiscovered)

        for alias, state in readings.items():
            self._addresses[alias] = (state.host, now)
        return readings

    def _address_of(self, load: Load, now: datetime) -> str | None:
        if load.host:
            return load.host
        known = self._addresses.get(load.identity)
        if known is None:
            return None
        host, seen = known
        if now - seen > self._config.address_history:
            del self._addresses[load.identity]
            return None
        return host

    async def _async_query(
        self, result: EvaluationResult, load: Load, host: str
    ) -> PlugState | None:
        try:
            state = await self._controller.async_query(host, self._config.query_timeout)
        except LoadQueryFailed as err:
            result.fail("Plug %r unreachable: %s", load.identity, err)
            return None
        if state.alias != load.identity:
            result.fail(
                "Plug at %s is now %r, not %r", host, state.alias, load.identity
            )
            return None
        return state

    async def _async_fetch_recent_usage(self, result: EvaluationResult) -> dict[str, float]:
        try:
            return await self._telemetry.async_fetch_recent_usage()
        except TelemetryUnavailable as err:
            result.note("Recent usage unavailable, using live readings only: %s", err)
            _LOGGER.debug("Recent usage unavailable: %s", err)
            return {}

    async def _async_consider(
        self,
        result: EvaluationResult,
        load: Load,
        reading: PlugState,
        recent_peak: float | None,
        surplus: float,
    ) -> float:
        """Apply the rules to one plug and return the updated surplus.

        A failed command leaves the surplus as it was before this plug, so
        later plugs are judged against the relay state actually in effect.
        """
        identity = load.identity
        now = self._clock()

        until = self._store.active_pause(identity, now)
        if until is not None:
            result.note("Plug %r paused until %s; leaving it alone", identity, until.isoformat())
            return surplus
        if self._store.is_debounced(identity, now, self._config.min_toggle_interval):
            result.note("Plug %r toggled too recently (debounced); leaving it alone", identity)
            return surplus
        if reading.is_on and not load.can_turn_off:
            result.note("Plug %r is on and may not be turned off", identity)
            return surplus
        if not reading.is_on and not load.can_turn_on:
            result.note("Plug %r is off and may not be turned on", identity)
            return surplus

        power = used_power(reading, load.fallback_consumption, recent_peak)
        action = decide(surplus, reading.is_on, power)
        if action is None:
            return surplus

        if action is Action.TURN_OFF:
            after = surplus + power
            result.note("Turning off %r at %s to save %s", identity, reading.host, format_power(power))
        else:
            after = surplus - power
            result.note(
                "Turning on %r at %s, estimated to use %s", identity, reading.host, format_power(power)
            )
        _LOGGER.info("%s %r at %s", action.value, identity, reading.host)

        try:
            await self._controller.async_set_relay(
                reading.host, action is Action.TURN_ON, self._config.command_timeout
            )
        except ToggleCommandFailed as err:
            result.fail("Failed to toggle %r: %s", identity, err)
            _LOGGER.warning("Failed to toggle %r: %s", identity, err)
            result.decisions.append(
                Decision(identity, action, power, surplus, succeeded=False, error=str(err))
            )
            return surplus

        self._store.record_toggle(identity, self._clock())
        result.decisions.append(Decision(identity, action, power, after, succeeded=True))
        return after
