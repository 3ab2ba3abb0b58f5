"""In-memory toggle and pause history. No Home Assistant imports."""

from __future__ import annotations

from datetime import datetime, timedelta
import threading


class StateStore:
    """Last-toggle and pause-until times keyed by load identity.

    Safe to call from the evaluation cycle and the pause service at the same
    time. Expired pauses are dropped when read; nothing sweeps them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._toggles: dict[str, datetime] = {}
        self._pauses: dict[str, datetime] = {}

    def record_toggle(self, identity: str, when: datetime) -> None:
        with self._lock:
            self._toggles[identity] = when

    def last_toggle(self, identity: str) -> datetime | None:
        with self._lock:
            return self._toggles.get(identity)

    def is_debounced(self, identity: str, now: datetime, interval: timedelta) -> bool:
        """True if the load was toggled less than interval before now."""
        with self._lock:
            last = self._toggles.get(identity)
        return last is not None and now - last < interval

    def set_pause(self, identity: str, until: datetime) -> None:
        with self._lock:
            self._pauses[identity] = until

    def active_pause(self, identity: str, now: datetime) -> datetime | None:
        """Return the pause-until time if the pause is still active."""
        with self._lock:
            until = self._pauses.get(identity)
            if until is None:
                return None
            if now > until:
                del self._pauses[identity]
                return None
            return until

    def toggles(self) -> dict[str, datetime]:
        with self._lock:
            return dict(self._toggles)

    def active_pauses(self, now: datetime) -> dict[str, datetime]:
        with self._lock:
            for identity in [i for i, until in self._pauses.items() if now > until]:
                del self._pauses[identity]
            return dict(self._pauses)
