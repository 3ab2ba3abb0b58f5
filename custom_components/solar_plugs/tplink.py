"""TP-Link Kasa smart plug controller using the local UDP protocol."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .const import TPLINK_BROADCAST, TPLINK_PORT
from .controller import PlugController, PlugState
from .exceptions import DiscoveryFailed, LoadQueryFailed, ToggleCommandFailed

_LOGGER = logging.getLogger(__name__)

_INITIAL_KEY = 0xAB

# Also used as the discovery broadcast.
QUERY_PAYLOAD = json.dumps(
    {"system": {"get_sysinfo": {}}, "emeter": {"get_realtime": {}}},
    separators=(",", ":"),
).encode()


def encrypt(data: bytes) -> bytes:
    """XOR each byte with the previous byte of ciphertext."""
    out = bytearray(data)
    prev = _INITIAL_KEY
    for i, b in enumerate(out):
        prev = b ^ prev
        out[i] = prev
    return bytes(out)


def decrypt(data: bytes) -> bytes:
    out = bytearray(len(data))
    prev = _INITIAL_KEY
    for i, b in enumerate(data):
        out[i] = b ^ prev
        prev = b
    return bytes(out)


def relay_payload(on: bool) -> bytes:
    return json.dumps(
        {"system": {"set_relay_state": {"state": 1 if on else 0}}},
        separators=(",", ":"),
    ).encode()


def _decode(payload: bytes) -> dict[str, Any]:
    try:
        doc = json.loads(payload)
    except ValueError as err:
        raise ValueError(f"decoding JSON reply: {err}") from err
    if not isinstance(doc, dict):
        raise ValueError(f"reply is {type(doc).__name__}, want object")
    return doc


def _section(doc: dict[str, Any], *path: str) -> dict[str, Any] | None:
    """Walk nested objects, returning None where a level is missing.

    Raises ValueError when a level is present but not an object.
    """
    node: Any = doc
    for key in path:
        node = node.get(key)
        if node is None:
            return None
        if not isinstance(node, dict):
            raise ValueError(f"{'.'.join(path)} is {type(node).__name__}, want object")
    return node


def _watts(value: Any, scale: float) -> float:
    try:
        return float(value) / scale
    except (TypeError, ValueError) as err:
        raise ValueError(f"bad power reading {value!r}") from err


def parse_state(payload: bytes, host: str) -> PlugState:
    """Parse a decrypted get_sysinfo/get_realtime reply.

    Plugs without an energy meter answer get_realtime with an error code;
    their power is reported as None.
    """
    doc = _decode(payload)
    info = _section(doc, "system", "get_sysinfo")
    if info is None:
        raise ValueError("reply has no system.get_sysinfo")

    realtime = _section(doc, "emeter", "get_realtime") or {}
    power: float | None = None
    if "power_mw" in realtime:
        power = _watts(realtime["power_mw"], 1000)  # mW -> W
    elif "power" in realtime:
        # Older firmware reports W directly.
        power = _watts(realtime["power"], 1)

    return PlugState(
        alias=info.get("alias", ""),
        host=host,
        is_on=info.get("relay_state", 0) == 1,
        power=power,
        mac=info.get("mac", ""),
        model=info.get("model", ""),
    )


class _ReplyProtocol(asyncio.DatagramProtocol):
    """Queues every datagram received on the socket."""

    def __init__(self) -> None:
        self.replies: asyncio.Queue[tuple[bytes, str]] = asyncio.Queue()
        self.error: Exception | None = None

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.replies.put_nowait((data, addr[0]))

    def error_received(self, exc: Exception) -> None:
        _LOGGER.debug("TP-Link socket error: %s", exc)
        self.error = exc


class TplinkController(PlugController):
    """Plug controller for TP-Link HS1xx plugs on the local network."""

    def __init__(
        self,
        port: int = TPLINK_PORT,
        broadcast: str = TPLINK_BROADCAST,
    ) -> None:
        self._port = port
        self._broadcast = broadcast

    async def _async_open(self) -> tuple[asyncio.DatagramTransport, _ReplyProtocol]:
        loop = asyncio.get_running_loop()
        return await loop.create_datagram_endpoint(
            _ReplyProtocol,
            local_addr=("0.0.0.0", 0),
            allow_broadcast=True,
        )

    async def _async_request(self, host: str, payload: bytes, timeout: float) -> bytes:
        """Send one message and wait for the first reply."""
        transport, protocol = await self._async_open()
        try:
            transport.sendto(encrypt(payload), (host, self._port))
            async with asyncio.timeout(timeout):
                data, _ = await protocol.replies.get()
        finally:
            transport.close()
        return decrypt(data)

    async def async_discover(self, timeout: float) -> list[PlugState]:
        try:
            transport, protocol = await self._async_open()
        except OSError as err:
            raise DiscoveryFailed(f"opening UDP socket: {err}") from err

        states: list[PlugState] = []
        try:
            transport.sendto(encrypt(QUERY_PAYLOAD), (self._broadcast, self._port))
            try:
                async with asyncio.timeout(timeout):
                    while True:
                        data, host = await protocol.replies.get()
                        try:
                            states.append(parse_state(decrypt(data), host))
                        except ValueError as err:
                            # One bogus message. Keep going.
                            _LOGGER.warning("Ignoring reply from %s: %s", host, err)
            except TimeoutError:
                pass
        finally:
            transport.close()

        if protocol.error is not None and not states:
            raise DiscoveryFailed(f"broadcasting discovery: {protocol.error}")
        _LOGGER.debug("Discovered %d plugs", len(states))
        return states

    async def async_query(self, host: str, timeout: float) -> PlugState:
        try:
            reply = await self._async_request(host, QUERY_PAYLOAD, timeout)
            return parse_state(reply, host)
        except TimeoutError as err:
            raise LoadQueryFailed(host, f"no reply within {timeout}s") from err
        except (OSError, ValueError) as err:
            raise LoadQueryFailed(host, str(err)) from err

    async def async_set_relay(self, host: str, on: bool, timeout: float) -> None:
        _LOGGER.debug("TP-Link set_relay: host=%s on=%s", host, on)
        try:
            reply = await self._async_request(host, relay_payload(on), timeout)
        except TimeoutError as err:
            raise ToggleCommandFailed(host, f"no reply within {timeout}s") from err
        except OSError as err:
            raise ToggleCommandFailed(host, str(err)) from err

        try:
            ack = _section(_decode(reply), "system", "set_relay_state")
            if ack is None:
                raise ValueError("reply has no system.set_relay_state")
        except ValueError as err:
            _LOGGER.warning("Parsing relay reply from %s: %s", host, err)
            return
        err_code = ack.get("err_code", 0)
        if err_code:
            raise ToggleCommandFailed(host, f"reply with error code {err_code}")
