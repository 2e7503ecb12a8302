"""
UDP side of the relay: owns the one listening socket for inbound OSC
telemetry and fans every decoded message out to subscribers.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from osc.codec import MalformedPacket, OscMessage, decode, messages_of

log = logging.getLogger("osc.bridge")

WILDCARD_HOST = "0.0.0.0"


class BindFailure(OSError):
    """The listening socket could not be bound."""


@dataclass(frozen=True)
class InboundOsc:
    message: OscMessage
    source_address: str
    source_port: int


class _BridgeProtocol(asyncio.DatagramProtocol):

    def __init__(self, bridge: "OSCBridge"):
        self._bridge = bridge

    def datagram_received(self, data: bytes, addr) -> None:
        self._bridge.handle_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        log.warning("socket error: %s", exc)


class OSCBridge:
    """
    Listens for OSC on a fixed port and publishes every message it decodes.

    The listen port is administered separately from the command target: the
    player sends telemetry here while commands go out through OSCSender.

    rebind() is the only way the socket changes. It always closes the old
    socket before opening the new one, so there is a short window with no
    listener; that window is logged.
    """

    def __init__(self, listen_port: int):
        self.listen_port = listen_port
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._subscribers: list[Callable[[InboundOsc], None]] = []
        self._lock = asyncio.Lock()
        self.bound_host: Optional[str] = None
        self.last_error: Optional[BindFailure] = None

    # ── Subscriptions ────────────────────────────────────────────────────────

    def subscribe(self, callback: Callable[[InboundOsc], None]) -> Callable[[], None]:
        """Register `callback` for every inbound message. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def handle_datagram(self, data: bytes, addr) -> None:
        try:
            packet = decode(data)
        except MalformedPacket as exc:
            log.warning("dropping malformed datagram from %s:%s (%d bytes): %s",
                        addr[0], addr[1], len(data), exc)
            return

        for message in messages_of(packet):
            inbound = InboundOsc(message, addr[0], addr[1])
            log.debug("Received: %s %s from %s:%s", message.address, list(message.args), addr[0], addr[1])
            for callback in list(self._subscribers):
                try:
                    callback(inbound)
                except Exception:
                    log.exception("subscriber failed on %s", message.address)

    # ── Socket lifecycle ─────────────────────────────────────────────────────

    @property
    def is_bound(self) -> bool:
        return self._transport is not None

    @property
    def sockname(self):
        if self._transport is None:
            return None
        return self._transport.get_extra_info("sockname")

    async def _bind(self, host: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _BridgeProtocol(self),
                local_addr=(host, self.listen_port),
            )
        except OSError as exc:
            raise BindFailure(f"bind {host}:{self.listen_port} failed: {exc}") from exc
        self._transport = transport
        self.bound_host = host

    def _close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            log.info("listener on %s:%s closed, unbound until rebind completes",
                     self.bound_host, self.listen_port)
        self.bound_host = None

    async def rebind(self, host: str) -> bool:
        """
        Close the current socket and bind the listen port on `host`.

        Falls back to the wildcard address once. If that fails too the
        bridge stays unbound (inbound telemetry is unavailable until the
        next successful rebind) and False is returned. Outbound sends are
        unaffected either way.
        """
        async with self._lock:
            self._close()
            try:
                await self._bind(host)
            except BindFailure as exc:
                if host == WILDCARD_HOST:
                    return self._give_up(exc)
                log.warning("%s, falling back to %s", exc, WILDCARD_HOST)
                try:
                    await self._bind(WILDCARD_HOST)
                except BindFailure as fallback_exc:
                    return self._give_up(fallback_exc)

            self.last_error = None
            log.info("UDP OSC listener bound to %s:%s", self.bound_host, self.listen_port)
            return True

    def _give_up(self, exc: BindFailure) -> bool:
        self.last_error = exc
        log.error("%s; inbound OSC unavailable until the next rebind", exc)
        return False

    def close(self) -> None:
        self._close()
