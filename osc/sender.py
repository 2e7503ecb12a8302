import asyncio
import logging

from pythonosc import udp_client

from osc.codec import OscMessage, build_message

log = logging.getLogger("osc.sender")


class SendFailure(Exception):
    """An outbound OSC message could not be handed to the network."""


class OSCSender:
    """
    Sends OSC messages to the media player (or any OSC receiver).

    Every send opens a transient python-osc UDP client with an ephemeral
    local port, writes one datagram to whatever target is current at the
    moment of the call, and closes it again. There is no retry: callers
    decide what a failure means.

    `target` is any object with a `.current` attribute holding something with
    `host` and `port` (see relay.target.TargetStore).
    """

    def __init__(self, target):
        self._target = target

    async def send(self, address: str, args=()) -> OscMessage:
        """
        Build and send one message.

        Args:
            address: OSC address, e.g. "/@3/20"
            args:    plain Python values; tags are inferred by python-osc

        Raises:
            SendFailure: the message could not be built, the host did not
                         resolve, or the socket could not be used.
        """
        # read the target before any await so a concurrent set_target
        # cannot redirect a message that was already accepted
        target = self._target.current
        message = OscMessage(address, tuple(args))
        try:
            packet = build_message(message)
        except ValueError as exc:
            raise SendFailure(str(exc)) from exc

        try:
            # name resolution can block, keep it off the event loop
            await asyncio.to_thread(self._transmit, target.host, target.port, packet)
        except OSError as exc:
            log.error("could not reach %s:%s: %s", target.host, target.port, exc)
            raise SendFailure(str(exc)) from exc

        log.info("Sent: %s %s -> %s:%s", address, list(message.args), target.host, target.port)
        return message

    @staticmethod
    def _transmit(host: str, port: int, packet) -> None:
        with udp_client.UDPClient(host, port) as client:
            client.send(packet)
