"""
Print every OSC message arriving on a UDP port.

Useful for checking what the media player actually emits (end-of-clip
markers in particular) before wiring up the kiosk.

Run:
    python -m utils.osc_listen            # port 57120 on all interfaces
    python -m utils.osc_listen 9000
"""

import argparse
import asyncio
import logging

from osc.bridge import InboundOsc, OSCBridge, WILDCARD_HOST
from state.detect import match_end_of_video

DEFAULT_PORT = 57120
KNOWN_IDS = range(1, 10)


def print_message(inbound: InboundOsc) -> None:
    message = inbound.message
    line = f"[{inbound.source_address}:{inbound.source_port}] {message.address} {list(message.args)}"
    result = match_end_of_video(message.address, message.args, KNOWN_IDS)
    if result.matched:
        line += f"   <- end of video {result.index}"
    print(line)


async def listen(port: int, host: str) -> None:
    bridge = OSCBridge(port)
    bridge.subscribe(print_message)
    if not await bridge.rebind(host):
        raise SystemExit(f"could not bind UDP port {port}")
    print(f"Listening for OSC on {bridge.bound_host}:{port}  (Ctrl+C to stop)")
    try:
        await asyncio.Future()
    finally:
        bridge.close()


def main():
    parser = argparse.ArgumentParser(description="Print decoded OSC traffic")
    parser.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    parser.add_argument("--host", default=WILDCARD_HOST)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(name)s] %(message)s")
    try:
        asyncio.run(listen(args.port, args.host))
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
