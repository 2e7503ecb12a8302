"""
Send the "stop show" command straight to a media player.

Run:
    python -m utils.send_stop_show 192.168.113.83 8000
"""

import argparse
import asyncio
import logging

from osc import mapping
from osc.sender import OSCSender, SendFailure
from relay.target import TargetConfig, TargetStore

DEFAULT_HOST = "192.168.113.83"
DEFAULT_PORT = 8000


async def send_stop_show(host: str, port: int) -> None:
    sender = OSCSender(TargetStore(TargetConfig(host, port)))
    command = mapping.stop_show_command()
    print(f"Sending {command['address']} to {host}:{port} ...")
    await sender.send(command["address"], command["args"])


def main():
    parser = argparse.ArgumentParser(description="Send /@3/30 'stop show' to a player")
    parser.add_argument("host", nargs="?", default=DEFAULT_HOST)
    parser.add_argument("port", nargs="?", type=int, default=DEFAULT_PORT)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(name)s] %(message)s")
    try:
        asyncio.run(send_stop_show(args.host, args.port))
    except SendFailure as exc:
        print(f"Send error: {exc}")
        raise SystemExit(1)
    print("Sent OK")


if __name__ == "__main__":
    main()
