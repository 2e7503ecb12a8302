"""
kiosk-relay: main entry point

Bridges kiosk WebSocket clients to the media player's OSC port:
forwards play commands out over UDP, relays the player's OSC telemetry
back to every client, and appends finished sessions to the lead log.

Usage:
    python main.py
    python main.py --config path/to/config.yaml
"""

import argparse
import asyncio
import logging

from websockets.asyncio.server import serve

import settings
from logsink.csv_sink import CsvLogSink
from osc.bridge import OSCBridge
from osc.sender import OSCSender
from relay.server import RelayServer
from relay.target import TargetStore

log = logging.getLogger("main")


async def run(config: dict) -> None:
    # ── Build components ────────────────────────────────────────────────────
    target = TargetStore(settings.default_target(config), settings.target_file(config))
    target.load()

    bridge = OSCBridge(settings.listen_port(config))
    sender = OSCSender(target)
    sink   = CsvLogSink(settings.data_log_path(config))
    secret = settings.password(config)

    relay = RelayServer(target, bridge, sender, sink=sink, password=secret)

    http_host, http_port = settings.http_address(config)
    log.info("Resolved values -> OSC target %s:%s, OSC listen port %s, HTTP %s:%s, password %s",
             target.current.host, target.current.port, bridge.listen_port,
             http_host, http_port, "SET" if secret else "NOT SET")

    await bridge.rebind(target.current.host)

    try:
        async with serve(relay.handler, http_host, http_port,
                         process_request=relay.process_request) as server:
            log.info("HTTP/WebSocket server: http://%s:%s", http_host, http_port)
            await server.serve_forever()
    finally:
        bridge.close()


def main():
    parser = argparse.ArgumentParser(description="kiosk-relay: WebSocket → OSC bridge")
    parser.add_argument("--config", default="config.yaml", help="Path to config YAML")
    args = parser.parse_args()

    config = settings.load_config(args.config)
    settings.configure_logging(config)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down.")


if __name__ == "__main__":
    main()
