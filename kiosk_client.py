"""
kiosk-relay: headless kiosk

Runs the visitor session state machine against a relay server, driven by
typed commands instead of a touch screen. Handy for commissioning a site
before the browser front end is installed.

Commands:
    start                       visitor touched the form
    lead <name> <email> [nationality] [phone]
    skip                        skip the lead form
    play <n>                    press video button n
    hold                        send the holding loop
    end                         end the session now
    target <host> <port>        operator: retarget (after `password`)
    password <secret>
    quit

Usage:
    python kiosk_client.py
    python kiosk_client.py --config path/to/config.yaml --url ws://host:3000
"""

import argparse
import asyncio
import logging
import shlex
import sys

import settings
from kiosk.channel import RelayChannel
from kiosk.view import LoggingView
from state.manager import SessionManager

log = logging.getLogger("kiosk")


def build_session(config: dict, url: str) -> tuple[SessionManager, RelayChannel]:
    session_cfg = config.get("session", {})
    channel = RelayChannel(url)
    manager = SessionManager(
        settings.controls(config),
        channel,
        LoggingView(),
        leftover_timeout_ms=session_cfg.get("leftover_timeout_ms", 10_000),
        cooldown_ms=session_cfg.get("cooldown_ms", 5_000),
        holding_delay_ms=session_cfg.get("holding_delay_ms", 500),
    )
    channel.on_message = manager.on_server_message
    return manager, channel


def handle_command(line: str, manager: SessionManager, channel: RelayChannel) -> bool:
    """Apply one console command. Returns False when the user asked to quit."""
    try:
        words = shlex.split(line)
    except ValueError as exc:
        log.warning("could not parse %r: %s", line, exc)
        return True
    if not words:
        return True

    command, rest = words[0].lower(), words[1:]
    if command == "quit":
        return False
    if command == "start":
        manager.begin_capture()
    elif command == "lead":
        fields = rest + [""] * (4 - len(rest))
        manager.submit_lead(name=fields[0], email=fields[1], nationality=fields[2], phone=fields[3])
    elif command == "skip":
        manager.submit_lead(skip=True)
    elif command == "play" and rest and rest[0].isdigit():
        manager.activate(int(rest[0]))
    elif command == "hold":
        manager.send_holding()
    elif command == "end":
        manager.end_session()
    elif command == "password" and rest:
        channel.check_password(rest[0])
    elif command == "target" and len(rest) == 2 and rest[1].isdigit():
        channel.set_target(rest[0], int(rest[1]), test=True)
    else:
        log.warning("unknown command: %s", line.strip())
    return True


async def run(config: dict, url: str) -> None:
    manager, channel = build_session(config, url)
    connection_task = asyncio.create_task(channel.run())
    loop = asyncio.get_running_loop()

    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            if not handle_command(line, manager, channel):
                break
    finally:
        manager.timer.cancel()
        await channel.stop()
        connection_task.cancel()


def main():
    parser = argparse.ArgumentParser(description="kiosk-relay: headless kiosk session")
    parser.add_argument("--config", default="config.yaml", help="Path to config YAML")
    parser.add_argument("--url", default=None, help="Relay WebSocket URL (overrides session.relay_url)")
    args = parser.parse_args()

    config = settings.load_config(args.config)
    settings.configure_logging(config)
    url = args.url or config.get("session", {}).get("relay_url", "ws://127.0.0.1:3000")

    try:
        asyncio.run(run(config, url))
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down.")


if __name__ == "__main__":
    main()
