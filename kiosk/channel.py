import asyncio
import json
import logging
from typing import Callable, Optional

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from osc import mapping

log = logging.getLogger("kiosk.channel")

SET_TARGET_TEST_DELAY_MS = 150


class RelayChannel:
    """
    Kiosk end of the relay WebSocket.

    send_json() never blocks: frames are queued on the loop and dropped
    with a log line while the socket is down. Incoming frames are parsed
    and passed to `on_message`. run() keeps reconnecting until stop().
    """

    def __init__(self, url: str, on_message: Optional[Callable[[dict], None]] = None,
                 reconnect_delay: float = 2.0):
        self.url = url
        self.on_message = on_message or (lambda data: None)
        self.reconnect_delay = reconnect_delay
        self._connection = None
        self._stopping = False
        self._tasks: set = set()

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def send_json(self, payload: dict) -> bool:
        if self._connection is None:
            log.warning("Socket not open. Dropping %s", payload.get("type") or payload.get("address"))
            return False
        task = asyncio.get_running_loop().create_task(self._send(self._connection, json.dumps(payload)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _send(self, connection, text: str) -> None:
        try:
            await connection.send(text)
        except ConnectionClosed:
            log.warning("connection closed while sending")

    # ── Operator helpers ─────────────────────────────────────────────────────

    def check_password(self, password: str) -> bool:
        return self.send_json({"type": "check_password", "password": password})

    def set_target(self, host: str, port: int, test: bool = False) -> bool:
        """Ask the relay to switch targets; with `test`, follow up with a holding command."""
        ok = self.send_json({"type": "set_target", "host": host, "port": port})
        if ok and test:
            asyncio.get_running_loop().call_later(
                SET_TARGET_TEST_DELAY_MS / 1000.0,
                self.send_json, {"address": mapping.PLAY_ADDRESS, "args": ["wtm", mapping.HOLDING_VIDEO_ID]},
            )
        return ok

    # ── Connection loop ──────────────────────────────────────────────────────

    def _dispatch(self, raw) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            log.debug("ignoring non-JSON frame")
            return
        if not isinstance(data, dict):
            return
        try:
            self.on_message(data)
        except Exception:
            log.exception("message handler failed on %s", data.get("type"))

    async def run(self) -> None:
        while not self._stopping:
            try:
                async with connect(self.url) as connection:
                    self._connection = connection
                    log.info("Connected to relay %s", self.url)
                    async for raw in connection:
                        self._dispatch(raw)
            except InvalidURI:
                raise
            except (OSError, InvalidHandshake, ConnectionClosed) as exc:
                log.warning("Disconnected from relay: %s", exc)
            finally:
                self._connection = None
            if not self._stopping:
                await asyncio.sleep(self.reconnect_delay)

    async def stop(self) -> None:
        self._stopping = True
        if self._connection is not None:
            await self._connection.close()
