"""
WebSocket relay between kiosk clients and the OSC network.

Client -> server (JSON):
    {"type": "set_target", "host": ..., "port": ...}
    {"type": "check_password", "password": ...}
    {"type": "data_log", ...record fields}
    {"address": "/@3/20", "args": [...]}                  forward to target (untyped only)

Server -> client (JSON):
    {"type": "target_set", "host": ..., "port": ...}
    {"type": "password_result", "success": bool}
    {"type": "sent", "address": ..., "args": [...]}
    {"type": "error", "message": ...}
    {"type": "osc", "address": ..., "args": [...], "info": {"from": ..., "port": ...}}

GET /current-target answers {"host", "port"} over plain HTTP on the same port.
"""

import asyncio
import json
import logging
from http import HTTPStatus
from typing import Optional

from websockets.exceptions import ConnectionClosed

from osc.bridge import InboundOsc, OSCBridge
from osc.codec import IMPULSE
from osc.sender import OSCSender, SendFailure
from relay.target import InvalidTarget, TargetStore, validate_target

log = logging.getLogger("relay.server")

CURRENT_TARGET_PATH = "/current-target"


class Unauthorized(Exception):
    """set_target from a connection that has not passed check_password."""


class InvalidJSON(ValueError):
    """A client frame that is not JSON."""


def parse_frame(raw) -> dict:
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise InvalidJSON(str(exc)) from exc


def json_arg(value, tag: str = ""):
    """Make one decoded OSC argument JSON-safe."""
    if tag in ("h", "t"):
        return str(value)
    if value is IMPULSE:
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    return value


def osc_payload(inbound: InboundOsc) -> dict:
    message = inbound.message
    tags = message.tags or ""
    args = [json_arg(a, tags[i] if i < len(tags) else "") for i, a in enumerate(message.args)]
    return {
        "type": "osc",
        "address": message.address,
        "args": args,
        "info": {"from": inbound.source_address, "port": inbound.source_port},
    }


class RelayServer:
    """
    Routes client commands and fans inbound OSC out to every client.

    Owns no globals: the target store, bridge, sender and log sink are all
    handed in. Each client frame is handled as its own task so a slow send
    never holds up other traffic.
    """

    def __init__(self, target: TargetStore, bridge: OSCBridge, sender: OSCSender,
                 sink=None, password: Optional[str] = None):
        self.target   = target
        self.bridge   = bridge
        self.sender   = sender
        self.sink     = sink
        self.password = password or None

        self.clients: set = set()
        self._authenticated: set = set()
        self._tasks: set = set()

        bridge.subscribe(self._on_osc)

    # ── Plumbing ─────────────────────────────────────────────────────────────

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("background task failed", exc_info=task.exception())

    async def _send(self, connection, payload: dict) -> None:
        try:
            await connection.send(json.dumps(payload))
        except ConnectionClosed:
            log.debug("client went away before %s could be delivered", payload.get("type"))

    async def broadcast(self, payload: dict) -> None:
        """Send `payload` to every connected client; closed connections are skipped."""
        if not self.clients:
            return
        await asyncio.gather(*(self._send(c, payload) for c in list(self.clients)))

    def _on_osc(self, inbound: InboundOsc) -> None:
        payload = osc_payload(inbound)
        log.info("Received OSC -> forwarding to %d client(s): %s %s",
                 len(self.clients), payload["address"], payload["args"])
        self._spawn(self.broadcast(payload))

    # ── Connection lifecycle ─────────────────────────────────────────────────

    async def handler(self, connection) -> None:
        """websockets connection handler."""
        self.clients.add(connection)
        log.info("WS client connected %s", getattr(connection, "remote_address", None))
        try:
            await self._send(connection, {"type": "target_set", **self.target.current.to_dict()})
            async for raw in connection:
                self._spawn(self.handle_message(connection, raw))
        except ConnectionClosed:
            pass
        finally:
            self.clients.discard(connection)
            self._authenticated.discard(connection)
            log.info("WS client disconnected")

    def process_request(self, connection, request):
        """Serve GET /current-target; everything else continues the WebSocket handshake."""
        if request.path.split("?", 1)[0] != CURRENT_TARGET_PATH:
            return None
        response = connection.respond(HTTPStatus.OK, json.dumps(self.target.current.to_dict()))
        del response.headers["Content-Type"]
        response.headers["Content-Type"] = "application/json"
        response.headers["Cache-Control"] = "no-store"
        return response

    # ── Routing ──────────────────────────────────────────────────────────────

    async def handle_message(self, connection, raw) -> None:
        log.debug("RAW WS MESSAGE: %s", raw)
        try:
            data = parse_frame(raw)
        except InvalidJSON as exc:
            log.warning("Invalid JSON from WS: %s", exc)
            await self._send(connection, {"type": "error", "message": "invalid_json"})
            return

        if not isinstance(data, dict):
            log.debug("ignoring non-object frame %r", data)
            return

        kind = data.get("type")
        if kind == "data_log":
            self.log_data(data)
        elif kind == "check_password":
            await self.check_password(connection, data.get("password"))
        elif kind == "set_target":
            await self.set_target(connection, data.get("host"), data.get("port"))
        elif kind is None and "address" in data and isinstance(data.get("args"), list):
            await self.forward(connection, data["address"], data["args"])
        else:
            log.debug("ignoring frame with type %r", kind)

    def log_data(self, data: dict) -> None:
        if self.sink is None:
            log.debug("no data log sink configured, dropping record")
            return
        record = {k: v for k, v in data.items() if k != "type"}
        self._spawn(asyncio.to_thread(self.sink.append, record))

    async def check_password(self, connection, password) -> bool:
        # TODO: no throttling or lockout on repeated failures
        success = self.password is not None and password == self.password
        if success:
            self._authenticated.add(connection)
        log.info("Password check from %s: %s",
                 getattr(connection, "remote_address", None), "SUCCESS" if success else "FAIL")
        await self._send(connection, {"type": "password_result", "success": success})
        return success

    def _authorize(self, connection) -> None:
        if self.password is not None and connection not in self._authenticated:
            raise Unauthorized()

    async def set_target(self, connection, host, port) -> bool:
        """
        Validate, switch the authoritative target, persist it, rebind the
        listener and tell every client. Errors go to the requester only.
        """
        try:
            self._authorize(connection)
            new_target = validate_target(host, port)
        except Unauthorized:
            await self._send(connection, {"type": "error", "message": "unauthorized"})
            return False
        except InvalidTarget as exc:
            await self._send(connection, {"type": "error", "message": str(exc)})
            return False

        # from here on every forward reads the new target
        self.target.update(new_target)
        await self.bridge.rebind(new_target.host)

        payload = {"type": "target_set", **new_target.to_dict()}
        await self.broadcast(payload)
        await self._send(connection, payload)
        return True

    async def forward(self, connection, address: str, args: list) -> bool:
        target = self.target.current
        log.info("Forwarding OSC to %s:%s -> %s %s", target.host, target.port, address, args)
        try:
            await self.sender.send(address, args)
        except SendFailure as exc:
            log.error("OSC send error: %s", exc)
            await self._send(connection, {"type": "error", "message": str(exc)})
            return False
        await self._send(connection, {"type": "sent", "address": address, "args": args})
        return True
