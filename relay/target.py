import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

log = logging.getLogger("relay.target")

# simple IPv4 or hostname shape, no range checks
VALID_HOST = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$|^[a-zA-Z0-9\-._]+$")


class InvalidTarget(ValueError):
    """Host or port has the wrong shape. Raised before any state changes."""


@dataclass(frozen=True)
class TargetConfig:
    host: str
    port: int

    def to_dict(self) -> dict:
        return {"host": self.host, "port": self.port}


def validate_target(host, port) -> TargetConfig:
    """
    Check a client-supplied host/port pair and return it as a TargetConfig.

    The error text doubles as the wire error message sent to the client.
    """
    if not isinstance(host, str) or isinstance(port, bool) or not isinstance(port, int):
        raise InvalidTarget("invalid host/port")
    if not VALID_HOST.match(host):
        raise InvalidTarget("invalid host format")
    if not 1 <= port <= 65535:
        raise InvalidTarget("invalid host/port")
    return TargetConfig(host, port)


class TargetStore:
    """
    Holds the one authoritative TargetConfig and its JSON file.

    The file is a small document `{"host": ..., "port": ...}` read once at
    startup and rewritten on every successful update. `update()` is the only
    writer.
    """

    def __init__(self, default: TargetConfig, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._current = default

    @property
    def current(self) -> TargetConfig:
        return self._current

    def load(self) -> TargetConfig:
        """Apply the persisted target on top of the default, if a readable file exists."""
        if self.path is None or not self.path.exists():
            return self._current
        try:
            with open(self.path) as f:
                stored = json.load(f)
        except (OSError, ValueError) as exc:
            log.warning("Could not load config file %s: %s", self.path, exc)
            return self._current

        host = stored.get("host") or self._current.host
        try:
            port = int(stored.get("port") or self._current.port)
        except (TypeError, ValueError):
            log.warning("Ignoring bad port in %s: %r", self.path, stored.get("port"))
            port = self._current.port
        self._current = TargetConfig(host, port)
        log.info("Loaded persisted config: %s:%s", host, port)
        return self._current

    def update(self, target: TargetConfig) -> TargetConfig:
        """Make `target` authoritative and persist it. Returns the previous target."""
        previous = self._current
        self._current = target
        log.info("OSC target updated %s:%s -> %s:%s",
                 previous.host, previous.port, target.host, target.port)
        self.save()
        return previous

    def save(self) -> None:
        if self.path is None:
            return
        try:
            with open(self.path, "w") as f:
                json.dump(self._current.to_dict(), f, indent=2)
        except OSError as exc:
            # the in-memory target still wins; a restart falls back to the old file
            log.error("Failed to save config to %s: %s", self.path, exc)
            return
        log.info("Persisted config to %s", self.path)
