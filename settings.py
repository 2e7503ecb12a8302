"""
Config loading shared by the relay server and the kiosk client.

Values come from the YAML file, with the same environment overrides the
kiosk has always honoured (HTTP_PORT, OSC_HOST, OSC_PORT, OSC_LISTEN_PORT,
PASSWORD).
"""

import logging
import os

import yaml

from relay.target import TargetConfig
from state.schema import Control

DEFAULT_CONTROLS = [
    {"id": 1, "key": "video1", "label": "first",  "duration_ms": 60_000},
    {"id": 2, "key": "video2", "label": "second", "duration_ms": 60_000},
    {"id": 3, "key": "video3", "label": "third",  "duration_ms": 60_000},
]


def load_config(path: str = "config.yaml") -> dict:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return int(default)
    return int(raw)


def configure_logging(config: dict) -> None:
    level = str(config.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="[%(name)s] %(message)s")


def http_address(config: dict) -> tuple[str, int]:
    server_cfg = config.get("server", {})
    return server_cfg.get("host", "0.0.0.0"), _env_int("HTTP_PORT", server_cfg.get("port", 3000))


def default_target(config: dict) -> TargetConfig:
    osc_cfg = config.get("osc", {})
    host = os.environ.get("OSC_HOST") or osc_cfg.get("host", "127.0.0.1")
    return TargetConfig(host, _env_int("OSC_PORT", osc_cfg.get("port", 57120)))


def listen_port(config: dict) -> int:
    osc_cfg = config.get("osc", {})
    fallback = osc_cfg.get("listen_port", osc_cfg.get("port", 57120))
    return _env_int("OSC_LISTEN_PORT", _env_int("OSC_PORT", fallback))


def target_file(config: dict) -> str:
    return config.get("osc", {}).get("target_file", "osc-config.json")


def password(config: dict):
    return os.environ.get("PASSWORD") or config.get("auth", {}).get("password") or None


def data_log_path(config: dict):
    return config.get("data_log", {}).get("path", "data.csv")


def controls(config: dict) -> list[Control]:
    entries = config.get("session", {}).get("controls") or DEFAULT_CONTROLS
    return [Control.from_config(entry) for entry in entries]
