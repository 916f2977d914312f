from __future__ import annotations

import logging
import os
from dataclasses import dataclass

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name) or default)
    except Exception:
        return default


@dataclass
class BridgeConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    resolve_timeout: float = 10.0
    max_message_bytes: int = 1_000_000
    log_level: str = "INFO"
    trace: bool = False

    @staticmethod
    def normalize_log_level(raw: str | None) -> str:
        level = (raw or "").strip().upper()
        if level == "WARN":
            return "WARNING"
        if isinstance(logging.getLevelName(level), int):
            return level
        return "INFO"

    @classmethod
    def from_env(cls) -> BridgeConfig:
        host = (os.environ.get("SERVO_BRIDGE_HOST") or DEFAULT_HOST).strip() or DEFAULT_HOST
        port = _env_int("SERVO_BRIDGE_PORT", DEFAULT_PORT)
        if port < 0 or port > 65535:
            port = DEFAULT_PORT
        max_bytes = _env_int("SERVO_BRIDGE_MAX_MESSAGE_BYTES", 1_000_000)
        if max_bytes <= 0:
            max_bytes = 1_000_000
        trace_raw = (os.environ.get("SERVO_BRIDGE_TRACE") or "").strip().lower()
        return cls(
            host=host,
            port=port,
            resolve_timeout=_env_float("SERVO_BRIDGE_RESOLVE_TIMEOUT", 10.0),
            max_message_bytes=max_bytes,
            log_level=cls.normalize_log_level(os.environ.get("SERVO_BRIDGE_LOG_LEVEL")),
            trace=trace_raw in {"1", "true", "yes", "on"},
        )

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.port}"
