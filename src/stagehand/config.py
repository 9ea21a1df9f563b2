from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9090

# Controller connect policy. The game needs a moment to boot before the agent listens.
CONNECT_SETTLE_S = 2.0
CONNECT_ATTEMPTS = 10
CONNECT_RETRY_S = 0.5
CONNECT_TIMEOUT_S = 1.0

# Per-command timeouts. Code execution and multi-frame waits get the long one.
DEFAULT_TIMEOUT_S = 10.0
LONG_TIMEOUT_S = 30.0
LONG_RUNNING_COMMANDS = frozenset({"eval", "wait", "screenshot"})


def _env_port(default: int) -> int:
    raw = os.environ.get("STAGEHAND_PORT", "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def debug_enabled() -> bool:
    return os.environ.get("STAGEHAND_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AgentConfig:
    # Loopback only. The agent executes arbitrary code on request.
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    # Named scene roots: alias -> ShowBase attribute. None means the defaults below.
    roots: tuple[tuple[str, str], ...] | None = None
    owner_tag: str = "owner"
    max_nodes: int = 2500

    def root_attrs(self) -> tuple[tuple[str, str], ...]:
        if self.roots:
            return tuple(self.roots)
        return (("root", "render"), ("aspect2d", "aspect2d"), ("render2d", "render2d"))

    @staticmethod
    def from_env() -> "AgentConfig":
        return AgentConfig(port=_env_port(DEFAULT_PORT))


@dataclass(frozen=True)
class ControllerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    default_timeout_s: float = DEFAULT_TIMEOUT_S
    long_timeout_s: float = LONG_TIMEOUT_S

    def timeout_for(self, command: str) -> float:
        if str(command) in LONG_RUNNING_COMMANDS:
            return float(self.long_timeout_s)
        return float(self.default_timeout_s)

    @staticmethod
    def from_env() -> "ControllerConfig":
        host = os.environ.get("STAGEHAND_HOST", "").strip() or DEFAULT_HOST
        return ControllerConfig(host=host, port=_env_port(DEFAULT_PORT))
