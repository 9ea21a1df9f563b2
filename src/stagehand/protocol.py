from __future__ import annotations

"""
Wire format shared by the agent and the controller.

One JSON object per line, UTF-8, compact separators, terminated by a single "\\n":
  request:  {"command":"get_property","params":{"node_path":"/root/Player","property":"pos"}}
  success:  {"success":true,...}
  failure:  {"error":"Node not found: /root/Player"}

There is no correlation id. The agent answers strictly in arrival order and the
controller keeps at most one request outstanding.
"""

import json
from typing import Any


class FrameReader:
    """
    Accumulates raw socket chunks and yields complete newline-terminated lines.

    Lines are decoded as UTF-8 and stripped; empty lines are skipped. Incomplete
    trailing bytes are kept for the next feed.
    """

    def __init__(self) -> None:
        self._buf = b""

    @property
    def pending_bytes(self) -> int:
        return len(self._buf)

    def feed(self, data: bytes) -> list[str]:
        if data:
            self._buf += bytes(data)
        out: list[str] = []
        while b"\n" in self._buf:
            raw, self._buf = self._buf.split(b"\n", 1)
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                out.append(line)
        return out

    def reset(self) -> None:
        self._buf = b""


def encode_message(obj: dict) -> bytes:
    return (json.dumps(obj, separators=(",", ":"), ensure_ascii=True) + "\n").encode("utf-8")


def encode_command(command: str, params: dict[str, Any] | None = None) -> bytes:
    return encode_message({"command": str(command), "params": dict(params or {})})


def decode_message(line: str) -> dict:
    """Parse one framed line. Raises ValueError for malformed JSON or a non-object payload."""

    obj = json.loads(line)
    if not isinstance(obj, dict):
        raise ValueError(f"expected a JSON object, got {type(obj).__name__}")
    return obj


def error_response(message: str, **extra: Any) -> dict:
    out: dict[str, Any] = {"error": str(message)}
    out.update(extra)
    return out


def success_response(**fields: Any) -> dict:
    out: dict[str, Any] = {"success": True}
    out.update(fields)
    return out


def is_error(response: Any) -> bool:
    return isinstance(response, dict) and "error" in response
