from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from stagehand.config import DEFAULT_TIMEOUT_S
from stagehand.controller.connection import GameConnection
from stagehand.errors import CommandTimeoutError, NotConnectedError, RequestInFlightError
from stagehand.protocol import encode_command, error_response


logger = logging.getLogger(__name__)


class _Pending:
    def __init__(self, command: str) -> None:
        self.command = command
        self.event = threading.Event()
        self.response: Optional[dict] = None


class RequestCorrelator:
    """
    Pairs each command with the next message from the agent.

    Correlation is ordinal, so there is a single pending slot. Whichever comes
    first resolves it: the next message, the timeout, or the connection closing.
    A response that arrives after its caller gave up is logged and dropped.
    """

    def __init__(self, connection: GameConnection) -> None:
        self.connection = connection
        self._lock = threading.Lock()
        self._pending: Optional[_Pending] = None
        connection.set_message_handler(self._on_message)
        connection.set_close_handler(self._on_close)

    @property
    def in_flight(self) -> Optional[str]:
        with self._lock:
            return self._pending.command if self._pending is not None else None

    def send(self, command: str, params: Optional[dict[str, Any]] = None, timeout_s: float = DEFAULT_TIMEOUT_S) -> dict:
        if not self.connection.connected:
            raise NotConnectedError("Not connected to game")
        pending = _Pending(str(command))
        with self._lock:
            if self._pending is not None:
                raise RequestInFlightError(f"request already in flight: {self._pending.command}")
            self._pending = pending
        try:
            self.connection.send_line(encode_command(command, params))
        except NotConnectedError:
            self._clear(pending)
            raise
        if not pending.event.wait(timeout_s):
            self._clear(pending)
        with self._lock:
            response = pending.response
        if response is None:
            raise CommandTimeoutError(f"Command '{command}' timed out after {timeout_s:g}s")
        return response

    def _clear(self, pending: _Pending) -> None:
        with self._lock:
            if self._pending is pending:
                self._pending = None

    def _resolve(self, response: dict) -> bool:
        with self._lock:
            pending = self._pending
            self._pending = None
            if pending is None:
                return False
            pending.response = response
        pending.event.set()
        return True

    def _on_message(self, message: dict) -> None:
        if not self._resolve(message):
            logger.debug("discarding response with no pending request: %.200s", message)

    def _on_close(self, reason: str) -> None:
        self._resolve(error_response(reason))
