from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Optional

from stagehand.config import (
    CONNECT_ATTEMPTS,
    CONNECT_RETRY_S,
    CONNECT_SETTLE_S,
    CONNECT_TIMEOUT_S,
    DEFAULT_HOST,
    DEFAULT_PORT,
)
from stagehand.errors import NotConnectedError
from stagehand.protocol import FrameReader, decode_message


logger = logging.getLogger(__name__)

CLOSED_REASON = "Connection closed"
DISCONNECTED_REASON = "Disconnected"

MessageHandler = Callable[[dict], None]
CloseHandler = Callable[[str], None]
IsAlive = Callable[[], bool]


class GameConnection:
    """
    Controller end of the socket: connect with settle + retries, then a reader
    thread turns incoming lines into messages.

    State is one of "disconnected", "connecting", "connected". The close handler
    runs exactly once per established socket, with "Connection closed" when the
    agent went away and the caller's reason for an explicit disconnect().
    """

    def __init__(
        self,
        *,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        settle_s: float = CONNECT_SETTLE_S,
        attempts: int = CONNECT_ATTEMPTS,
        retry_s: float = CONNECT_RETRY_S,
        connect_timeout_s: float = CONNECT_TIMEOUT_S,
    ) -> None:
        self.host = str(host)
        self.port = int(port)
        self.settle_s = max(0.0, float(settle_s))
        self.attempts = max(1, int(attempts))
        self.retry_s = max(0.0, float(retry_s))
        self.connect_timeout_s = float(connect_timeout_s)

        self._sock: Optional[socket.socket] = None
        self._reader = FrameReader()
        self._reader_thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._connect_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = "disconnected"
        self._stop = threading.Event()
        self._on_message: Optional[MessageHandler] = None
        self._on_close: Optional[CloseHandler] = None
        self._on_connect: list[Callable[[str], None]] = []
        self._on_disconnect: list[Callable[[str], None]] = []

    #
    # State and callbacks
    #
    @property
    def state(self) -> str:
        with self._state_lock:
            return self._state

    @property
    def connected(self) -> bool:
        return self.state == "connected"

    def register_on_connect(self, callback: Callable[[str], None]) -> None:
        self._on_connect.append(callback)

    def register_on_disconnect(self, callback: Callable[[str], None]) -> None:
        self._on_disconnect.append(callback)

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self._on_message = handler

    def set_close_handler(self, handler: Optional[CloseHandler]) -> None:
        self._on_close = handler

    def _set_state(self, new_state: str) -> None:
        with self._state_lock:
            if self._state == new_state:
                return
            self._state = new_state
        if new_state == "connected":
            callbacks = list(self._on_connect)
        elif new_state == "disconnected":
            callbacks = list(self._on_disconnect)
        else:
            callbacks = []
        for callback in callbacks:
            try:
                callback(new_state)
            except Exception:
                logger.exception("connection state callback failed")

    #
    # Connect / disconnect
    #
    def connect(self, is_alive: Optional[IsAlive] = None) -> bool:
        """
        Wait `settle_s`, then try up to `attempts` times, `retry_s` apart.

        Gives up early when `is_alive()` turns false or cancel() is called.
        Returns True once connected; exhausting the budget is not an error.
        """

        with self._connect_lock:
            if self.connected:
                return True
            if self._stop.is_set():
                return False
            self._set_state("connecting")
            if self.settle_s > 0 and self._stop.wait(self.settle_s):
                self._set_state("disconnected")
                return False
            last_error: Optional[OSError] = None
            for attempt in range(1, self.attempts + 1):
                if is_alive is not None and not is_alive():
                    logger.warning("game process exited before the agent accepted a connection")
                    self._set_state("disconnected")
                    return False
                try:
                    sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout_s)
                except OSError as exc:
                    last_error = exc
                    logger.debug("connect attempt %d/%d to %s:%d failed: %s", attempt, self.attempts, self.host, self.port, exc)
                    if attempt < self.attempts and self._stop.wait(self.retry_s):
                        break
                    continue
                if self._stop.is_set():
                    sock.close()
                    break
                sock.settimeout(None)
                self._attach(sock)
                return True
            if self._stop.is_set():
                logger.debug("connect to %s:%d cancelled", self.host, self.port)
                self._set_state("disconnected")
                return False
            logger.warning(
                "could not reach the agent at %s:%d after %d attempts (%s); is the game running with the bootstrap?",
                self.host,
                self.port,
                self.attempts,
                last_error,
            )
            self._set_state("disconnected")
            return False

    def cancel(self) -> None:
        """Interrupt a connect() that is settling or between attempts. Final for this object."""

        self._stop.set()

    def _attach(self, sock: socket.socket) -> None:
        with self._lock:
            self._sock = sock
            self._reader.reset()
        logger.debug("connected to agent at %s:%d", self.host, self.port)
        self._set_state("connected")
        self._reader_thread = threading.Thread(target=self._reader_loop, args=(sock,), daemon=True, name="stagehand-reader")
        self._reader_thread.start()

    def disconnect(self, reason: str = DISCONNECTED_REASON) -> None:
        with self._lock:
            sock = self._sock
        if sock is not None:
            self._handle_close(sock, reason)
        thread = self._reader_thread
        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=0.5)
        self._reader_thread = None

    def _handle_close(self, sock: socket.socket, reason: str) -> None:
        with self._lock:
            if self._sock is not sock:
                return
            self._sock = None
            self._reader.reset()
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            sock.close()
        except OSError:
            pass
        logger.debug("connection to agent ended: %s", reason)
        self._set_state("disconnected")
        handler = self._on_close
        if handler is not None:
            handler(reason)

    #
    # I/O
    #
    def send_line(self, data: bytes) -> None:
        with self._lock:
            sock = self._sock
        if sock is None:
            raise NotConnectedError("Not connected to game")
        try:
            with self._send_lock:
                sock.sendall(data)
        except OSError as exc:
            self._handle_close(sock, CLOSED_REASON)
            raise NotConnectedError(f"send failed: {exc}") from exc

    def _reader_loop(self, sock: socket.socket) -> None:
        while True:
            try:
                chunk = sock.recv(65536)
            except OSError:
                break
            if not chunk:
                break
            with self._lock:
                if self._sock is not sock:
                    return
                lines = self._reader.feed(chunk)
            for line in lines:
                try:
                    message = decode_message(line)
                except ValueError:
                    logger.debug("ignoring malformed line from agent: %.200s", line)
                    continue
                handler = self._on_message
                if handler is not None:
                    handler(message)
        self._handle_close(sock, CLOSED_REASON)
