from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from stagehand.config import ControllerConfig
from stagehand.controller.bootstrap import bootstrap_env, inject_bootstrap, remove_bootstrap
from stagehand.controller.connection import DISCONNECTED_REASON, GameConnection, IsAlive
from stagehand.controller.correlator import RequestCorrelator
from stagehand.errors import NotConnectedError


logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[ControllerConfig], GameConnection]


def _default_connection(config: ControllerConfig) -> GameConnection:
    return GameConnection(host=config.host, port=config.port)


class LiveSession:
    """
    One live run of a game: bootstrap in the project, a connection, teardown.

    begin_run() injects the bootstrap and returns the launch environment; the
    caller starts the game and then calls connect(). A second begin_run()
    replaces the current run. handle_process_exit() and close() disconnect
    (an outstanding request resolves with "Disconnected") and remove the bootstrap.
    """

    def __init__(
        self,
        *,
        config: ControllerConfig | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self.config = config or ControllerConfig.from_env()
        self._connection_factory = connection_factory or _default_connection
        self._lock = threading.RLock()
        self._project_dir: Optional[Path] = None
        self._connection: Optional[GameConnection] = None
        self._correlator: Optional[RequestCorrelator] = None
        self._connect_thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._project_dir is not None

    @property
    def project_dir(self) -> Optional[Path]:
        return self._project_dir

    @property
    def connection(self) -> Optional[GameConnection]:
        return self._connection

    @property
    def connected(self) -> bool:
        conn = self._connection
        return conn is not None and conn.connected

    def begin_run(self, project_dir: str | Path, *, base_env: dict[str, str] | None = None) -> dict[str, str]:
        with self._lock:
            if self._project_dir is not None:
                logger.info("replacing live run in %s", self._project_dir)
                self._teardown(DISCONNECTED_REASON)
            root = Path(project_dir)
            inject_bootstrap(root, self.config.port)
            self._project_dir = root
            self._connection = self._connection_factory(self.config)
            self._correlator = RequestCorrelator(self._connection)
            return bootstrap_env(root, base_env, port=self.config.port)

    def connect(self, is_alive: IsAlive | None = None, *, background: bool = False) -> bool:
        with self._lock:
            conn = self._connection
            if conn is None:
                raise NotConnectedError("No live run; call begin_run() first")
            if not background:
                thread = None
            else:
                thread = threading.Thread(target=conn.connect, args=(is_alive,), daemon=True, name="stagehand-connect")
                self._connect_thread = thread
        if thread is None:
            return conn.connect(is_alive)
        thread.start()
        return False

    def wait_connected(self, timeout_s: float | None = None) -> bool:
        thread = self._connect_thread
        if thread is not None:
            thread.join(timeout_s)
        return self.connected

    def send(self, command: str, params: dict[str, Any] | None = None, timeout_s: float | None = None) -> dict:
        correlator = self._correlator
        if correlator is None:
            raise NotConnectedError("Not connected to game")
        if timeout_s is None:
            timeout_s = self.config.timeout_for(command)
        return correlator.send(command, params, timeout_s)

    def handle_process_exit(self) -> None:
        with self._lock:
            if self._project_dir is None:
                return
            logger.info("game process exited; ending live run")
            self._teardown(DISCONNECTED_REASON)

    def close(self) -> None:
        with self._lock:
            self._teardown(DISCONNECTED_REASON)

    def _teardown(self, reason: str) -> None:
        conn = self._connection
        if conn is not None:
            conn.cancel()
            thread = self._connect_thread
            if thread is not None and thread.is_alive():
                thread.join(timeout=conn.connect_timeout_s + 1.0)
            conn.disconnect(reason)
        if self._project_dir is not None:
            remove_bootstrap(self._project_dir)
        self._project_dir = None
        self._connection = None
        self._correlator = None
        self._connect_thread = None
