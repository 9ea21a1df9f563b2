from __future__ import annotations

import logging
import socket
from typing import Any, Callable

from direct.task import Task

from stagehand.agent.bindings import build_agent_commands
from stagehand.agent.commands import CommandDispatcher
from stagehand.agent.scene import SceneGraph
from stagehand.config import AgentConfig
from stagehand.errors import AgentError
from stagehand.protocol import FrameReader, encode_message


logger = logging.getLogger(__name__)

TASK_NAME = "stagehand-agent"


class _Client:
    def __init__(self, sock: socket.socket, addr: Any) -> None:
        self.sock = sock
        self.addr = addr
        self.reader = FrameReader()
        self.outbox = bytearray()
        self.alive = True

    def close(self) -> None:
        self.alive = False
        try:
            self.sock.close()
        except OSError:
            pass


class AgentServer:
    """
    In-process JSON-lines command server, polled once per frame.

    Loopback only, one controller at a time: a new connection replaces the old
    one. Replies for a client that has gone away are dropped.
    Poll order per frame: accept, resume suspended command, read + dispatch, flush.
    """

    def __init__(self, *, dispatcher: CommandDispatcher, host: str = "127.0.0.1", port: int = 9090) -> None:
        self.dispatcher = dispatcher
        self.host = str(host)
        self._requested_port = int(port)
        self._listener: socket.socket | None = None
        self._client: _Client | None = None
        self._task_mgr: Any = None

    @classmethod
    def for_base(
        cls,
        base: Any,
        *,
        config: AgentConfig | None = None,
        interval_factory: Callable[..., Any] | None = None,
    ) -> "AgentServer":
        cfg = config or AgentConfig.from_env()
        roots = {alias: getattr(base, attr, None) for alias, attr in cfg.root_attrs()}
        graph = SceneGraph(roots=roots, owner_tag=cfg.owner_tag, max_nodes=cfg.max_nodes)
        registry = build_agent_commands(base=base, graph=graph, interval_factory=interval_factory)
        dispatcher = CommandDispatcher(registry, describe=graph.describe)
        return cls(dispatcher=dispatcher, host=cfg.host, port=cfg.port)

    @property
    def listening(self) -> bool:
        return self._listener is not None

    @property
    def port(self) -> int:
        if self._listener is None:
            return self._requested_port
        return int(self._listener.getsockname()[1])

    @property
    def connected(self) -> bool:
        return self._client is not None

    def start(self) -> None:
        if self._listener is not None:
            return
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((self.host, self._requested_port))
            s.listen(1)
        except OSError as e:
            s.close()
            raise AgentError(f"cannot listen on {self.host}:{self._requested_port}: {e}") from e
        s.setblocking(False)
        self._listener = s
        logger.info("agent listening on %s:%d", self.host, self.port)

    def attach(self, task_mgr: Any) -> None:
        self._task_mgr = task_mgr
        task_mgr.add(self._update, TASK_NAME)

    def _update(self, task) -> int:
        self.poll()
        return Task.cont

    def poll(self) -> None:
        if self._listener is None:
            return
        self._accept()
        self.dispatcher.tick()
        self._read()
        self._flush()

    def _accept(self) -> None:
        assert self._listener is not None
        while True:
            try:
                cs, addr = self._listener.accept()
            except BlockingIOError:
                return
            except OSError:
                logger.exception("accept failed")
                return
            cs.setblocking(False)
            if self._client is not None:
                logger.info("controller %s replaced by %s", self._client.addr, addr)
                self._client.close()
            else:
                logger.info("controller connected from %s", addr)
            self._client = _Client(cs, addr)

    def _drop(self, client: _Client, why: str) -> None:
        logger.info("controller %s disconnected (%s)", client.addr, why)
        client.close()
        if self._client is client:
            self._client = None

    def _reply_to(self, client: _Client) -> Callable[[dict], None]:
        def _reply(resp: dict) -> None:
            if not client.alive or self._client is not client:
                logger.debug("dropping reply for departed controller %s", client.addr)
                return
            client.outbox += encode_message(resp)

        return _reply

    def _read(self) -> None:
        client = self._client
        if client is None:
            return
        while client.alive:
            try:
                data = client.sock.recv(8192)
            except BlockingIOError:
                return
            except OSError as e:
                self._drop(client, str(e))
                return
            if not data:
                self._drop(client, "eof")
                return
            for line in client.reader.feed(data):
                self.dispatcher.handle_line(line, self._reply_to(client))

    def _flush(self) -> None:
        client = self._client
        if client is None or not client.outbox:
            return
        try:
            sent = client.sock.send(bytes(client.outbox))
        except BlockingIOError:
            return
        except OSError as e:
            self._drop(client, str(e))
            return
        del client.outbox[:sent]

    def close(self) -> None:
        if self._task_mgr is not None:
            try:
                self._task_mgr.remove(TASK_NAME)
            except Exception:
                logger.debug("task %s already gone", TASK_NAME)
            self._task_mgr = None
        self.dispatcher.abort("Agent shutting down")
        if self._client is not None:
            self._flush()
            self._client.close()
            self._client = None
        if self._listener is not None:
            try:
                self._listener.close()
            except OSError:
                pass
            self._listener = None
