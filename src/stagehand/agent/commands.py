from __future__ import annotations

import inspect
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Callable, Generator, Iterator

from stagehand import codec
from stagehand.protocol import decode_message, error_response


logger = logging.getLogger(__name__)

CommandParams = dict[str, Any]
CommandHandler = Callable[[CommandParams], Any]
Reply = Callable[[dict], None]


@dataclass(frozen=True)
class WaitFrames:
    """Yielded by a suspending handler: resume after `frames` frame boundaries."""

    frames: int = 1


@dataclass(frozen=True)
class CommandSpec:
    name: str
    summary: str = ""
    handler: CommandHandler | None = None
    # Suspending handlers are generator functions that yield WaitFrames.
    suspending: bool = False
    params: tuple[str, ...] = ()


class CommandRegistry:
    """
    Static command table: exact, case-sensitive name -> handler.
    """

    def __init__(self) -> None:
        self._registry: dict[str, CommandSpec] = {}

    def register(self, *, name: str, handler: CommandHandler, summary: str = "", params: tuple[str, ...] = ()) -> None:
        name = str(name or "").strip()
        if not name:
            raise ValueError("command name is required")
        if name in self._registry:
            raise ValueError(f"duplicate command: {name}")
        self._registry[name] = CommandSpec(
            name=name,
            summary=str(summary),
            handler=handler,
            suspending=inspect.isgeneratorfunction(handler),
            params=tuple(params),
        )

    def has(self, name: str) -> bool:
        return str(name) in self._registry

    def get(self, name: str) -> CommandSpec | None:
        return self._registry.get(str(name))

    def names(self) -> list[str]:
        return sorted(self._registry.keys())

    def list_specs(self) -> list[CommandSpec]:
        return [self._registry[k] for k in self.names()]


class BusyGuard:
    """
    Single-command reentrancy guard: idle, or busy with a named command.
    """

    def __init__(self) -> None:
        self._holder: str | None = None

    @property
    def busy(self) -> bool:
        return self._holder is not None

    @property
    def holder(self) -> str | None:
        return self._holder

    def acquire(self, command: str) -> None:
        if self._holder is not None:
            raise RuntimeError(f"guard already held by {self._holder!r}")
        self._holder = str(command)

    def release(self) -> None:
        self._holder = None

    @contextmanager
    def hold(self, command: str) -> Iterator[None]:
        self.acquire(command)
        try:
            yield
        finally:
            self.release()

    def __repr__(self) -> str:
        if self._holder is None:
            return "BusyGuard(Idle)"
        return f"BusyGuard(Busy({self._holder!r}))"


@dataclass
class _Suspended:
    name: str
    gen: Generator[Any, None, Any]
    reply: Reply
    frames_left: int = 1
    started_s: float = field(default_factory=perf_counter)


class CommandDispatcher:
    """
    Socket-agnostic half of the agent: turns framed lines into replies.

    Exactly one command runs at a time. A suspending command keeps the guard for
    every frame it spends suspended; `tick()` marks a frame boundary.
    """

    def __init__(self, registry: CommandRegistry, *, describe: codec.Describe | None = None) -> None:
        self.registry = registry
        self.guard = BusyGuard()
        self._describe = describe
        self._active: _Suspended | None = None

    @property
    def busy(self) -> bool:
        return self.guard.busy

    def _encode(self, result: Any) -> dict:
        if not isinstance(result, dict):
            return error_response("handler returned invalid result type")
        try:
            return codec.encode(result, describe=self._describe)
        except Exception as e:
            logger.exception("failed to encode response")
            return error_response(f"Failed to encode response: {e}")

    def handle_line(self, line: str, reply: Reply) -> None:
        try:
            msg = decode_message(line)
        except ValueError as e:
            reply(error_response(f"Parse error: {e}"))
            return
        name = msg.get("command")
        if not isinstance(name, str) or not name:
            reply(error_response("Invalid command: missing 'command'"))
            return
        if self.guard.busy:
            reply(error_response(f"Server busy: still processing '{self.guard.holder}'"))
            return
        params = msg.get("params")
        if not isinstance(params, dict):
            params = {}

        spec = self.registry.get(name)
        if spec is None or spec.handler is None:
            with self.guard.hold(name):
                reply(error_response(f"Unknown command: {name}"))
            return

        if not spec.suspending:
            with self.guard.hold(name):
                reply(self._encode(self._run_sync(spec, params)))
            return

        self.guard.acquire(name)
        try:
            gen = spec.handler(params)
        except Exception as e:
            logger.exception("command %s failed", name)
            self._finish_reply(reply, error_response(f"{name} failed: {e}"))
            return
        self._active = _Suspended(name=name, gen=gen, reply=reply)
        self._advance()

    def _run_sync(self, spec: CommandSpec, params: CommandParams) -> Any:
        t0 = perf_counter()
        try:
            result = spec.handler(params)  # type: ignore[misc]
        except Exception as e:
            logger.exception("command %s failed", spec.name)
            return error_response(f"{spec.name} failed: {e}")
        logger.debug("command %s done in %.2f ms", spec.name, (perf_counter() - t0) * 1000.0)
        return result

    def _advance(self) -> None:
        active = self._active
        if active is None:
            return
        try:
            step = active.gen.send(None)
        except StopIteration as stop:
            logger.debug("command %s done in %.2f ms", active.name, (perf_counter() - active.started_s) * 1000.0)
            self._finish(active, stop.value)
        except Exception as e:
            logger.exception("command %s failed", active.name)
            self._finish(active, error_response(f"{active.name} failed: {e}"))
        else:
            frames = int(getattr(step, "frames", 1) or 1)
            active.frames_left = max(1, frames)

    def _finish(self, active: _Suspended, result: Any) -> None:
        self._active = None
        self._finish_reply(active.reply, result)

    def _finish_reply(self, reply: Reply, result: Any) -> None:
        try:
            reply(self._encode(result))
        finally:
            self.guard.release()

    def tick(self) -> None:
        """Frame boundary: resume the suspended command once its wait has elapsed."""

        active = self._active
        if active is None:
            return
        active.frames_left -= 1
        if active.frames_left <= 0:
            self._advance()

    def abort(self, reason: str = "Agent shutting down") -> None:
        active = self._active
        if active is None:
            return
        try:
            active.gen.close()
        except Exception:
            logger.exception("closing command %s failed", active.name)
        self._finish(active, error_response(reason))
