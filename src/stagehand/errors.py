from __future__ import annotations


class StagehandError(RuntimeError):
    """Base class for everything raised by stagehand."""


class AgentError(StagehandError):
    """Raised when the in-process agent cannot start (usually a port bind failure)."""


class ControlError(StagehandError):
    """Raised by the controller when a command cannot be delivered or answered."""


class NotConnectedError(ControlError):
    pass


class CommandTimeoutError(ControlError):
    pass


class RequestInFlightError(ControlError):
    """A second command was sent while the previous one is still outstanding."""


class CodecError(StagehandError, ValueError):
    pass
