from __future__ import annotations

"""
In-process bootstrap: start an AgentServer whenever a ShowBase comes up.

Imported from the generated sitecustomize.py (see stagehand.controller.bootstrap),
so it runs before the game's own code.
"""

import functools
import logging

from direct.showbase.ShowBase import ShowBase

from stagehand.agent.server import AgentServer
from stagehand.config import AgentConfig
from stagehand.errors import AgentError


logger = logging.getLogger(__name__)

_ATTR = "stagehand_agent"


def start_agent(base, *, config: AgentConfig | None = None) -> AgentServer | None:
    """Start and attach an agent for `base`. Returns None when the port cannot be bound."""

    server = AgentServer.for_base(base, config=config)
    try:
        server.start()
    except AgentError as e:
        logger.error("stagehand agent disabled: %s", e)
        return None
    server.attach(base.taskMgr)
    setattr(base, _ATTR, server)
    return server


def install(port: int | None = None) -> bool:
    """Wrap ShowBase.__init__ once. Returns False when already installed."""

    current = ShowBase.__init__
    if getattr(current, "_stagehand_wrapped", False):
        return False
    env_cfg = AgentConfig.from_env()
    config = AgentConfig(host=env_cfg.host, port=int(port) if port is not None else env_cfg.port)

    @functools.wraps(current)
    def __init__(self, *args, **kwargs):
        current(self, *args, **kwargs)
        if getattr(self, _ATTR, None) is None:
            start_agent(self, config=config)

    __init__._stagehand_wrapped = True  # type: ignore[attr-defined]
    __init__._stagehand_original = current  # type: ignore[attr-defined]
    ShowBase.__init__ = __init__
    return True


def uninstall() -> bool:
    current = ShowBase.__init__
    original = getattr(current, "_stagehand_original", None)
    if original is None:
        return False
    ShowBase.__init__ = original
    return True
