from stagehand.controller.bootstrap import bootstrap_env, inject_bootstrap, remove_bootstrap
from stagehand.controller.client import GameClient
from stagehand.controller.connection import GameConnection
from stagehand.controller.correlator import RequestCorrelator
from stagehand.controller.session import LiveSession

__all__ = [
    "GameClient",
    "GameConnection",
    "LiveSession",
    "RequestCorrelator",
    "bootstrap_env",
    "inject_bootstrap",
    "remove_bootstrap",
]
