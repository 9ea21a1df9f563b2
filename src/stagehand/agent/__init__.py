from stagehand.agent.commands import BusyGuard, CommandDispatcher, CommandRegistry, WaitFrames
from stagehand.agent.scene import SceneGraph

__all__ = ["BusyGuard", "CommandDispatcher", "CommandRegistry", "SceneGraph", "WaitFrames"]
