from __future__ import annotations

import threading
from typing import Any, Optional, Protocol

from stagehand import codec
from stagehand.config import ControllerConfig
from stagehand.controller.connection import GameConnection
from stagehand.controller.correlator import RequestCorrelator


class _Sender(Protocol):
    def send(self, command: str, params: Optional[dict[str, Any]] = None, timeout_s: float = ...) -> dict: ...


class GameClient:
    """
    Typed wrappers over the command catalog.

    Calls are serialized with a lock so several threads can share one client
    without tripping the single pending slot. Parameter values may be Panda3D
    types; they are encoded with the codec before sending.
    """

    def __init__(self, sender: _Sender, *, config: ControllerConfig | None = None, connection: GameConnection | None = None) -> None:
        self._sender = sender
        self.config = config or ControllerConfig()
        self._connection = connection
        self._lock = threading.Lock()

    @classmethod
    def connect(cls, config: ControllerConfig | None = None, *, settle_s: float = 0.0, attempts: int = 1) -> "GameClient | None":
        """Attach to an already running agent. Returns None when it cannot be reached."""

        cfg = config or ControllerConfig.from_env()
        conn = GameConnection(host=cfg.host, port=cfg.port, settle_s=settle_s, attempts=attempts)
        correlator = RequestCorrelator(conn)
        if not conn.connect():
            return None
        return cls(correlator, config=cfg, connection=conn)

    def close(self) -> None:
        if self._connection is not None:
            self._connection.disconnect()

    def send(self, command: str, params: dict[str, Any] | None = None, timeout_s: float | None = None) -> dict:
        if timeout_s is None:
            timeout_s = self.config.timeout_for(command)
        payload = codec.encode(dict(params or {}))
        with self._lock:
            return self._sender.send(command, payload, timeout_s)

    # Input
    def screenshot(self) -> dict:
        return self.send("screenshot")

    def click(self, x: float, y: float, button: int = 1) -> dict:
        return self.send("click", {"x": x, "y": y, "button": button})

    def key_press(self, key: str | None = None, *, action: str | None = None, pressed: bool | None = None) -> dict:
        params: dict[str, Any] = {}
        if key:
            params["key"] = key
        if action:
            params["action"] = action
        if pressed is not None:
            params["pressed"] = bool(pressed)
        return self.send("key_press", params)

    def mouse_move(
        self,
        x: float | None = None,
        y: float | None = None,
        *,
        relative_x: float = 0.0,
        relative_y: float = 0.0,
    ) -> dict:
        params: dict[str, Any] = {"relative_x": relative_x, "relative_y": relative_y}
        if x is not None:
            params["x"] = x
        if y is not None:
            params["y"] = y
        return self.send("mouse_move", params)

    # Runtime
    def eval(self, code: str) -> dict:
        return self.send("eval", {"code": code})

    def pause(self, paused: bool = True) -> dict:
        return self.send("pause", {"paused": bool(paused)})

    def get_performance(self) -> dict:
        return self.send("get_performance")

    def wait(self, frames: int = 1) -> dict:
        return self.send("wait", {"frames": int(frames)})

    # Nodes
    def get_property(self, node_path: str, property: str) -> dict:
        return self.send("get_property", {"node_path": node_path, "property": property})

    def set_property(self, node_path: str, property: str, value: Any, type_hint: str | None = None) -> dict:
        params: dict[str, Any] = {"node_path": node_path, "property": property, "value": value}
        if type_hint:
            params["type_hint"] = type_hint
        return self.send("set_property", params)

    def call_method(self, node_path: str, method: str, args: list[Any] | None = None) -> dict:
        return self.send("call_method", {"node_path": node_path, "method": method, "args": list(args or [])})

    def get_node_info(self, node_path: str) -> dict:
        return self.send("get_node_info", {"node_path": node_path})

    def instantiate_scene(self, scene_path: str, parent_path: str = "/root") -> dict:
        return self.send("instantiate_scene", {"scene_path": scene_path, "parent_path": parent_path})

    def remove_node(self, node_path: str) -> dict:
        return self.send("remove_node", {"node_path": node_path})

    def change_scene(self, scene_path: str) -> dict:
        return self.send("change_scene", {"scene_path": scene_path})

    def reparent_node(self, node_path: str, new_parent_path: str, keep_global_transform: bool = True) -> dict:
        return self.send(
            "reparent_node",
            {"node_path": node_path, "new_parent_path": new_parent_path, "keep_global_transform": bool(keep_global_transform)},
        )

    # Signals
    def connect_signal(self, node_path: str, signal_name: str, target_path: str, method: str) -> dict:
        return self.send(
            "connect_signal",
            {"node_path": node_path, "signal_name": signal_name, "target_path": target_path, "method": method},
        )

    def disconnect_signal(self, node_path: str, signal_name: str, target_path: str, method: str) -> dict:
        return self.send(
            "disconnect_signal",
            {"node_path": node_path, "signal_name": signal_name, "target_path": target_path, "method": method},
        )

    def emit_signal(self, node_path: str, signal_name: str, args: list[Any] | None = None) -> dict:
        return self.send("emit_signal", {"node_path": node_path, "signal_name": signal_name, "args": list(args or [])})

    # Animation
    def play_animation(self, node_path: str, action: str = "play", animation: str | None = None) -> dict:
        params: dict[str, Any] = {"node_path": node_path, "action": action}
        if animation:
            params["animation"] = animation
        return self.send("play_animation", params)

    def tween_property(
        self,
        node_path: str,
        property: str,
        final_value: Any,
        duration: float = 1.0,
        trans_type: int = 0,
        ease_type: int = 2,
    ) -> dict:
        return self.send(
            "tween_property",
            {
                "node_path": node_path,
                "property": property,
                "final_value": final_value,
                "duration": float(duration),
                "trans_type": int(trans_type),
                "ease_type": int(ease_type),
            },
        )

    # Queries
    def get_nodes_in_group(self, group: str) -> dict:
        return self.send("get_nodes_in_group", {"group": group})

    def find_nodes_by_class(self, class_name: str, root_path: str = "/root") -> dict:
        return self.send("find_nodes_by_class", {"class_name": class_name, "root_path": root_path})

    def get_ui_elements(self) -> dict:
        return self.send("get_ui_elements")

    def get_scene_tree(self) -> dict:
        return self.send("get_scene_tree")
