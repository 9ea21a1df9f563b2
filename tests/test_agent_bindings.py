from __future__ import annotations

import base64
import io
import json
from types import SimpleNamespace

from PIL import Image
from panda3d.core import ClockObject, LPoint3f, LVecBase2f, ModelRoot, NodePath, PGItem

from stagehand.agent.bindings import MAX_WAIT_FRAMES, build_agent_commands
from stagehand.agent.commands import CommandDispatcher
from stagehand.agent.scene import SceneGraph


class _FakeMessenger:
    def __init__(self) -> None:
        self.sent: list[tuple[str, list]] = []
        self.hooks: dict[str, dict[int, object]] = {}

    def accept(self, event, obj, method, extraArgs=None) -> None:
        self.hooks.setdefault(event, {})[id(obj)] = method

    def ignore(self, event, obj) -> None:
        self.hooks.get(event, {}).pop(id(obj), None)

    def send(self, event, sentArgs=None) -> None:
        args = list(sentArgs or [])
        self.sent.append((event, args))
        for method in list(self.hooks.get(event, {}).values()):
            method(*args)


class _FakeLoader:
    def __init__(self) -> None:
        self.loaded: list[str] = []

    def loadModel(self, path):
        if "missing" in path:
            raise OSError(f"Could not load model file(s): {path}")
        self.loaded.append(path)
        return NodePath(ModelRoot(path.rsplit("/", 1)[-1].split(".")[0]))


class _FakeWin:
    def __init__(self) -> None:
        self.moves: list[tuple[int, int, int]] = []

    def movePointer(self, device, x, y) -> bool:
        self.moves.append((device, x, y))
        return True

    def getPointer(self, device):
        return SimpleNamespace(getX=lambda: 100, getY=lambda: 50)

    def getScreenshot(self):
        # 2x2 RGBA, bottom row first: red, green / blue, white
        data = bytes([255, 0, 0, 255, 0, 255, 0, 255, 0, 0, 255, 255, 255, 255, 255, 255])
        return SimpleNamespace(
            getXSize=lambda: 2,
            getYSize=lambda: 2,
            getRamImageAs=lambda fmt: SimpleNamespace(getData=lambda: data),
        )


class _FakeClock:
    def __init__(self) -> None:
        self.modes: list[int] = []

    def setMode(self, mode) -> None:
        self.modes.append(mode)

    def getAverageFrameRate(self) -> float:
        return 60.0

    def getDt(self) -> float:
        return 0.016

    def getFrameCount(self) -> int:
        return 120

    def getRealTime(self) -> float:
        return 2.0


class _FakeInterval:
    def __init__(self, fn, log: list, **kw) -> None:
        self.fn = fn
        self.kw = kw
        self.started = False
        self.finished = False
        log.append(self)

    def start(self) -> None:
        self.started = True

    def finish(self) -> None:
        if not self.finished:
            self.finished = True
            self.fn(self.kw["toData"])


class _FakeActor:
    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []

    def getAnimNames(self):
        return ["walk", "idle"]

    def play(self, name) -> None:
        self.calls.append(("play", name))

    def loop(self, name) -> None:
        self.calls.append(("loop", name))

    def stop(self, name=None) -> None:
        self.calls.append(("stop", name))


class _Player:
    def __init__(self) -> None:
        self.position = LVecBase2f(3, 4)
        self.hp = 10
        self.alarms: list[tuple] = []

    def take_damage(self, amount):
        self.hp -= amount
        return self.hp

    def on_alarm(self, *args) -> None:
        self.alarms.append(args)

    def _secret(self) -> str:
        return "hidden"


def _world(**base_extra) -> SimpleNamespace:
    render = NodePath("render")
    aspect2d = NodePath("aspect2d")
    player = render.attachNewNode("Player")
    owner = _Player()
    player.setPythonTag("owner", owner)
    enemy = render.attachNewNode("Enemy")
    hero = render.attachNewNode("Hero")
    actor = _FakeActor()
    hero.setPythonTag("owner", SimpleNamespace(actor=actor))
    base = SimpleNamespace(
        render=render,
        aspect2d=aspect2d,
        messenger=_FakeMessenger(),
        loader=_FakeLoader(),
        win=_FakeWin(),
        clock=_FakeClock(),
        taskMgr=SimpleNamespace(getTasks=lambda: ["a", "b", "c"]),
        **base_extra,
    )
    graph = SceneGraph(roots={"root": render, "aspect2d": aspect2d})
    tweens: list[_FakeInterval] = []
    reg = build_agent_commands(base=base, graph=graph, interval_factory=lambda fn, **kw: _FakeInterval(fn, tweens, **kw))
    return SimpleNamespace(
        base=base,
        graph=graph,
        dispatcher=CommandDispatcher(reg, describe=graph.describe),
        render=render,
        aspect2d=aspect2d,
        player=player,
        owner=owner,
        enemy=enemy,
        hero=hero,
        actor=actor,
        tweens=tweens,
    )


def _run(world: SimpleNamespace, command: str, **params) -> dict:
    out: list[dict] = []
    world.dispatcher.handle_line(json.dumps({"command": command, "params": params}), out.append)
    for _ in range(MAX_WAIT_FRAMES + 5):
        if out:
            break
        world.dispatcher.tick()
    assert len(out) == 1
    assert not world.dispatcher.busy
    return json.loads(json.dumps(out[0]))


def test_get_property_from_owner_scenario() -> None:
    w = _world()
    resp = _run(w, "get_property", node_path="/root/Player", property="position")
    assert resp["success"] is True
    assert resp["value"] == {"x": 3, "y": 4}


def test_get_property_uses_node_getter() -> None:
    w = _world()
    w.player.setPos(1, 2, 3)
    resp = _run(w, "get_property", node_path="/root/Player", property="pos")
    assert resp["value"] == {"x": 1, "y": 2, "z": 3}
    assert _run(w, "get_property", node_path="Player", property="visible")["value"] is True


def test_lookup_errors() -> None:
    w = _world()
    assert _run(w, "get_property", node_path="/root/Ghost", property="pos") == {"error": "Node not found: /root/Ghost"}
    assert _run(w, "get_property", node_path="/root/Player", property="nope") == {
        "error": "Property not found: nope on node /root/Player"
    }
    assert _run(w, "call_method", node_path="/root/Enemy", method="missing_fn") == {
        "error": "Method not found: missing_fn on node /root/Enemy"
    }
    assert _run(w, "call_method", node_path="/root/Player", method="_secret")["error"].startswith("Method not found")


def test_set_property_decodes_against_current_type() -> None:
    w = _world()
    resp = _run(w, "set_property", node_path="/root/Player", property="pos", value={"x": 5, "y": 6, "z": 7})
    assert resp["success"] is True
    assert w.player.getPos().almostEqual(LPoint3f(5, 6, 7))

    _run(w, "set_property", node_path="/root/Player", property="position", value=[8, 9])
    assert w.owner.position == LVecBase2f(8, 9)

    _run(w, "set_property", node_path="/root/Player", property="visible", value=False)
    assert w.player.isHidden()

    _run(w, "set_property", node_path="/root/Player", property="color_scale", value={"r": 1, "g": 0, "b": 0}, type_hint="Color")
    cs = w.player.getColorScale()
    assert (cs[0], cs[1], cs[2], cs[3]) == (1.0, 0.0, 0.0, 1.0)


def test_set_property_bad_hint_is_error_response() -> None:
    w = _world()
    resp = _run(w, "set_property", node_path="/root/Player", property="pos", value=1, type_hint="Vector9")
    assert resp["error"].startswith("set_property failed:")


def test_call_method_on_owner_and_node() -> None:
    w = _world()
    assert _run(w, "call_method", node_path="/root/Player", method="take_damage", args=[3])["result"] == 7
    assert _run(w, "call_method", node_path="/root/Enemy", method="getName")["result"] == "Enemy"


def test_get_node_info() -> None:
    w = _world()
    w.player.attachNewNode("Weapon")
    resp = _run(w, "get_node_info", node_path="/root/Player")
    assert resp["name"] == "Player"
    assert resp["type"] == "PandaNode"
    assert resp["owner"] == "_Player"
    names = [p["name"] for p in resp["properties"]]
    assert names[:3] == ["name", "pos", "hpr"]
    assert "position" in names and "hp" in names
    assert "take_damage" in resp["methods"]
    assert "_secret" not in resp["methods"]
    assert resp["children"] == [{"name": "Weapon", "type": "PandaNode", "path": "/root/Player/Weapon"}]
    assert resp["signals"] == []


def test_eval_expression_statements_and_errors() -> None:
    w = _world()
    assert _run(w, "eval", code="1 + 2")["result"] == 3
    assert _run(w, "eval", code="x = 5\nresult = x * 2")["result"] == 10
    node = _run(w, "eval", code="find_node('/root/Player')")["result"]
    assert node == {"type": "node", "class": "PandaNode", "name": "Player", "path": "/root/Player"}
    assert _run(w, "eval", code="def (")["error"].startswith("Compile error:")
    assert _run(w, "eval", code="1/0")["error"] == "Runtime error: ZeroDivisionError: division by zero"
    assert _run(w, "eval", code="   ")["error"] == "code parameter is required"


def test_instantiate_and_remove() -> None:
    w = _world()
    resp = _run(w, "instantiate_scene", scene_path="models/crate.bam")
    assert resp["node_path"] == "/root/crate"
    assert w.base.loader.loaded == ["models/crate.bam"]
    assert w.graph.find("/root/crate") is not None

    assert _run(w, "instantiate_scene", scene_path="models/missing.bam")["error"].startswith("Failed to load scene: models/missing.bam")
    assert _run(w, "instantiate_scene", scene_path="models/crate.bam", parent_path="/root/Ghost") == {"error": "Node not found: /root/Ghost"}

    assert _run(w, "remove_node", node_path="/root") == {"error": "Cannot remove a root node: /root"}
    assert _run(w, "remove_node", node_path="/root/crate")["removed"] == "/root/crate"
    assert w.graph.find("/root/crate") is None


def test_change_scene_replaces_previous_scene() -> None:
    w = _world()
    _run(w, "change_scene", scene_path="levels/level1.bam")
    assert w.graph.find("/root/level1") is not None
    resp = _run(w, "change_scene", scene_path="levels/level2.bam")
    assert resp["node_path"] == "/root/level2"
    assert w.graph.find("/root/level1") is None


def test_change_scene_prefers_host_hook() -> None:
    seen: list[str] = []
    w = _world(change_scene=seen.append)
    assert _run(w, "change_scene", scene_path="levels/menu.bam")["success"] is True
    assert seen == ["levels/menu.bam"]
    assert w.base.loader.loaded == []


def test_reparent_keeps_global_transform_and_refuses_cycles() -> None:
    w = _world()
    w.player.setPos(1, 0, 0)
    w.enemy.setPos(10, 0, 0)
    resp = _run(w, "reparent_node", node_path="/root/Player", new_parent_path="/root/Enemy")
    assert resp["node_path"] == "/root/Enemy/Player"
    assert w.player.getPos(w.render).almostEqual(LPoint3f(1, 0, 0))

    resp = _run(w, "reparent_node", node_path="/root/Enemy", new_parent_path="/root/Enemy/Player")
    assert resp == {"error": "Cannot reparent a node under itself"}

    _run(w, "reparent_node", node_path="/root/Enemy/Player", new_parent_path="/root", keep_global_transform=False)
    assert w.player.getPos().almostEqual(LPoint3f(-9, 0, 0))


def test_signal_connect_emit_disconnect() -> None:
    w = _world()
    link = {"node_path": "/root/Enemy", "signal_name": "alarm", "target_path": "/root/Player", "method": "on_alarm"}
    assert _run(w, "connect_signal", **link)["success"] is True
    assert _run(w, "connect_signal", **link)["error"] == "Signal already connected: alarm -> /root/Player.on_alarm"
    assert _run(w, "get_node_info", node_path="/root/Enemy")["signals"] == ["alarm"]

    _run(w, "emit_signal", node_path="/root/Enemy", signal_name="alarm", args=[1, {"x": 1, "y": 2}])
    assert w.owner.alarms == [(1, LVecBase2f(1, 2))]

    assert _run(w, "disconnect_signal", **link)["success"] is True
    assert _run(w, "disconnect_signal", **link)["error"] == "Signal not connected: alarm -> /root/Player.on_alarm"
    _run(w, "emit_signal", node_path="/root/Enemy", signal_name="alarm")
    assert len(w.owner.alarms) == 1

    bad = dict(link, method="nope")
    assert _run(w, "connect_signal", **bad) == {"error": "Method not found: nope on node /root/Player"}


def test_play_animation_actions() -> None:
    w = _world()
    assert _run(w, "play_animation", node_path="/root/Hero", action="list")["animations"] == ["idle", "walk"]
    assert _run(w, "play_animation", node_path="/root/Hero", animation="walk")["animation"] == "walk"
    assert _run(w, "play_animation", node_path="/root/Hero", action="loop")["animation"] == "idle"
    _run(w, "play_animation", node_path="/root/Hero", action="stop")
    assert w.actor.calls == [("play", "walk"), ("loop", "idle"), ("stop", None)]

    resp = _run(w, "play_animation", node_path="/root/Hero", animation="run")
    assert resp["error"] == "Animation not found: run"
    assert resp["animations"] == ["idle", "walk"]
    assert _run(w, "play_animation", node_path="/root/Player")["error"] == "No animations on node /root/Player"


def test_tween_property_uses_interval_and_replaces_running_tween() -> None:
    w = _world()
    resp = _run(w, "tween_property", node_path="/root/Player", property="pos", final_value={"x": 10, "y": 0, "z": 0}, duration=0.5, trans_type=1)
    assert resp["blend"] == "easeInOut"
    first = w.tweens[0]
    assert first.started
    assert first.kw["duration"] == 0.5
    assert first.kw["toData"].almostEqual(LPoint3f(10, 0, 0))

    _run(w, "tween_property", node_path="/root/Player", property="pos", final_value=[0, 0, 5])
    assert first.finished
    assert w.player.getPos().almostEqual(LPoint3f(10, 0, 0))
    assert w.tweens[1].kw["blendType"] == "noBlend"

    _run(w, "tween_property", node_path="/root/Player", property="hp", final_value=4)
    w.tweens[2].fn(7.6)
    assert w.owner.hp == 8

    assert _run(w, "tween_property", node_path="/root/Player", property="name", final_value="x")["error"].startswith(
        "Property cannot be tweened"
    )


def test_group_and_class_queries() -> None:
    w = _world()
    w.enemy.setTag("hostile", "1")
    resp = _run(w, "get_nodes_in_group", group="hostile")
    assert resp["nodes"] == [{"name": "Enemy", "type": "PandaNode", "path": "/root/Enemy"}]

    _run(w, "instantiate_scene", scene_path="models/crate.bam")
    models = _run(w, "find_nodes_by_class", class_name="ModelRoot")["nodes"]
    assert [n["path"] for n in models] == ["/root/crate"]
    plain = {n["name"] for n in _run(w, "find_nodes_by_class", class_name="PandaNode", root_path="/root")["nodes"]}
    assert {"render", "Player", "Enemy", "Hero"} <= plain


def test_pause_drives_clock_or_host_hook() -> None:
    w = _world()
    assert _run(w, "pause", paused=True)["paused"] is True
    assert _run(w, "pause", paused=False)["paused"] is False
    assert w.base.clock.modes == [ClockObject.MSlave, ClockObject.MNormal]

    seen: list[bool] = []
    w = _world(set_paused=seen.append)
    _run(w, "pause", paused="true")
    assert seen == [True]
    assert w.base.clock.modes == []


def test_get_performance() -> None:
    w = _world()
    _run(w, "pause", paused=True)
    resp = _run(w, "get_performance")
    assert resp["fps"] == 60.0
    assert abs(resp["frame_time_ms"] - 16.0) < 1e-6
    assert resp["frame_count"] == 120
    assert resp["node_count"] == 4
    assert resp["task_count"] == 3
    assert resp["paused"] is True


def test_wait_suspends_for_frames_and_clamps() -> None:
    w = _world()
    out: list[dict] = []
    w.dispatcher.handle_line(json.dumps({"command": "wait", "params": {"frames": 3}}), out.append)
    w.dispatcher.tick()
    w.dispatcher.tick()
    assert out == []
    w.dispatcher.tick()
    assert out == [{"success": True, "frames_waited": 3}]
    assert _run(w, "wait", frames=100000)["frames_waited"] == MAX_WAIT_FRAMES
    assert _run(w, "wait", frames=0)["frames_waited"] == 1


def test_click_and_key_press_send_events_across_a_frame() -> None:
    w = _world()
    resp = _run(w, "click", x=10, y=20)
    assert resp == {"success": True, "x": 10.0, "y": 20.0, "button": 1}
    assert w.base.win.moves == [(0, 10, 20)]
    assert [e for e, _a in w.base.messenger.sent] == ["mouse1", "mouse1-up"]

    w.base.messenger.sent.clear()
    _run(w, "click", x=0, y=0, button=4)
    assert [e for e, _a in w.base.messenger.sent] == ["wheel_up"]
    assert _run(w, "click", x=0, y=0, button=9)["error"] == "Unsupported mouse button: 9"

    w.base.messenger.sent.clear()
    _run(w, "key_press", key="Space")
    _run(w, "key_press", key="Enter", pressed=True)
    _run(w, "key_press", action="jump", pressed=False)
    assert [e for e, _a in w.base.messenger.sent] == ["space", "space-up", "enter", "jump-up"]
    assert _run(w, "key_press")["error"] == "Must provide either 'key' or 'action'"


def test_key_press_holds_guard_until_release() -> None:
    w = _world()
    out: list[dict] = []
    w.dispatcher.handle_line(json.dumps({"command": "key_press", "params": {"key": "a"}}), out.append)
    w.dispatcher.handle_line(json.dumps({"command": "get_scene_tree", "params": {}}), out.append)
    assert out == [{"error": "Server busy: still processing 'key_press'"}]
    w.dispatcher.tick()
    assert out[-1]["event"] == "a"
    assert [e for e, _a in w.base.messenger.sent] == ["a", "a-up"]


def test_mouse_move_absolute_and_relative() -> None:
    w = _world()
    assert _run(w, "mouse_move", x=5, y=6)["x"] == 5.0
    resp = _run(w, "mouse_move", relative_x=10, relative_y=-5)
    assert (resp["x"], resp["y"]) == (110.0, 45.0)
    assert w.base.win.moves[-1] == (0, 110, 45)


def test_screenshot_returns_png_after_a_frame() -> None:
    w = _world()
    resp = _run(w, "screenshot")
    assert (resp["width"], resp["height"], resp["format"]) == (2, 2, "png")
    img = Image.open(io.BytesIO(base64.b64decode(resp["data"])))
    assert img.size == (2, 2)
    # The bottom-up RAM rows come out top-down.
    assert img.getpixel((0, 0)) == (0, 0, 255, 255)
    assert img.getpixel((0, 1)) == (255, 0, 0, 255)


def test_screenshot_without_window() -> None:
    w = _world()
    w.base.win = None
    assert _run(w, "screenshot") == {"error": "Screenshot failed: no window"}


def test_scene_tree_and_ui_elements() -> None:
    w = _world()
    tree = _run(w, "get_scene_tree")
    assert tree["truncated"] is False
    assert tree["tree"]["path"] == "/root"
    assert [c["name"] for c in tree["tree"]["children"]] == ["Player", "Enemy", "Hero"]

    w.aspect2d.attachNewNode(PGItem("panel"))
    w.aspect2d.attachNewNode("plain")
    elements = _run(w, "get_ui_elements")["elements"]
    assert len(elements) == 1
    el = elements[0]
    assert (el["name"], el["type"], el["path"], el["visible"]) == ("panel", "PGItem", "/aspect2d/panel", True)


def test_list_commands() -> None:
    w = _world()
    names = [c["name"] for c in _run(w, "list_commands")["commands"]]
    for name in ("screenshot", "eval", "get_property", "tween_property", "wait", "get_scene_tree"):
        assert name in names
    hints = _run(w, "list_commands")["type_hints"]
    assert "vec3" in hints and "color" in hints and "node" in hints


def test_key_press_reads_string_pressed_flags() -> None:
    w = _world()
    _run(w, "key_press", key="a", pressed="false")
    _run(w, "key_press", key="b", pressed="true")
    assert [e for e, _a in w.base.messenger.sent] == ["a-up", "b"]
    resp = _run(w, "key_press", key="c", pressed="maybe")
    assert "invalid bool" in resp["error"]
    assert [e for e, _a in w.base.messenger.sent] == ["a-up", "b"]
