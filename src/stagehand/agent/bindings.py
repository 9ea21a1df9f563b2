from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from PIL import Image
from panda3d.core import ClockObject, LVecBase2f

from stagehand import codec
from stagehand.agent.commands import CommandRegistry, WaitFrames
from stagehand.agent.scene import SceneGraph, child_nodes, node_class, node_name
from stagehand.protocol import error_response, success_response


logger = logging.getLogger(__name__)

# Properties reported by get_node_info for every node, in this order.
NODE_PROPERTIES = ("name", "pos", "hpr", "scale", "quat", "color_scale", "visible")

MAX_WAIT_FRAMES = 600

_BUTTON_EVENTS = {1: "mouse1", 2: "mouse2", 3: "mouse3", 4: "wheel_up", 5: "wheel_down"}
_WHEEL_BUTTONS = (4, 5)

_KEY_ALIASES = {
    "return": "enter",
    "esc": "escape",
    "left": "arrow_left",
    "right": "arrow_right",
    "up": "arrow_up",
    "down": "arrow_down",
    "ctrl": "control",
    "spacebar": "space",
}

_EASE_BLENDS = {0: "easeIn", 1: "easeOut", 2: "easeInOut", 3: "easeInOut"}


class _SignalLink:
    def __init__(self, callback: Callable[..., Any]) -> None:
        self.callback = callback

    def fire(self, *args: Any) -> None:
        self.callback(*args)


@dataclass
class _AgentState:
    paused: bool = False
    current_scene: Any = None
    links: dict[tuple[str, str, str, str], _SignalLink] = field(default_factory=dict)
    tweens: dict[tuple[str, str], Any] = field(default_factory=dict)


def _camel(prop: str) -> str:
    return "".join(p[:1].upper() + p[1:] for p in str(prop).split("_") if p)


def _read_property(graph: SceneGraph, np: Any, prop: str) -> tuple[bool, Any]:
    if prop == "visible":
        return True, not bool(np.isHidden())
    getter = getattr(np, "get" + _camel(prop), None)
    if callable(getter):
        try:
            return True, getter()
        except TypeError:
            pass
    owner = graph.owner(np)
    if owner is not None and hasattr(owner, prop):
        value = getattr(owner, prop)
        if not callable(value):
            return True, value
    return False, None


def _write_property(graph: SceneGraph, np: Any, prop: str, value: Any) -> bool:
    if prop == "visible":
        if value:
            np.show()
        else:
            np.hide()
        return True
    setter = getattr(np, "set" + _camel(prop), None)
    if callable(setter) and callable(getattr(np, "get" + _camel(prop), None)):
        setter(value)
        return True
    owner = graph.owner(np)
    if owner is not None and hasattr(owner, prop) and not callable(getattr(owner, prop)):
        setattr(owner, prop, value)
        return True
    return False


def _find_method(graph: SceneGraph, np: Any, name: str) -> Callable[..., Any] | None:
    if not name or name.startswith("_"):
        return None
    fn = getattr(np, name, None)
    if callable(fn):
        return fn
    owner = graph.owner(np)
    if owner is not None:
        fn = getattr(owner, name, None)
        if callable(fn):
            return fn
    return None


def _owner_members(owner: Any) -> tuple[list[str], list[str]]:
    attrs: list[str] = []
    methods: list[str] = []
    if owner is None:
        return attrs, methods
    for name in sorted(dir(owner)):
        if name.startswith("_"):
            continue
        try:
            value = getattr(owner, name)
        except Exception:
            continue
        if callable(value):
            methods.append(name)
        else:
            attrs.append(name)
    return attrs, methods


def _texture_png(tex: Any) -> tuple[bytes, int, int]:
    w = int(tex.getXSize())
    h = int(tex.getYSize())
    ram = tex.getRamImageAs("RGBA")
    img = Image.frombytes("RGBA", (w, h), bytes(ram.getData()))
    # Panda3D RAM images are stored bottom row first.
    img = img.transpose(Image.Transpose.FLIP_TOP_BOTTOM)
    out = io.BytesIO()
    img.save(out, format="PNG")
    return out.getvalue(), w, h


def _param_str(params: dict, key: str, default: str = "") -> str:
    v = params.get(key)
    if v is None:
        return default
    return str(v)


def build_agent_commands(
    *,
    base: Any,
    graph: SceneGraph,
    interval_factory: Callable[..., Any] | None = None,
) -> CommandRegistry:
    reg = CommandRegistry()
    state = _AgentState()

    def _messenger() -> Any:
        m = getattr(base, "messenger", None)
        if m is None:
            raise RuntimeError("messenger not available")
        return m

    def _clock() -> Any:
        return getattr(base, "clock", None) or ClockObject.getGlobalClock()

    def _node(params: dict, key: str = "node_path") -> tuple[Any, dict | None]:
        path = _param_str(params, key).strip()
        if not path:
            return None, error_response(f"{key} parameter is required")
        np = graph.find(path)
        if np is None:
            return None, error_response(f"Node not found: {path}")
        return np, None

    def _move_pointer(x: float, y: float) -> bool:
        win = getattr(base, "win", None)
        move = getattr(win, "movePointer", None)
        if not callable(move):
            return False
        return bool(move(0, int(x), int(y)))

    # ------------------------------------------------------------------ input

    def _cmd_screenshot(_params: dict):
        # Let the current frame finish rendering first.
        yield WaitFrames(1)
        win = getattr(base, "win", None)
        if win is None:
            return error_response("Screenshot failed: no window")
        tex = win.getScreenshot()
        if tex is None:
            return error_response("Screenshot failed: framebuffer not available")
        png, w, h = _texture_png(tex)
        return success_response(data=base64.b64encode(png).decode("ascii"), width=w, height=h, format="png")

    def _cmd_click(params: dict):
        x = float(params.get("x") or 0.0)
        y = float(params.get("y") or 0.0)
        button = int(params.get("button") or 1)
        event = _BUTTON_EVENTS.get(button)
        if event is None:
            return error_response(f"Unsupported mouse button: {button}")
        _move_pointer(x, y)
        m = _messenger()
        m.send(event)
        if button not in _WHEEL_BUTTONS:
            yield WaitFrames(1)
            m.send(f"{event}-up")
        return success_response(x=x, y=y, button=button)

    def _cmd_key_press(params: dict):
        key = _param_str(params, "key").strip()
        action = _param_str(params, "action").strip()
        if not key and not action:
            return error_response("Must provide either 'key' or 'action'")
        if key:
            event = _KEY_ALIASES.get(key.lower(), key.lower())
        else:
            event = action
        m = _messenger()
        pressed = params.get("pressed")
        if pressed is not None:
            pressed = codec.decode(pressed, "bool")
            m.send(event if pressed else f"{event}-up")
        else:
            m.send(event)
            yield WaitFrames(1)
            m.send(f"{event}-up")
        out: dict[str, Any] = {"event": event, "pressed": pressed}
        if key:
            out["key"] = key
        else:
            out["action"] = action
        return success_response(**out)

    def _cmd_mouse_move(params: dict) -> dict:
        win = getattr(base, "win", None)
        if params.get("x") is not None or params.get("y") is not None:
            x = float(params.get("x") or 0.0)
            y = float(params.get("y") or 0.0)
        else:
            x = y = 0.0
            get_pointer = getattr(win, "getPointer", None)
            if callable(get_pointer):
                p = get_pointer(0)
                x, y = float(p.getX()), float(p.getY())
        x += float(params.get("relative_x") or 0.0)
        y += float(params.get("relative_y") or 0.0)
        moved = _move_pointer(x, y)
        return success_response(x=x, y=y, moved=moved)

    # ---------------------------------------------------------------- runtime

    def _cmd_eval(params: dict) -> dict:
        code = _param_str(params, "code")
        if not code.strip():
            return error_response("code parameter is required")
        ns: dict[str, Any] = {
            "base": base,
            "render": graph.default_root,
            "messenger": getattr(base, "messenger", None),
            "find_node": graph.find,
            "node_path": graph.path_of,
        }
        try:
            compiled = compile(code, "<stagehand-eval>", "eval")
            mode = "eval"
        except SyntaxError:
            try:
                compiled = compile(code, "<stagehand-eval>", "exec")
                mode = "exec"
            except SyntaxError as e:
                return error_response(f"Compile error: {e}")
        try:
            if mode == "eval":
                value = eval(compiled, ns)  # noqa: S307
            else:
                exec(compiled, ns)  # noqa: S102
                value = ns.get("result")
        except Exception as e:
            return error_response(f"Runtime error: {type(e).__name__}: {e}")
        return success_response(result=value, type=type(value).__name__)

    def _cmd_pause(params: dict) -> dict:
        paused = codec.decode(params.get("paused", True), "bool")
        hook = getattr(base, "set_paused", None)
        if callable(hook):
            hook(paused)
        else:
            _clock().setMode(ClockObject.MSlave if paused else ClockObject.MNormal)
        state.paused = paused
        return success_response(paused=paused)

    def _cmd_get_performance(_params: dict) -> dict:
        clock = _clock()
        root = graph.default_root
        node_count = sum(1 for _ in graph.walk(root)) if root is not None else 0
        task_mgr = getattr(base, "taskMgr", None)
        task_count = len(task_mgr.getTasks()) if task_mgr is not None else 0
        return success_response(
            fps=float(clock.getAverageFrameRate()),
            frame_time_ms=float(clock.getDt()) * 1000.0,
            frame_count=int(clock.getFrameCount()),
            real_time=float(clock.getRealTime()),
            node_count=node_count,
            task_count=task_count,
            paused=state.paused,
        )

    def _cmd_wait(params: dict):
        frames = max(1, min(MAX_WAIT_FRAMES, int(params.get("frames") or 1)))
        yield WaitFrames(frames)
        return success_response(frames_waited=frames)

    def _cmd_list_commands(_params: dict) -> dict:
        return success_response(
            commands=[{"name": s.name, "summary": s.summary, "params": list(s.params)} for s in reg.list_specs()],
            type_hints=list(codec.HINT_NAMES),
        )

    # ------------------------------------------------------------- properties

    def _cmd_get_property(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        prop = _param_str(params, "property").strip()
        found, value = _read_property(graph, np, prop)
        if not prop or not found:
            return error_response(f"Property not found: {prop} on node {params.get('node_path')}")
        return success_response(node_path=graph.path_of(np), property=prop, value=value, type=type(value).__name__)

    def _cmd_set_property(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        prop = _param_str(params, "property").strip()
        found, current = _read_property(graph, np, prop)
        if not prop or not found:
            return error_response(f"Property not found: {prop} on node {params.get('node_path')}")
        value = codec.decode(params.get("value"), _param_str(params, "type_hint") or None, like=current, resolve_node=graph.find)
        if not _write_property(graph, np, prop, value):
            return error_response(f"Property is read-only: {prop} on node {params.get('node_path')}")
        _found, now = _read_property(graph, np, prop)
        return success_response(node_path=graph.path_of(np), property=prop, value=now)

    def _cmd_call_method(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        method = _param_str(params, "method").strip()
        fn = _find_method(graph, np, method)
        if fn is None:
            return error_response(f"Method not found: {method} on node {params.get('node_path')}")
        raw_args = params.get("args") or []
        if not isinstance(raw_args, list):
            raw_args = [raw_args]
        args = [codec.decode(a, resolve_node=graph.find) for a in raw_args]
        result = fn(*args)
        return success_response(node_path=graph.path_of(np), method=method, result=result)

    def _cmd_get_node_info(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        path = graph.path_of(np)
        owner = graph.owner(np)
        props: list[dict[str, Any]] = []
        names = list(NODE_PROPERTIES)
        owner_attrs, owner_methods = _owner_members(owner)
        names.extend(a for a in owner_attrs if a not in names)
        for prop in names:
            found, value = _read_property(graph, np, prop)
            if found:
                props.append({"name": prop, "value": value, "type": type(value).__name__})
        signals = sorted({sig for (src, sig, _t, _m) in state.links if src == path})
        return success_response(
            node_path=path,
            name=node_name(np),
            type=node_class(np),
            owner=type(owner).__name__ if owner is not None else None,
            properties=props,
            signals=signals,
            methods=owner_methods,
            children=[graph.summary(c) for c in child_nodes(np)],
        )

    # -------------------------------------------------------------- structure

    def _load(scene_path: str) -> tuple[Any, dict | None]:
        loader = getattr(base, "loader", None)
        if loader is None:
            return None, error_response("Loader not available")
        try:
            model = loader.loadModel(scene_path)
        except Exception as e:
            return None, error_response(f"Failed to load scene: {scene_path}: {e}")
        if model is None:
            return None, error_response(f"Failed to load scene: {scene_path}")
        return model, None

    def _cmd_instantiate_scene(params: dict) -> dict:
        scene_path = _param_str(params, "scene_path").strip()
        if not scene_path:
            return error_response("scene_path parameter is required")
        parent_path = _param_str(params, "parent_path", "/root").strip() or "/root"
        parent = graph.find(parent_path)
        if parent is None:
            return error_response(f"Node not found: {parent_path}")
        model, err = _load(scene_path)
        if err:
            return err
        model.reparentTo(parent)
        return success_response(node_path=graph.path_of(model), name=node_name(model), scene_path=scene_path)

    def _cmd_remove_node(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        path = graph.path_of(np)
        if graph.is_root(np):
            return error_response(f"Cannot remove a root node: {path}")
        if state.current_scene is not None and state.current_scene == np:
            state.current_scene = None
        np.removeNode()
        return success_response(removed=path)

    def _cmd_change_scene(params: dict) -> dict:
        scene_path = _param_str(params, "scene_path").strip()
        if not scene_path:
            return error_response("scene_path parameter is required")
        hook = getattr(base, "change_scene", None)
        if callable(hook):
            hook(scene_path)
            return success_response(scene=scene_path)
        root = graph.default_root
        if root is None:
            return error_response("No scene root")
        model, err = _load(scene_path)
        if err:
            return err
        if state.current_scene is not None and not state.current_scene.isEmpty():
            state.current_scene.removeNode()
        model.reparentTo(root)
        state.current_scene = model
        return success_response(scene=scene_path, node_path=graph.path_of(model))

    def _cmd_reparent_node(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        new_parent, err = _node(params, "new_parent_path")
        if err:
            return err
        if graph.is_root(np):
            return error_response(f"Cannot reparent a root node: {graph.path_of(np)}")
        if np == new_parent or np.isAncestorOf(new_parent):
            return error_response("Cannot reparent a node under itself")
        keep = params.get("keep_global_transform")
        if keep is None or codec.decode(keep, "bool"):
            np.wrtReparentTo(new_parent)
        else:
            np.reparentTo(new_parent)
        return success_response(node_path=graph.path_of(np))

    # ---------------------------------------------------------------- signals

    def _link_key(params: dict) -> tuple[str, str, str, str]:
        return (
            _param_str(params, "node_path").strip(),
            _param_str(params, "signal_name").strip(),
            _param_str(params, "target_path").strip(),
            _param_str(params, "method").strip(),
        )

    def _cmd_connect_signal(params: dict) -> dict:
        src, err = _node(params)
        if err:
            return err
        target, err = _node(params, "target_path")
        if err:
            return err
        _src, signal, target_path, method = _link_key(params)
        if not signal:
            return error_response("signal_name parameter is required")
        fn = _find_method(graph, target, method)
        if fn is None:
            return error_response(f"Method not found: {method} on node {target_path}")
        key = (str(graph.path_of(src)), signal, str(graph.path_of(target)), method)
        if key in state.links:
            return error_response(f"Signal already connected: {signal} -> {target_path}.{method}")
        link = _SignalLink(fn)
        _messenger().accept(signal, link, link.fire)
        state.links[key] = link
        return success_response(signal=signal, node_path=key[0], target_path=key[2], method=method)

    def _cmd_disconnect_signal(params: dict) -> dict:
        src, err = _node(params)
        if err:
            return err
        target, err = _node(params, "target_path")
        if err:
            return err
        _src, signal, target_path, method = _link_key(params)
        key = (str(graph.path_of(src)), signal, str(graph.path_of(target)), method)
        link = state.links.pop(key, None)
        if link is None:
            return error_response(f"Signal not connected: {signal} -> {target_path}.{method}")
        _messenger().ignore(signal, link)
        return success_response(signal=signal, node_path=key[0], target_path=key[2], method=method)

    def _cmd_emit_signal(params: dict) -> dict:
        src, err = _node(params)
        if err:
            return err
        signal = _param_str(params, "signal_name").strip()
        if not signal:
            return error_response("signal_name parameter is required")
        raw_args = params.get("args") or []
        if not isinstance(raw_args, list):
            raw_args = [raw_args]
        args = [codec.decode(a, resolve_node=graph.find) for a in raw_args]
        _messenger().send(signal, args)
        return success_response(signal=signal, node_path=graph.path_of(src), args=len(args))

    # ------------------------------------------------------------- animation

    def _cmd_play_animation(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        owner = graph.owner(np)
        animator = None
        for cand in (np, owner, getattr(owner, "actor", None)):
            if cand is not None and callable(getattr(cand, "getAnimNames", None)):
                animator = cand
                break
        if animator is None:
            return error_response(f"No animations on node {params.get('node_path')}")
        names = sorted(str(n) for n in animator.getAnimNames())
        action = _param_str(params, "action", "play").strip().lower() or "play"
        anim = _param_str(params, "animation").strip()
        if action == "list":
            return success_response(action=action, animations=names)
        if anim and anim not in names:
            return error_response(f"Animation not found: {anim}", animations=names)
        if action == "stop":
            animator.stop(anim or None)
        elif action in ("play", "loop"):
            if not anim:
                if not names:
                    return error_response("No animations available", animations=names)
                anim = names[0]
            getattr(animator, action)(anim)
        else:
            return error_response(f"Unknown animation action: {action}", animations=names)
        return success_response(action=action, animation=anim)

    def _cmd_tween_property(params: dict) -> dict:
        np, err = _node(params)
        if err:
            return err
        prop = _param_str(params, "property").strip()
        found, current = _read_property(graph, np, prop)
        if not prop or not found:
            return error_response(f"Property not found: {prop} on node {params.get('node_path')}")
        if isinstance(current, (bool, str)) or current is None:
            return error_response(f"Property cannot be tweened: {prop} ({type(current).__name__})")
        target = codec.decode(params.get("final_value"), _param_str(params, "type_hint") or None, like=current)
        duration = max(0.0, float(params.get("duration") or 1.0))
        trans = int(params.get("trans_type") or 0)
        ease = params.get("ease_type")
        blend = "noBlend" if trans == 0 else _EASE_BLENDS.get(int(2 if ease is None else ease), "easeInOut")

        path = str(graph.path_of(np))
        integral = isinstance(current, int)

        def _apply(v: Any) -> None:
            _write_property(graph, np, prop, int(round(v)) if integral else v)

        factory = interval_factory
        if factory is None:
            from direct.interval.LerpInterval import LerpFunctionInterval

            factory = LerpFunctionInterval
        prev = state.tweens.pop((path, prop), None)
        if prev is not None:
            prev.finish()
        ival = factory(
            _apply,
            duration=duration,
            fromData=current,
            toData=target,
            blendType=blend,
            name=f"stagehand-tween-{path}-{prop}",
        )
        ival.start()
        state.tweens[(path, prop)] = ival
        return success_response(node_path=path, property=prop, duration=duration, blend=blend)

    # ----------------------------------------------------------------- query

    def _cmd_get_nodes_in_group(params: dict) -> dict:
        group = _param_str(params, "group").strip()
        if not group:
            return error_response("group parameter is required")
        root = graph.default_root
        nodes = []
        if root is not None:
            for np in graph.walk(root):
                try:
                    if np.hasTag(group):
                        nodes.append(graph.summary(np))
                except Exception:
                    continue
        return success_response(group=group, nodes=nodes)

    def _cmd_find_nodes_by_class(params: dict) -> dict:
        class_name = _param_str(params, "class_name").strip()
        if not class_name:
            return error_response("class_name parameter is required")
        root_path = _param_str(params, "root_path", "/root").strip() or "/root"
        root = graph.find(root_path)
        if root is None:
            return error_response(f"Node not found: {root_path}")
        nodes = [graph.summary(np) for np in graph.walk(root) if node_class(np) == class_name]
        return success_response(class_name=class_name, nodes=nodes)

    def _cmd_get_scene_tree(_params: dict) -> dict:
        root = graph.default_root
        if root is None:
            return error_response("No scene root")
        tree, truncated = graph.tree(root)
        return success_response(tree=tree, truncated=truncated)

    def _cmd_get_ui_elements(_params: dict) -> dict:
        root2d = graph.roots.get("aspect2d")
        elements: list[dict[str, Any]] = []
        if root2d is None:
            return success_response(elements=elements)
        for np in graph.walk(root2d):
            typ = node_class(np)
            if not (typ.startswith("PG") or typ == "TextNode"):
                continue
            row = graph.summary(np)
            row["visible"] = not bool(np.isHidden())
            get_text = getattr(np.node(), "getText", None)
            row["text"] = str(get_text()) if callable(get_text) else None
            rect = None
            try:
                bounds = np.getTightBounds(root2d)
            except Exception:
                bounds = None
            if bounds:
                mn, mx = bounds
                # aspect2d is the XZ plane.
                rect = codec.Rect2(position=LVecBase2f(mn[0], mn[2]), size=LVecBase2f(mx[0] - mn[0], mx[2] - mn[2]))
            row["rect"] = rect
            elements.append(row)
        return success_response(elements=elements)

    reg.register(name="screenshot", handler=_cmd_screenshot, summary="Capture the main window as PNG.")
    reg.register(name="click", handler=_cmd_click, summary="Click a mouse button at window coordinates.", params=("x", "y", "button"))
    reg.register(name="key_press", handler=_cmd_key_press, summary="Press and release a key or event.", params=("key", "action", "pressed"))
    reg.register(name="mouse_move", handler=_cmd_mouse_move, summary="Move the pointer.", params=("x", "y", "relative_x", "relative_y"))
    reg.register(name="eval", handler=_cmd_eval, summary="Evaluate Python in the game process.", params=("code",))
    reg.register(name="get_property", handler=_cmd_get_property, summary="Read a node property.", params=("node_path", "property"))
    reg.register(
        name="set_property",
        handler=_cmd_set_property,
        summary="Write a node property.",
        params=("node_path", "property", "value", "type_hint"),
    )
    reg.register(name="call_method", handler=_cmd_call_method, summary="Call a node method.", params=("node_path", "method", "args"))
    reg.register(name="get_node_info", handler=_cmd_get_node_info, summary="Describe a node.", params=("node_path",))
    reg.register(
        name="instantiate_scene",
        handler=_cmd_instantiate_scene,
        summary="Load a model under a parent node.",
        params=("scene_path", "parent_path"),
    )
    reg.register(name="remove_node", handler=_cmd_remove_node, summary="Remove a node.", params=("node_path",))
    reg.register(name="change_scene", handler=_cmd_change_scene, summary="Replace the current scene.", params=("scene_path",))
    reg.register(
        name="reparent_node",
        handler=_cmd_reparent_node,
        summary="Move a node under a new parent.",
        params=("node_path", "new_parent_path", "keep_global_transform"),
    )
    reg.register(
        name="connect_signal",
        handler=_cmd_connect_signal,
        summary="Bind a messenger event to a node method.",
        params=("node_path", "signal_name", "target_path", "method"),
    )
    reg.register(
        name="disconnect_signal",
        handler=_cmd_disconnect_signal,
        summary="Undo connect_signal.",
        params=("node_path", "signal_name", "target_path", "method"),
    )
    reg.register(name="emit_signal", handler=_cmd_emit_signal, summary="Send a messenger event.", params=("node_path", "signal_name", "args"))
    reg.register(
        name="play_animation",
        handler=_cmd_play_animation,
        summary="Play, loop, stop or list actor animations.",
        params=("node_path", "action", "animation"),
    )
    reg.register(
        name="tween_property",
        handler=_cmd_tween_property,
        summary="Interpolate a property over time.",
        params=("node_path", "property", "final_value", "duration", "trans_type", "ease_type"),
    )
    reg.register(name="get_nodes_in_group", handler=_cmd_get_nodes_in_group, summary="Nodes tagged with a group.", params=("group",))
    reg.register(
        name="find_nodes_by_class",
        handler=_cmd_find_nodes_by_class,
        summary="Nodes of a given node class.",
        params=("class_name", "root_path"),
    )
    reg.register(name="pause", handler=_cmd_pause, summary="Pause or resume the game clock.", params=("paused",))
    reg.register(name="get_performance", handler=_cmd_get_performance, summary="Frame and scene metrics.")
    reg.register(name="wait", handler=_cmd_wait, summary="Wait a number of frames.", params=("frames",))
    reg.register(name="get_ui_elements", handler=_cmd_get_ui_elements, summary="GUI nodes under aspect2d.")
    reg.register(name="get_scene_tree", handler=_cmd_get_scene_tree, summary="Recursive dump of /root.")
    reg.register(name="list_commands", handler=_cmd_list_commands, summary="List agent commands.")
    return reg
