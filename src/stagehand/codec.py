from __future__ import annotations

"""
Value codec between Panda3D runtime values and JSON.

Encoding (native -> JSON):
- scalars pass through
- vectors become {"x","y"[,"z"]}, 4-vectors are colors {"r","g","b","a"},
  quaternions are {"x","y","z","w"} (i, j, k, r)
- 4x4 matrices and TransformStates become {"basis": {"x","y","z"}, "origin"},
  3x3 matrices become a bare basis {"x","y","z"} (rows)
- Rect2 / Box3 / Transform2D (defined here, Panda3D has no value types for them)
  and BoundingBox become nested objects
- lists, tuples, PTA arrays and bytes become JSON arrays
- NodePaths, resources and other live objects become reference descriptors
  {"type": "node"|"resource"|"object", "class": ..., "path"|"id": ...}
- anything else is rendered with str(). That fallback is lossy: the result
  cannot be decoded back into the original value.

Decoding (JSON -> native), first rule that applies:
1. explicit type hint (canonical names in HINT_NAMES), missing fields default to identity/zero
   (alpha defaults to 1.0)
2. the type of the value currently stored at the destination
3. structural auto-detection, in this fixed order:
   transform -> color -> quaternion -> rect/box -> vec3 -> vec2 -> plain mapping
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Callable

from panda3d.core import (
    BoundingBox,
    LMatrix3d,
    LMatrix3f,
    LMatrix4d,
    LMatrix4f,
    LQuaterniond,
    LQuaternionf,
    LVecBase2d,
    LVecBase2f,
    LVecBase2i,
    LVecBase3d,
    LVecBase3f,
    LVecBase3i,
    LVecBase4d,
    LVecBase4f,
    LVecBase4i,
    NodePath,
    TransformState,
    TypedObject,
)

from stagehand.errors import CodecError


Describe = Callable[[Any], "dict | None"]
ResolveNode = Callable[[str], Any]

_VEC2_TYPES = (LVecBase2f, LVecBase2d, LVecBase2i)
_VEC3_TYPES = (LVecBase3f, LVecBase3d, LVecBase3i)
_VEC4_TYPES = (LVecBase4f, LVecBase4d, LVecBase4i)
_QUAT_TYPES = (LQuaternionf, LQuaterniond)
_MAT3_TYPES = (LMatrix3f, LMatrix3d)
_MAT4_TYPES = (LMatrix4f, LMatrix4d)


@dataclass(frozen=True)
class Rect2:
    position: LVecBase2f
    size: LVecBase2f


@dataclass(frozen=True)
class Box3:
    position: LVecBase3f
    size: LVecBase3f


@dataclass(frozen=True)
class Transform2D:
    x: LVecBase2f
    y: LVecBase2f
    origin: LVecBase2f


class _Unset:
    pass


_UNSET = _Unset()


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _json_float(v: Any) -> float | None:
    # NaN and the infinities have no JSON spelling.
    f = float(v)
    return f if math.isfinite(f) else None


def _scalar(v: Any, *, integral: bool) -> int | float | None:
    return int(v) if integral else _json_float(v)


def _is_int_vec(cls: type) -> bool:
    return cls.__name__.endswith("i")


# --------------------------------------------------------------------------
# Encoding
# --------------------------------------------------------------------------


def _encode_vec(v: Any, names: str) -> dict:
    integral = _is_int_vec(type(v))
    return {n: _scalar(v[i], integral=integral) for i, n in enumerate(names)}


def _encode_transform(m: Any) -> dict:
    # Panda3D matrices are row-major with the translation in row 3.
    return {
        "basis": {n: _encode_vec(m.getRow3(i), "xyz") for i, n in enumerate("xyz")},
        "origin": _encode_vec(m.getRow3(3), "xyz"),
    }


def _node_class(np: NodePath) -> str:
    try:
        return str(type(np.node()).__name__)
    except Exception:
        return "NodePath"


def _is_packed_array(value: Any) -> bool:
    return type(value).__name__.startswith(("PTA_", "CPTA_"))


def _is_reference(value: Any) -> bool:
    if isinstance(value, TypedObject):
        return True
    if isinstance(value, type) or callable(value):
        return False
    return hasattr(value, "__dict__")


def default_describe(value: Any) -> dict | None:
    """Reference descriptor for objects the caller could not place in the scene."""

    if isinstance(value, NodePath):
        if value.isEmpty():
            return None
        return {"type": "node", "class": _node_class(value), "name": str(value.getName()), "id": int(value.getKey())}
    get_fullpath = getattr(value, "getFullpath", None)
    if callable(get_fullpath):
        path = str(get_fullpath())
        if path:
            return {"type": "resource", "class": type(value).__name__, "path": path}
    return {"type": "object", "class": type(value).__name__, "id": id(value)}


def _reference(value: Any, describe: Describe | None) -> Any:
    if describe is not None:
        desc = describe(value)
        if desc is not None:
            return desc
    return default_describe(value)


def encode(value: Any, *, describe: Describe | None = None) -> Any:
    """Convert a runtime value into something json.dumps accepts."""

    if isinstance(value, float):
        return _json_float(value)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, NodePath):
        return _reference(value, describe)
    if isinstance(value, _QUAT_TYPES):
        return {"x": _json_float(value.getI()), "y": _json_float(value.getJ()), "z": _json_float(value.getK()), "w": _json_float(value.getR())}
    if isinstance(value, _VEC2_TYPES):
        return _encode_vec(value, "xy")
    if isinstance(value, _VEC3_TYPES):
        return _encode_vec(value, "xyz")
    if isinstance(value, _VEC4_TYPES):
        return _encode_vec(value, "rgba")
    if isinstance(value, _MAT4_TYPES):
        return _encode_transform(value)
    if isinstance(value, _MAT3_TYPES):
        return {n: _encode_vec(value.getRow(i), "xyz") for i, n in enumerate("xyz")}
    if isinstance(value, TransformState):
        return _encode_transform(value.getMat())
    if isinstance(value, BoundingBox):
        mn = LVecBase3f(value.getMin())
        mx = LVecBase3f(value.getMax())
        return encode(Box3(position=mn, size=mx - mn))
    if isinstance(value, (Rect2, Box3)):
        return {"position": encode(value.position), "size": encode(value.size)}
    if isinstance(value, Transform2D):
        return {"x": encode(value.x), "y": encode(value.y), "origin": encode(value.origin)}
    if isinstance(value, dict):
        return {str(k): encode(v, describe=describe) for k, v in value.items()}
    if isinstance(value, (bytes, bytearray, memoryview)):
        return list(bytes(value))
    if isinstance(value, (list, tuple, set, frozenset)):
        return [encode(v, describe=describe) for v in value]
    if _is_packed_array(value):
        return [encode(value[i], describe=describe) for i in range(len(value))]
    if _is_reference(value):
        return _reference(value, describe)
    return str(value)


# --------------------------------------------------------------------------
# Decoding
# --------------------------------------------------------------------------


def _components(raw: Any, names: tuple[str, ...], defaults: tuple[float, ...], kind: str) -> list[float]:
    if isinstance(raw, dict):
        out: list[float] = []
        for n, d in zip(names, defaults):
            v = raw.get(n)
            out.append(float(d) if v is None else float(v))
        return out
    if isinstance(raw, (list, tuple)):
        if len(raw) > len(names):
            raise CodecError(f"Cannot decode {len(raw)} components as {kind}")
        vals = list(raw) + list(defaults[len(raw):])
        return [float(v) for v in vals]
    raise CodecError(f"Cannot decode {type(raw).__name__} as {kind}")


def _make_vec(cls: type, values: list[float]) -> Any:
    if _is_int_vec(cls):
        return cls(*[int(round(v)) for v in values])
    return cls(*values)


def _to_bool(raw: Any) -> bool:
    if isinstance(raw, str):
        v = raw.strip().lower()
        if v in ("1", "true", "on", "yes", "y"):
            return True
        if v in ("0", "false", "off", "no", "n", ""):
            return False
        raise CodecError(f"invalid bool: {raw!r}")
    return bool(raw)


def _to_int(raw: Any) -> int:
    if isinstance(raw, str):
        return int(raw.strip())
    return int(raw)


def _to_float(raw: Any) -> float:
    if isinstance(raw, str):
        return float(raw.strip())
    return float(raw)


def _to_vec2(raw: Any, cls: type = LVecBase2f) -> Any:
    return _make_vec(cls, _components(raw, ("x", "y"), (0.0, 0.0), "vec2"))


def _to_vec3(raw: Any, cls: type = LVecBase3f) -> Any:
    return _make_vec(cls, _components(raw, ("x", "y", "z"), (0.0, 0.0, 0.0), "vec3"))


def _to_color(raw: Any, cls: type = LVecBase4f) -> Any:
    names: tuple[str, ...] = ("r", "g", "b", "a")
    if isinstance(raw, dict) and "r" not in raw and "x" in raw:
        names = ("x", "y", "z", "w")
    return _make_vec(cls, _components(raw, names, (0.0, 0.0, 0.0, 1.0), "color"))


def _to_quat(raw: Any, cls: type = LQuaternionf) -> Any:
    x, y, z, w = _components(raw, ("x", "y", "z", "w"), (0.0, 0.0, 0.0, 1.0), "quat")
    return cls(w, x, y, z)


def _basis_rows(raw: Any) -> list[list[float]]:
    if raw is None:
        raw = {}
    if not isinstance(raw, (dict, list, tuple)):
        raise CodecError(f"Cannot decode {type(raw).__name__} as basis")
    identity = ((1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0))
    rows: list[list[float]] = []
    for i, n in enumerate("xyz"):
        if isinstance(raw, dict):
            row = raw.get(n)
        else:
            row = raw[i] if i < len(raw) else None
        if row is None:
            rows.append(list(identity[i]))
        else:
            rows.append(_components(row, ("x", "y", "z"), (0.0, 0.0, 0.0), "basis row"))
    return rows


def _to_basis(raw: Any, cls: type = LMatrix3f) -> Any:
    rows = _basis_rows(raw)
    return cls(*rows[0], *rows[1], *rows[2])


def _to_transform(raw: Any, cls: type = LMatrix4f) -> Any:
    if not isinstance(raw, dict):
        raise CodecError(f"Cannot decode {type(raw).__name__} as transform")
    rows = _basis_rows(raw.get("basis"))
    origin = _components(raw.get("origin") or {}, ("x", "y", "z"), (0.0, 0.0, 0.0), "origin")
    return cls(
        rows[0][0], rows[0][1], rows[0][2], 0.0,
        rows[1][0], rows[1][1], rows[1][2], 0.0,
        rows[2][0], rows[2][1], rows[2][2], 0.0,
        origin[0], origin[1], origin[2], 1.0,
    )


def _to_transform2d(raw: Any) -> Transform2D:
    if not isinstance(raw, dict):
        raise CodecError(f"Cannot decode {type(raw).__name__} as transform2d")
    return Transform2D(
        x=_to_vec2(raw.get("x") or (1.0, 0.0)),
        y=_to_vec2(raw.get("y") or (0.0, 1.0)),
        origin=_to_vec2(raw.get("origin") or (0.0, 0.0)),
    )


def _to_rect(raw: Any) -> Rect2:
    if isinstance(raw, (list, tuple)) and len(raw) == 4:
        return Rect2(position=_to_vec2(raw[:2]), size=_to_vec2(raw[2:]))
    if not isinstance(raw, dict):
        raise CodecError(f"Cannot decode {type(raw).__name__} as rect")
    return Rect2(position=_to_vec2(raw.get("position") or {}), size=_to_vec2(raw.get("size") or {}))


def _to_box(raw: Any) -> Box3:
    if isinstance(raw, (list, tuple)) and len(raw) == 6:
        return Box3(position=_to_vec3(raw[:3]), size=_to_vec3(raw[3:]))
    if not isinstance(raw, dict):
        raise CodecError(f"Cannot decode {type(raw).__name__} as box")
    return Box3(position=_to_vec3(raw.get("position") or {}), size=_to_vec3(raw.get("size") or {}))


def _to_list(raw: Any, elem: Callable[[Any], Any]) -> list:
    if not isinstance(raw, (list, tuple)):
        raise CodecError(f"Cannot decode {type(raw).__name__} as array")
    return [elem(v) for v in raw]


def _to_bytes(raw: Any) -> bytes:
    if isinstance(raw, str):
        return raw.encode("utf-8")
    return bytes(_to_list(raw, _to_int))


def _to_dict(raw: Any) -> dict:
    if not isinstance(raw, dict):
        raise CodecError(f"Cannot decode {type(raw).__name__} as dict")
    return dict(raw)


# Canonical hint -> decoder (node is handled separately, it needs a resolver).
_HINT_DECODERS: dict[str, Callable[[Any], Any]] = {
    "bool": _to_bool,
    "int": _to_int,
    "float": _to_float,
    "string": lambda raw: "" if raw is None else str(raw),
    "vec2": _to_vec2,
    "vec3": _to_vec3,
    "color": _to_color,
    "quat": _to_quat,
    "rect": _to_rect,
    "box": _to_box,
    "basis": _to_basis,
    "transform": _to_transform,
    "transform2d": _to_transform2d,
    "dict": _to_dict,
    "array": lambda raw: _to_list(raw, auto_decode),
    "vec2_array": lambda raw: _to_list(raw, _to_vec2),
    "vec3_array": lambda raw: _to_list(raw, _to_vec3),
    "color_array": lambda raw: _to_list(raw, _to_color),
    "float_array": lambda raw: _to_list(raw, _to_float),
    "int_array": lambda raw: _to_list(raw, _to_int),
    "string_array": lambda raw: _to_list(raw, str),
    "byte_array": _to_bytes,
}

# Hints naming a concrete Panda3D class decode to exactly that class. The
# generic names ("vec3", "color", "transform", ...) decode to the float32 one.
_HINT_CLASSES: dict[str, type] = {
    "vector2i": LVecBase2i,
    "lvecbase2f": LVecBase2f,
    "lvecbase2d": LVecBase2d,
    "lvecbase2i": LVecBase2i,
    "vector3i": LVecBase3i,
    "lvecbase3f": LVecBase3f,
    "lvecbase3d": LVecBase3d,
    "lvecbase3i": LVecBase3i,
    "vector4i": LVecBase4i,
    "lvecbase4f": LVecBase4f,
    "lvecbase4d": LVecBase4d,
    "lvecbase4i": LVecBase4i,
    "lcolord": LVecBase4d,
    "lquaternionf": LQuaternionf,
    "lquaterniond": LQuaterniond,
    "lmatrix3f": LMatrix3f,
    "lmatrix3d": LMatrix3d,
    "lmatrix4f": LMatrix4f,
    "lmatrix4d": LMatrix4d,
}


def _class_hints(types: tuple[type, ...]) -> tuple[str, ...]:
    return tuple(k for k, cls in _HINT_CLASSES.items() if cls in types)


_HINT_ALIASES: dict[str, tuple[str, ...]] = {
    "bool": ("bool", "boolean"),
    "int": ("int", "integer", "long"),
    "float": ("float", "real", "double"),
    "string": ("string", "str", "stringname"),
    "vec2": ("vec2", "vector2", "point2", "lvecbase2", "lpoint2f", "lvector2f") + _class_hints(_VEC2_TYPES),
    "vec3": ("vec3", "vector3", "point3", "lvecbase3", "lpoint3f", "lvector3f") + _class_hints(_VEC3_TYPES),
    "color": ("color", "colour", "lcolor", "lcolorf", "vec4", "vector4", "lvecbase4") + _class_hints(_VEC4_TYPES),
    "quat": ("quat", "quaternion", "lquaternion") + _class_hints(_QUAT_TYPES),
    "rect": ("rect", "rect2", "rect2i"),
    "box": ("box", "box3", "aabb", "boundingbox"),
    "basis": ("basis", "mat3", "lmatrix3") + _class_hints(_MAT3_TYPES),
    "transform": ("transform", "transform3d", "mat4", "lmatrix4", "transformstate") + _class_hints(_MAT4_TYPES),
    "transform2d": ("transform2d",),
    "node": ("node", "nodepath", "object"),
    "dict": ("dict", "dictionary"),
    "array": ("array", "list"),
    "vec2_array": ("vec2array", "packedvector2array"),
    "vec3_array": ("vec3array", "packedvector3array"),
    "color_array": ("colorarray", "packedcolorarray"),
    "float_array": ("floatarray", "packedfloat32array", "packedfloat64array", "ptafloat"),
    "int_array": ("intarray", "packedint32array", "packedint64array", "ptaint"),
    "string_array": ("stringarray", "packedstringarray"),
    "byte_array": ("bytearray", "packedbytearray", "bytes"),
}

_HINT_LOOKUP: dict[str, str] = {alias: canon for canon, aliases in _HINT_ALIASES.items() for alias in aliases}

HINT_NAMES: tuple[str, ...] = tuple(_HINT_ALIASES.keys())


def _hint_key(hint: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(hint or "").lower())


def normalize_hint(hint: Any) -> str | None:
    key = _hint_key(hint)
    if not key:
        return None
    canon = _HINT_LOOKUP.get(key)
    if canon is None:
        raise CodecError(f"Unknown type hint: {hint}")
    return canon


def _decode_node(raw: Any, resolve_node: ResolveNode | None) -> Any:
    path = raw.get("path") if isinstance(raw, dict) else raw
    if not isinstance(path, str) or not path:
        raise CodecError("node reference needs a path")
    if resolve_node is None:
        return path
    np = resolve_node(path)
    if np is None:
        raise CodecError(f"Node not found: {path}")
    return np


def decode_hint(raw: Any, hint: str, *, resolve_node: ResolveNode | None = None) -> Any:
    canon = normalize_hint(hint)
    if canon is None:
        return auto_decode(raw)
    if canon == "node":
        return _decode_node(raw, resolve_node)
    key = _hint_key(hint)
    cls = _HINT_CLASSES.get(key)
    try:
        if key == "transformstate":
            return TransformState.makeMat(_to_transform(raw))
        if cls is not None:
            return _HINT_DECODERS[canon](raw, cls)
        return _HINT_DECODERS[canon](raw)
    except CodecError:
        raise
    except (TypeError, ValueError, IndexError) as e:
        raise CodecError(f"Cannot decode {raw!r} as {canon}: {e}") from e


def decode_like(current: Any, raw: Any, *, resolve_node: ResolveNode | None = None) -> Any:
    """Decode `raw` into the type of the value currently held at the destination."""

    try:
        if isinstance(current, bool):
            return _to_bool(raw)
        if isinstance(current, int):
            return _to_int(raw)
        if isinstance(current, float):
            return _to_float(raw)
        if isinstance(current, str):
            return "" if raw is None else str(raw)
        if isinstance(current, NodePath):
            return _decode_node(raw, resolve_node)
        if isinstance(current, _QUAT_TYPES):
            return _to_quat(raw, type(current))
        if isinstance(current, _VEC2_TYPES):
            return _to_vec2(raw, type(current))
        if isinstance(current, _VEC3_TYPES):
            return _to_vec3(raw, type(current))
        if isinstance(current, _VEC4_TYPES):
            return _to_color(raw, type(current))
        if isinstance(current, _MAT4_TYPES):
            return _to_transform(raw, type(current))
        if isinstance(current, _MAT3_TYPES):
            return _to_basis(raw, type(current))
        if isinstance(current, TransformState):
            return TransformState.makeMat(_to_transform(raw))
        if isinstance(current, Rect2):
            return _to_rect(raw)
        if isinstance(current, Box3):
            return _to_box(raw)
        if isinstance(current, Transform2D):
            return _to_transform2d(raw)
        if isinstance(current, (list, tuple)) and isinstance(raw, list):
            if current:
                return [decode_like(current[0], v, resolve_node=resolve_node) for v in raw]
            return [auto_decode(v) for v in raw]
    except CodecError:
        raise
    except (TypeError, ValueError, IndexError) as e:
        raise CodecError(f"Cannot decode {raw!r} as {type(current).__name__}: {e}") from e
    return auto_decode(raw)


# --------------------------------------------------------------------------
# Auto-detection
# --------------------------------------------------------------------------


def _has_numbers(d: dict, *names: str) -> bool:
    return all(_is_number(d.get(n)) for n in names)


def _has_z(v: Any) -> bool:
    if isinstance(v, dict):
        return "z" in v
    return isinstance(v, (list, tuple)) and len(v) >= 3


def _looks_like_transform(d: dict) -> bool:
    if "origin" not in d:
        return False
    if "basis" in d:
        return True
    return isinstance(d.get("x"), (dict, list)) and isinstance(d.get("y"), (dict, list))


def _looks_like_rect(d: dict) -> bool:
    return "position" in d and "size" in d


def _build_transform(d: dict) -> Any:
    if "basis" in d:
        return _to_transform(d)
    return _to_transform2d(d)


def _build_rect_or_box(d: dict) -> Any:
    if _has_z(d.get("position")) or _has_z(d.get("size")):
        return _to_box(d)
    return _to_rect(d)


@dataclass(frozen=True)
class _Shape:
    name: str
    matches: Callable[[dict], bool]
    build: Callable[[dict], Any]


# Order is part of the wire contract: the first matching shape wins.
_SHAPES: tuple[_Shape, ...] = (
    _Shape("transform", _looks_like_transform, _build_transform),
    _Shape("color", lambda d: _has_numbers(d, "r", "g", "b"), _to_color),
    _Shape("quat", lambda d: _has_numbers(d, "x", "y", "z", "w"), _to_quat),
    _Shape("rect", _looks_like_rect, _build_rect_or_box),
    _Shape("vec3", lambda d: _has_numbers(d, "x", "y", "z"), _to_vec3),
    _Shape("vec2", lambda d: set(d.keys()) == {"x", "y"} and _has_numbers(d, "x", "y"), _to_vec2),
)


def detect_shape(raw: Any) -> str | None:
    """Name of the shape auto-detection would pick for `raw`, or None for pass-through."""

    if not isinstance(raw, dict):
        return None
    for shape in _SHAPES:
        if shape.matches(raw):
            if shape.name == "transform" and "basis" not in raw:
                return "transform2d"
            if shape.name == "rect" and (_has_z(raw.get("position")) or _has_z(raw.get("size"))):
                return "box"
            return shape.name
    return None


def auto_decode(raw: Any) -> Any:
    if isinstance(raw, list):
        return [auto_decode(v) for v in raw]
    if not isinstance(raw, dict):
        return raw
    for shape in _SHAPES:
        if shape.matches(raw):
            try:
                return shape.build(raw)
            except (TypeError, ValueError, IndexError) as e:
                raise CodecError(f"Cannot decode {raw!r} as {shape.name}: {e}") from e
    return raw


def decode(
    raw: Any,
    hint: str | None = None,
    *,
    like: Any = _UNSET,
    resolve_node: ResolveNode | None = None,
) -> Any:
    """
    Convert a JSON value into a runtime value.

    `hint` wins when given; otherwise `like` (the value currently stored at the
    destination) selects the type; otherwise the shape is auto-detected.
    """

    if hint is not None and str(hint).strip():
        return decode_hint(raw, hint, resolve_node=resolve_node)
    if not isinstance(like, _Unset) and like is not None:
        return decode_like(like, raw, resolve_node=resolve_node)
    return auto_decode(raw)
