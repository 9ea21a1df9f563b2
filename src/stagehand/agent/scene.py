from __future__ import annotations

from typing import Any, Iterator

from stagehand import codec


def _is_empty(np: Any) -> bool:
    try:
        return bool(np.isEmpty())
    except AttributeError:
        return np is None


def node_name(np: Any) -> str:
    return "" if _is_empty(np) else str(np.getName())


def node_class(np: Any) -> str:
    """Class of the underlying PandaNode ("ModelRoot", "PGButton", ...); "" for an empty path."""

    if _is_empty(np):
        return ""
    return type(np.node()).__name__


def child_nodes(np: Any) -> list[Any]:
    if _is_empty(np):
        return []
    coll = np.getChildren()
    return [coll.getPath(i) for i in range(coll.getNumPaths())]


class SceneGraph:
    """
    Path addressing over the scene graph.

    Paths look like "/root/Level/Player": the first segment names a registered
    root, the rest are child node names (first match wins). Paths without a
    leading "/" are relative to "/root".
    """

    def __init__(self, *, roots: dict[str, Any], owner_tag: str = "owner", max_nodes: int = 2500) -> None:
        self.roots: dict[str, Any] = {str(k): v for k, v in roots.items() if v is not None and not _is_empty(v)}
        self.owner_tag = str(owner_tag)
        self.max_nodes = max(1, int(max_nodes))

    @property
    def default_root(self) -> Any | None:
        if "root" in self.roots:
            return self.roots["root"]
        for v in self.roots.values():
            return v
        return None

    def is_root(self, np: Any) -> bool:
        return any(np is r or np == r for r in self.roots.values())

    def find(self, path: str) -> Any | None:
        s = str(path or "").strip()
        if not s:
            return None
        if s.startswith("/"):
            parts = [p for p in s.split("/") if p]
            if not parts:
                return None
            cur = self.roots.get(parts[0])
            parts = parts[1:]
        else:
            cur = self.default_root
            parts = [p for p in s.split("/") if p]
        if cur is None:
            return None
        for part in parts:
            nxt = None
            for child in child_nodes(cur):
                if node_name(child) == part:
                    nxt = child
                    break
            if nxt is None:
                return None
            cur = nxt
        return cur

    def path_of(self, np: Any) -> str | None:
        if np is None or _is_empty(np):
            return None
        names: list[str] = []
        cur = np
        for _ in range(4096):
            for alias, root in self.roots.items():
                if cur is root or cur == root:
                    return "/" + "/".join([alias] + list(reversed(names)))
            try:
                parent = cur.getParent()
            except Exception:
                return None
            if parent is None or _is_empty(parent):
                return None
            names.append(node_name(cur))
            cur = parent
        return None

    def owner(self, np: Any) -> Any | None:
        try:
            if np.hasPythonTag(self.owner_tag):
                return np.getPythonTag(self.owner_tag)
        except Exception:
            return None
        return None

    def walk(self, start: Any) -> Iterator[Any]:
        """Breadth-first walk below and including `start`, capped at max_nodes."""

        q = [start]
        seen = 0
        while q and seen < self.max_nodes:
            cur = q.pop(0)
            seen += 1
            yield cur
            q.extend(child_nodes(cur))

    def summary(self, np: Any) -> dict[str, Any]:
        return {"name": node_name(np), "type": node_class(np), "path": self.path_of(np)}

    def tree(self, np: Any) -> tuple[dict[str, Any], bool]:
        """Recursive {name, type, path, children} dump; second item is True when capped."""

        budget = [self.max_nodes]

        def _dump(cur: Any) -> dict[str, Any]:
            budget[0] -= 1
            row = self.summary(cur)
            children: list[dict[str, Any]] = []
            for child in child_nodes(cur):
                if budget[0] <= 0:
                    break
                children.append(_dump(child))
            row["children"] = children
            return row

        out = _dump(np)
        return out, budget[0] <= 0

    def describe(self, value: Any) -> dict | None:
        """Codec hook: scene members get their path, everything else the default descriptor."""

        desc = codec.default_describe(value)
        if desc is None or desc.get("type") != "node":
            return desc
        path = self.path_of(value)
        if path is None:
            return desc
        return {"type": "node", "class": desc["class"], "name": desc["name"], "path": path}
