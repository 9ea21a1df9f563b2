from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Mapping

from stagehand.config import DEFAULT_PORT
from stagehand.errors import ControlError


logger = logging.getLogger(__name__)

ARTIFACT_DIR = ".stagehand"
ARTIFACT_NAME = "sitecustomize.py"

_TEMPLATE = """\
# Generated by stagehand for a live session. Deleted when the session ends.
from stagehand.agent.autoload import install

install(port={port})
"""


def artifact_dir(project_dir: str | os.PathLike) -> Path:
    return Path(project_dir) / ARTIFACT_DIR


def artifact_path(project_dir: str | os.PathLike) -> Path:
    return artifact_dir(project_dir) / ARTIFACT_NAME


def render_bootstrap(port: int = DEFAULT_PORT) -> str:
    return _TEMPLATE.format(port=int(port))


def inject_bootstrap(project_dir: str | os.PathLike, port: int = DEFAULT_PORT) -> Path:
    """Write the bootstrap into `project_dir`. Rewriting identical content is a no-op."""

    root = Path(project_dir)
    if not root.is_dir():
        raise ControlError(f"Not a project directory: {root}")
    path = artifact_path(root)
    text = render_bootstrap(port)
    if path.is_file() and path.read_text(encoding="utf-8") == text:
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.debug("bootstrap written to %s (port %d)", path, int(port))
    return path


def remove_bootstrap(project_dir: str | os.PathLike) -> bool:
    """Delete the bootstrap and its derived files. Returns True when anything was removed."""

    d = artifact_dir(project_dir)
    if not d.exists():
        return False
    removed = False
    path = d / ARTIFACT_NAME
    if path.is_file():
        path.unlink()
        removed = True
    cache = d / "__pycache__"
    if cache.is_dir():
        shutil.rmtree(cache)
        removed = True
    try:
        d.rmdir()
        removed = True
    except OSError:
        # Something else lives there; leave it.
        logger.debug("keeping non-empty %s", d)
    return removed


def bootstrap_env(
    project_dir: str | os.PathLike,
    base_env: Mapping[str, str] | None = None,
    *,
    port: int | None = None,
) -> dict[str, str]:
    """Environment to launch the game with so Python picks up the bootstrap."""

    env = dict(os.environ if base_env is None else base_env)
    entry = str(artifact_dir(project_dir).resolve())
    parts = [p for p in env.get("PYTHONPATH", "").split(os.pathsep) if p and p != entry]
    env["PYTHONPATH"] = os.pathsep.join([entry] + parts)
    if port is not None:
        env["STAGEHAND_PORT"] = str(int(port))
    return env
