from __future__ import annotations

"""
stagehand command line.

  stagehand send get_scene_tree
  stagehand send set_property --params '{"node_path":"/root/Player","property":"pos","value":{"x":1,"y":2,"z":0}}'
  stagehand inject path/to/game     # prints the environment to launch the game with
  stagehand remove path/to/game
"""

import argparse
import json
import logging
import sys

from stagehand.config import ControllerConfig, debug_enabled
from stagehand.controller.bootstrap import bootstrap_env, inject_bootstrap, remove_bootstrap
from stagehand.controller.client import GameClient
from stagehand.errors import StagehandError
from stagehand.protocol import is_error


def _setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _cmd_send(args: argparse.Namespace, cfg: ControllerConfig) -> int:
    try:
        params = json.loads(args.params) if args.params else {}
    except json.JSONDecodeError as e:
        print(f"error: --params is not valid JSON: {e}", file=sys.stderr)
        return 2
    if not isinstance(params, dict):
        print("error: --params must be a JSON object", file=sys.stderr)
        return 2
    client = GameClient.connect(cfg, attempts=args.attempts)
    if client is None:
        print(f"error: no agent listening on {cfg.host}:{cfg.port}", file=sys.stderr)
        return 1
    try:
        resp = client.send(args.command, params, args.timeout)
    finally:
        client.close()
    print(json.dumps(resp, indent=2, ensure_ascii=True))
    return 1 if is_error(resp) else 0


def _cmd_inject(args: argparse.Namespace, cfg: ControllerConfig) -> int:
    path = inject_bootstrap(args.project_dir, cfg.port)
    env = bootstrap_env(args.project_dir, {}, port=cfg.port)
    print(f"# bootstrap: {path}")
    for k in sorted(env):
        print(f"export {k}={env[k]}")
    return 0


def _cmd_remove(args: argparse.Namespace, cfg: ControllerConfig) -> int:
    removed = remove_bootstrap(args.project_dir)
    print("removed" if removed else "nothing to remove")
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="stagehand", description="Drive a running Panda3D game over the stagehand agent")
    ap.add_argument("--host", default=None, help="Agent host (default: STAGEHAND_HOST or 127.0.0.1).")
    ap.add_argument("--port", type=int, default=None, help="Agent port (default: STAGEHAND_PORT or 9090).")
    ap.add_argument("--debug", action="store_true", help="Log to stderr at DEBUG level.")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_send = sub.add_parser("send", help="Send one command and print the response.")
    p_send.add_argument("command")
    p_send.add_argument("--params", default="", help="Command parameters as a JSON object.")
    p_send.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the response.")
    p_send.add_argument("--attempts", type=int, default=1, help="Connection attempts before giving up.")
    p_send.set_defaults(func=_cmd_send)

    p_inject = sub.add_parser("inject", help="Install the bootstrap into a project directory.")
    p_inject.add_argument("project_dir")
    p_inject.set_defaults(func=_cmd_inject)

    p_remove = sub.add_parser("remove", help="Remove the bootstrap from a project directory.")
    p_remove.add_argument("project_dir")
    p_remove.set_defaults(func=_cmd_remove)

    args = ap.parse_args(argv)
    _setup_logging(bool(args.debug) or debug_enabled())

    cfg = ControllerConfig.from_env()
    cfg = ControllerConfig(
        host=args.host or cfg.host,
        port=int(args.port) if args.port is not None else cfg.port,
        default_timeout_s=cfg.default_timeout_s,
        long_timeout_s=cfg.long_timeout_s,
    )
    try:
        return int(args.func(args, cfg))
    except StagehandError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
