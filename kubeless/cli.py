import argparse
import os
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .runtime import FunctionRegistry, load_entrypoint
from .server import serve as run_server
from .utils import FUNC_HANDLER_ENV, ConfigError, load_config, parse_port


def _load_registry(entrypoints) -> FunctionRegistry:
    return FunctionRegistry(load_entrypoint(ref) for ref in entrypoints)


def cmd_serve(args: argparse.Namespace) -> int:
    env = dict(os.environ)
    if args.handler:
        env[FUNC_HANDLER_ENV] = args.handler
    try:
        registry = _load_registry(args.entrypoints)
        config = load_config(env)
        function = registry.select(config.handler)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    host = args.host or config.host
    port = parse_port(args.port, config.port) if args.port is not None else config.port
    log_path = Path(args.log_file).expanduser() if args.log_file else config.log_path
    run_server(
        function,
        config.context(),
        host=host,
        port=port,
        quiet=getattr(args, "quiet", False),
        log_path=log_path,
    )
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    try:
        registry = _load_registry(args.entrypoints)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    selected = os.environ.get(FUNC_HANDLER_ENV)
    marked = False
    for name in registry.names():
        # only the first registration of a name can be selected
        if name == selected and not marked:
            print(f"* {name}")
            marked = True
        else:
            print(f"  {name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="kubeless", description="Kubeless function runtime")
    p.add_argument("--version", action="version", version=f"kubeless {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Serve the selected function over HTTP")
    s.add_argument("entrypoints", nargs="+", metavar="ENTRYPOINT", help="module:function or file.py:function")
    s.add_argument("--handler", default=None, help=f"Function to serve (default: ${FUNC_HANDLER_ENV})")
    s.add_argument("--host", default=None, help="Address to bind (default: $FUNC_HOST or 0.0.0.0)")
    s.add_argument("--port", default=None, help="Port to bind (default: $FUNC_PORT or 8080)")
    s.add_argument("--quiet", action="store_true", help="Suppress HTTP access logs")
    s.add_argument("--log-file", default=None, help="Append a JSON record per invocation to this file")
    s.set_defaults(func=cmd_serve)

    l = sub.add_parser("list", help="List candidate functions in registration order")
    l.add_argument("entrypoints", nargs="+", metavar="ENTRYPOINT")
    l.set_defaults(func=cmd_list)

    return p


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
