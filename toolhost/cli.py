"""
toolhost — start configured tool servers and talk to them from a shell.

Usage:
    # Which servers come up
    toolhost --config servers.json status

    # What a server offers
    toolhost --config servers.json tools github

    # Raw JSON-RPC call
    toolhost --config servers.json call echo ping

    # MCP tool call
    toolhost --config servers.json call echo tools/call --params '{"name": "echo", "arguments": {"message": "hi"}}'
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from dataclasses import asdict

from toolhost.config import load_server_configs
from toolhost.errors import ToolHostError
from toolhost.manager import ToolServerManager

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolhost",
        description="Launch stdio tool servers and call them over JSON-RPC.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  toolhost --config servers.json status
  toolhost --config servers.json tools echo
  toolhost --config servers.json call echo ping --timeout 2
        """,
    )
    parser.add_argument("--config", "-c", required=True, help="JSON file with server definitions")
    parser.add_argument("--servers", nargs="*", default=None, help="Which servers to start (default: all)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Start servers and print their liveness")

    tools = sub.add_parser("tools", help="List a server's tools")
    tools.add_argument("server")
    tools.add_argument("--timeout", type=float, default=None)

    call = sub.add_parser("call", help="Send one JSON-RPC request")
    call.add_argument("server")
    call.add_argument("method")
    call.add_argument("--params", default="{}", help="JSON object of params")
    call.add_argument("--timeout", type=float, default=None)
    return parser


def run(args: argparse.Namespace, manager: ToolServerManager) -> int:
    configs = load_server_configs(args.config)
    selected = args.servers or list(configs)
    for name in selected:
        if name not in configs:
            logger.warning(f"Unknown server: {name}")
            continue
        manager.register_server(configs[name])

    started = manager.start_all()
    failed = [name for name, ok in started.items() if not ok]
    if failed:
        logger.error(f"Failed to start: {failed}")

    if args.command == "status":
        print(json.dumps(manager.status(), indent=2))
        return 1 if failed else 0

    if args.command == "tools":
        tools = manager.list_tools(args.server, timeout=args.timeout)
        print(json.dumps([asdict(t) for t in tools], indent=2))
        return 0

    try:
        params = json.loads(args.params)
    except json.JSONDecodeError as e:
        logger.error(f"--params is not valid JSON: {e}")
        return 2
    if not isinstance(params, dict):
        logger.error("--params must be a JSON object")
        return 2

    try:
        result = manager.call(args.server, args.method, params, timeout=args.timeout)
    except ToolHostError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    print(json.dumps(result, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    manager = ToolServerManager()

    # Graceful shutdown on Ctrl+C
    def shutdown(sig, frame):
        print("\nShutting down tool servers...", file=sys.stderr)
        manager.stop_all()
        sys.exit(130)
    signal.signal(signal.SIGINT, shutdown)

    try:
        return run(args, manager)
    finally:
        manager.stop_all()


if __name__ == "__main__":
    sys.exit(main())
