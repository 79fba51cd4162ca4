"""CLI argument parsing and main entry point.

Subcommands:

* ``mcp-conduit status``            connect once and print provider status.
* ``mcp-conduit tools``             connect once and list the bridged tools.
* ``mcp-conduit call NAME --args``  connect once and invoke one tool.
* ``mcp-conduit serve``             run the management API under Uvicorn.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

import uvicorn

from mcp_conduit.config.loader import load_conduit_config
from mcp_conduit.config.schema import ConduitConfig
from mcp_conduit.constants import DEFAULT_HOST, DEFAULT_PORT, SERVER_NAME, SERVER_VERSION
from mcp_conduit.display.logging_config import setup_logging
from mcp_conduit.errors import ConfigurationError
from mcp_conduit.runtime.service import BridgeService

module_logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CONDUIT_CONFIG"

# Config file search order (first match wins)
_CONFIG_SEARCH_ORDER = ("config.yaml", "config.yml")


def _find_config_file() -> str:
    """Locate the config file in the current directory.

    Falls back to ``CWD/config.yaml`` if nothing exists (loader will error).
    """
    for name in _CONFIG_SEARCH_ORDER:
        candidate = os.path.join(os.getcwd(), name)
        if os.path.isfile(candidate):
            return candidate
    return os.path.join(os.getcwd(), "config.yaml")


def _resolve_config_path(cli_path: Optional[str]) -> str:
    """CLI flag, then ``CONDUIT_CONFIG``, then auto-detect."""
    config_path = cli_path or os.environ.get(CONFIG_ENV_VAR) or _find_config_file()
    return os.path.abspath(config_path)


def _load_config(args: argparse.Namespace) -> ConduitConfig:
    cfg_path = _resolve_config_path(getattr(args, "config", None))
    module_logger.info("Configuration file path resolved to: %s", cfg_path)
    try:
        return load_conduit_config(cfg_path)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)


# ── one-shot commands ────────────────────────────────────────────────────


async def _with_service(config: ConduitConfig, timeout: Optional[float], action: Any) -> Any:
    """Connect every provider, run *action(service)*, then tear down."""
    service = BridgeService.from_config(config)
    try:
        service.resolve_tools()
        await service.wait_ready(timeout=timeout)
        return await action(service)
    finally:
        await service.stop()


def _cmd_status(args: argparse.Namespace) -> None:
    """Entry-point for ``mcp-conduit status``."""
    config = _load_config(args)

    async def _status(service: BridgeService) -> None:
        if args.json:
            print(json.dumps(service.status().to_dict(), indent=2))
        else:
            print(service.status_text())

    asyncio.run(_with_service(config, args.timeout, _status))


def _cmd_tools(args: argparse.Namespace) -> None:
    """Entry-point for ``mcp-conduit tools``."""
    config = _load_config(args)

    async def _tools(service: BridgeService) -> None:
        tools = service.resolve_tools()
        if args.json:
            print(json.dumps([t.to_dict() for t in tools], indent=2))
            return
        if not tools:
            print("No tools available.")
        for tool in tools:
            marker = " [BLOCKED]" if tool.blocked else ""
            print(f"{tool.name}{marker}")
            print(f"    {tool.label}")

    asyncio.run(_with_service(config, args.timeout, _tools))


def _parse_tool_args(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        print(f"Error: --args is not valid JSON: {exc}", file=sys.stderr)
        sys.exit(2)
    if not isinstance(parsed, dict):
        print("Error: --args must be a JSON object.", file=sys.stderr)
        sys.exit(2)
    return parsed


def _cmd_call(args: argparse.Namespace) -> None:
    """Entry-point for ``mcp-conduit call``."""
    config = _load_config(args)
    arguments = _parse_tool_args(args.args)

    async def _call(service: BridgeService) -> Dict[str, Any]:
        return await service.call_tool(args.name, arguments, call_id="cli")

    result = asyncio.run(_with_service(config, args.timeout, _call))
    for block in result.get("content", []):
        if block.get("type") == "text":
            print(block.get("text", ""))
        else:
            print(f"<{block.get('type')} {block.get('mimeType', '')}>")
    details = result.get("details") or {}
    if details.get("isError") or details.get("blocked") or details.get("error"):
        sys.exit(1)


# ── ``mcp-conduit serve`` ────────────────────────────────────────────────


def _cmd_serve(args: argparse.Namespace) -> None:
    """Entry-point for ``mcp-conduit serve``."""
    config = _load_config(args)
    host = args.host or config.server.host
    port = args.port or config.server.port

    from mcp_conduit.server.app import create_app

    service = BridgeService.from_config(config)
    app = create_app(service, token=config.server.token)
    module_logger.info("Preparing to start Uvicorn server: http://%s:%s", host, port)
    print(f"{SERVER_NAME} v{SERVER_VERSION} managing on http://{host}:{port}")
    try:
        uvicorn.run(app, host=host, port=port, log_config=None, log_level="warning")
    except KeyboardInterrupt:
        module_logger.info("%s interrupted by KeyboardInterrupt.", SERVER_NAME)
    finally:
        module_logger.info("%s application finished.", SERVER_NAME)


def _add_common_arguments(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--config",
        type=str,
        default=None,
        metavar="PATH",
        help=(
            f"Path to configuration file (YAML). Default: ${CONFIG_ENV_VAR} "
            "or auto-detect config.yaml/config.yml"
        ),
    )
    sp.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Set file logging level (default: info)",
    )


def _add_oneshot_arguments(sp: argparse.ArgumentParser) -> None:
    sp.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for providers to connect (default: 60)",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with its subcommands."""
    parser = argparse.ArgumentParser(
        prog="mcp-conduit",
        description=f"{SERVER_NAME} v{SERVER_VERSION}",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ── status ──────────────────────────────────────────────────
    sp_status = subparsers.add_parser("status", help="Connect and print provider status")
    _add_common_arguments(sp_status)
    _add_oneshot_arguments(sp_status)
    sp_status.add_argument("--json", action="store_true", help="Print JSON instead of text")
    sp_status.set_defaults(func=_cmd_status)

    # ── tools ───────────────────────────────────────────────────
    sp_tools = subparsers.add_parser("tools", help="Connect and list bridged tools")
    _add_common_arguments(sp_tools)
    _add_oneshot_arguments(sp_tools)
    sp_tools.add_argument("--json", action="store_true", help="Print JSON instead of text")
    sp_tools.set_defaults(func=_cmd_tools)

    # ── call ────────────────────────────────────────────────────
    sp_call = subparsers.add_parser("call", help="Connect and invoke one bridged tool")
    _add_common_arguments(sp_call)
    _add_oneshot_arguments(sp_call)
    sp_call.add_argument("name", help="Namespaced tool name, e.g. mcp__fs__read_file")
    sp_call.add_argument(
        "--args",
        type=str,
        default=None,
        metavar="JSON",
        help="Tool arguments as a JSON object",
    )
    sp_call.set_defaults(func=_cmd_call)

    # ── serve ───────────────────────────────────────────────────
    sp_serve = subparsers.add_parser("serve", help="Run the management API server")
    _add_common_arguments(sp_serve)
    sp_serve.add_argument(
        "--host",
        type=str,
        default=None,
        help=f"Host address (default: server.host or {DEFAULT_HOST})",
    )
    sp_serve.add_argument(
        "--port",
        type=int,
        default=None,
        help=f"Port (default: server.port or {DEFAULT_PORT})",
    )
    sp_serve.set_defaults(func=_cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level, quiet=True)
    module_logger.info("---- %s v%s: %s ----", SERVER_NAME, SERVER_VERSION, args.command)
    args.func(args)


if __name__ == "__main__":
    main()
