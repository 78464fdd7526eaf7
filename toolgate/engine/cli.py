"""CLI entry point for the tool engines.

Usage:
    toolgate run "pytest -q"
    toolgate write src/app.py --content-file proposal.py
    toolgate --config toolgate.yaml --verbose run "make build"
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import ToolConfig
from .executor import ToolExecutor
from .formatting import response_text
from .models import ToolInvocation, ToolKind
from .yaml_config import load_yaml_config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="toolgate",
        description="Run agent tool calls behind an interactive approval prompt",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML config file (default: TOOLGATE_* environment variables)",
    )
    parser.add_argument(
        "--cwd",
        default=None,
        help="Working directory for commands and file paths",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for a command before returning partial output",
    )
    parser.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Approve every request without prompting",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="action", required=True)

    run = sub.add_parser("run", help="Execute a shell command")
    run.add_argument("command", help="Command line to execute")

    write = sub.add_parser("write", help="Write a file through a diff preview")
    write.add_argument("path", help="File path, relative to the working directory")
    source = write.add_mutually_exclusive_group(required=True)
    source.add_argument("--content", default=None, help="Inline file content")
    source.add_argument(
        "--content-file", default=None, help="Read the proposed content from a file",
    )
    return parser


def _load_config(args: argparse.Namespace) -> ToolConfig:
    config = load_yaml_config(args.config) if args.config else ToolConfig.from_env()
    if args.cwd is not None:
        config = config.with_overrides(cwd=args.cwd)
    if args.timeout is not None:
        config = config.with_overrides(command_timeout_seconds=args.timeout)
    return config


def _build_invocation(args: argparse.Namespace) -> ToolInvocation:
    if args.action == "run":
        return ToolInvocation.create(
            ToolKind.EXECUTE_COMMAND, {"command": args.command},
        )
    if args.content_file:
        p = Path(args.content_file)
        if not p.is_file():
            print(f"Error: Content file not found: {args.content_file}")
            sys.exit(1)
        content = p.read_text(encoding="utf-8")
    else:
        content = args.content
    return ToolInvocation.create(
        ToolKind.WRITE_TO_FILE, {"path": args.path, "content": content},
    )


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)

    try:
        config = _load_config(args)
    except (OSError, ValueError) as exc:
        print(f"Error: could not load config: {exc}")
        sys.exit(1)

    level = logging.DEBUG if args.verbose else getattr(
        logging, config.log_level.upper(), logging.INFO,
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )

    # Imported here so `toolgate --help` stays light.
    from toolgate.adapters import (
        ConsoleApprovalChannel,
        FileDiffViewProvider,
        ShellTerminalManager,
    )

    terminals = ShellTerminalManager()
    executor = ToolExecutor(
        channel=ConsoleApprovalChannel(auto_approve=args.yes),
        terminal_manager=terminals,
        diff_view_factory=FileDiffViewProvider,
        config=config,
    )
    invocation = _build_invocation(args)

    try:
        result = asyncio.run(executor.run(invocation))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        terminals.terminate_all()
        sys.exit(1)

    print("\n=== Tool Result ===\n")
    print(response_text(result))
