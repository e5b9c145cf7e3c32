#!/usr/bin/env python3

# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from fusionid.app import (
    StateBackend,
    aggregate_accounts,
    correlate_account,
    disable_account,
    enable_account,
    read_account,
    reset_fusion_state,
)
from fusionid.common.logging import configure_logging
from fusionid.config.errors import ConfigurationError
from fusionid.config.fusion import FUSION_CONFIG_ENV, get_fusion_config_path

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

SINGLE_ACCOUNT_COMMANDS = {
    "read": read_account,
    "enable": enable_account,
    "disable": disable_account,
    "correlate": correlate_account,
}


def _add_common_arguments(parser: argparse.ArgumentParser, *, snapshot: bool) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        help=f"Engine configuration JSON file (default: ${FUSION_CONFIG_ENV})",
    )
    if snapshot:
        parser.add_argument(
            "--snapshot",
            type=Path,
            required=True,
            help="JSON snapshot of prior fusion accounts, identities and managed accounts",
        )
    parser.add_argument(
        "--state",
        choices=[backend.value for backend in StateBackend],
        default=StateBackend.SQLITE.value,
        help="Where counters and run flags are persisted (default: %(default)s)",
    )


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fuse source accounts into one record per person")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    aggregate = commands.add_parser("aggregate", help="Run a full aggregation")
    _add_common_arguments(aggregate, snapshot=True)
    aggregate.add_argument("--output", type=Path, help="Write records here instead of stdout")
    aggregate.add_argument("--report", type=Path, help="Write a match report to this file")
    aggregate.add_argument(
        "--include-non-matches",
        action="store_true",
        help="List accounts without candidates in the report as well",
    )

    reset = commands.add_parser("reset-state", help="Clear persisted counters")
    _add_common_arguments(reset, snapshot=False)

    for name in SINGLE_ACCOUNT_COMMANDS:
        single = commands.add_parser(name, help=f"{name.capitalize()} one fusion account")
        single.add_argument("native_identity", help="Native identity of the fusion account")
        _add_common_arguments(single, snapshot=True)

    return parser.parse_args(list(argv))


def _config_path(args: argparse.Namespace) -> Path:
    if args.config is not None:
        return args.config
    from_env = get_fusion_config_path()
    if from_env is None:
        raise ValueError(f"Pass --config or set {FUSION_CONFIG_ENV}")
    return Path(from_env)


def _write_json(payload: object, target: Path | None) -> None:
    text = json.dumps(payload, indent=2, default=str)
    if target is None:
        print(text)
    else:
        target.write_text(text + "\n", encoding="utf-8")


def _run(args: argparse.Namespace, config_path: Path) -> None:
    state = StateBackend(args.state)
    if args.command == "aggregate":
        result = aggregate_accounts(
            config_path=config_path,
            snapshot_path=args.snapshot,
            state=state,
            report=args.report is not None,
            include_non_matches=args.include_non_matches,
        )
        _write_json([output.as_dict() for output in result.outputs], args.output)
        if result.report is not None:
            _write_json(asdict(result.report), args.report)
    elif args.command == "reset-state":
        reset_fusion_state(config_path=config_path, state=state)
    else:
        action = SINGLE_ACCOUNT_COMMANDS[args.command]
        output = action(
            args.native_identity,
            config_path=config_path,
            snapshot_path=args.snapshot,
            state=state,
        )
        _write_json(output.as_dict(), None)


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(argv if argv is not None else sys.argv[1:])
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        config_path = _config_path(parsed_args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    try:
        _run(parsed_args, config_path)
    except (ConfigurationError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:  # noqa: BLE001
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    print("\nClosed by user (Ctrl+C)")
    sys.exit(0)


if __name__ == "__main__":
    signal(SIGINT, sigint_handler)
    main()
