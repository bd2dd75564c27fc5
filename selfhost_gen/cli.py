"""Command line interface for self-hosted deployment generation."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from .compose_out import build_resolved_document
from .environment import load_environment
from .main import (
    check_report,
    compose_document,
    emit_environment_descriptor,
    load_topology,
    resolve,
    write_compose_output,
    write_text_output,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="selfhost-gen",
        description="Describe, resolve and check a self-hosted Convex deployment.",
    )
    parser.add_argument(
        "command",
        choices=["compose", "resolve", "check", "tsconfig"],
        help="compose: print the topology; resolve: substitute the environment; "
        "check: validate and show startup order; tsconfig: generate the TypeScript config.",
    )
    parser.add_argument(
        "--compose",
        type=Path,
        help="Read the topology from this docker-compose.yml instead of the built-in one.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        help="Dotenv file to read before the process environment (default: ./.env if present).",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Write the result here instead of stdout.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit the resolved topology as JSON (command=resolve).",
    )
    parser.add_argument(
        "--preserve-edits",
        action="store_true",
        help="Keep user edits to editable compiler options in an existing tsconfig (command=tsconfig).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the result without writing to disk.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.command == "tsconfig":
            emit_environment_descriptor(args.output, args.preserve_edits, args.dry_run)
            return 0

        topology = load_topology(args.compose)
        if args.command == "compose":
            write_compose_output(compose_document(topology), args.output, args.dry_run)
        elif args.command == "resolve":
            resolved = resolve(topology, env_file=args.env_file)
            if args.json:
                write_text_output(resolved.to_json(), args.output, args.dry_run)
            else:
                write_compose_output(build_resolved_document(resolved), args.output, args.dry_run)
        else:  # check
            env = load_environment(args.env_file)
            write_text_output("\n".join(check_report(topology, env)), args.output, args.dry_run)
        return 0
    except Exception as exc:  # pragma: no cover - protects CLI UX
        logging.error("selfhost-gen failed: %s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
