"""nsdeps CLI — check requires and build module loaders from the command line.

Usage::

    python -m nsdeps check PATH... [options]
    python -m nsdeps build MANIFEST PATH... [options]

check options::

    --extern PATH         File or directory whose provides are visible but unchecked
    --exclude NAMESPACE   Provide to ignore when matching usages
    --quiet               Do not print the report
    --json-output FILE    Write the result as JSON
    --strict              Exit with 1 when any discrepancy is found

build options::

    --cache FILE          Declaration cache file
    --define KEY=VALUE    Build constant for CLOSURE_DEFINES (repeatable)
    --async               Generate asynchronous loaders

Both accept --verbose / -v.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from nsdeps.checker import RequireChecker
from nsdeps.errors import NsDepsError
from nsdeps.writer import ModuleDepsWriter


def _parse_define(raw: str) -> tuple[str, Any]:
    """Split ``KEY=VALUE``; JSON scalars (true, 3, "x") are decoded."""
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {raw!r}")
    key, value = raw.split("=", 1)
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return key, value
    if isinstance(decoded, (bool, int, float, str)):
        return key, decoded
    return key, value


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="nsdeps",
        description=(
            "Check goog.require declarations against actual usage, and "
            "generate per-module loader scripts."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Enable verbose logging",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    check = commands.add_parser("check", help="Report missing and unnecessary requires")
    check.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="JS files or directories to check",
    )
    check.add_argument(
        "--extern",
        action="append",
        type=Path,
        default=[],
        help="File or directory providing namespaces without being checked",
    )
    check.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="NAMESPACE",
        help="Provide to ignore when matching usages",
    )
    check.add_argument(
        "--quiet",
        action="store_true",
        default=False,
        help="Do not print the report",
    )
    check.add_argument(
        "--json-output",
        type=Path,
        default=None,
        metavar="FILE",
        help="Write the result as JSON to FILE",
    )
    check.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Exit with status 1 when discrepancies are found",
    )

    build = commands.add_parser("build", help="Write a loader script per module")
    build.add_argument(
        "manifest",
        type=Path,
        help="JSON module manifest",
    )
    build.add_argument(
        "paths",
        nargs="+",
        type=Path,
        help="JS files or directories the modules draw on",
    )
    build.add_argument(
        "--cache",
        type=Path,
        default=None,
        metavar="FILE",
        help="Declaration cache file",
    )
    build.add_argument(
        "--define",
        action="append",
        type=_parse_define,
        default=[],
        metavar="KEY=VALUE",
        help="Build constant embedded in CLOSURE_DEFINES",
    )
    build.add_argument(
        "--async",
        dest="load_async",
        action="store_true",
        default=False,
        help="Fetch module files concurrently at page load",
    )
    return parser


def _run_check(args: argparse.Namespace) -> int:
    checker = RequireChecker(
        args.paths,
        extern_files=args.extern,
        exclude_provides=args.exclude or None,
        print_result=not args.quiet,
    )
    result = checker.check_all()

    if args.json_output:
        try:
            args.json_output.write_text(
                json.dumps(result.as_dict(), indent=2) + "\n", encoding="utf-8"
            )
        except OSError as exc:
            print(f"Error: Could not write JSON report: {exc}", file=sys.stderr)
            return 1

    return 1 if args.strict and result.has_issues else 0


def _run_build(args: argparse.Namespace) -> int:
    writer = ModuleDepsWriter(
        args.manifest,
        args.paths,
        cache_file=args.cache,
        defines=dict(args.define),
        load_async=args.load_async,
    )
    result = writer.build()
    for path in result.written:
        print(path)
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.  Returns exit code (0=success, 1=failure)."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    try:
        if args.command == "check":
            return _run_check(args)
        return _run_build(args)
    except NsDepsError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
