from __future__ import annotations

import argparse
from pathlib import Path

from .analysis_run import run_analysis


def _add_common(parser: argparse.ArgumentParser, *, suppress: bool = False) -> None:
    # Accepted before and after the subcommand; a subparser only sets what was given there.
    def default(value: object) -> object:
        return argparse.SUPPRESS if suppress else value

    parser.add_argument("--repo", type=Path, default=default(Path(".")), help="Path inside the git repository to analyze.")
    parser.add_argument("--config", type=Path, default=default(Path("config.json")), help="Path to config.json.")
    parser.add_argument("--jobs", type=int, default=default(0), help="Parallel decode workers (default: config or CPU count).")
    parser.add_argument("--queue-size", type=int, default=default(0), help="Bound on in-flight objects between pipeline stages.")
    parser.add_argument(
        "--disk-size",
        action="store_true",
        default=default(False),
        help="Measure objects by their compressed on-disk size instead of their logical size.",
    )
    parser.add_argument(
        "--ignore-root-path",
        action="store_true",
        default=default(False),
        help="Leave the root tree out of the 'most trees at path' result.",
    )


def _add_save_deps(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--save-deps",
        type=Path,
        default=None,
        help="Snapshot file for the parsed graph: loaded when present, otherwise built and saved.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find out which commits, trees and blobs make a git repository large.")
    _add_common(parser)
    sub = parser.add_subparsers(dest="command", metavar="command")

    reports = sub.add_parser("reports", help="Analyze the repository and print size reports.")
    _add_common(reports, suppress=True)
    _add_save_deps(reports)
    reports.add_argument("-a", "--all", action="store_true", help="Print every report section, tags included.")
    reports.add_argument("-c", "--commits", action="store_true", help="Print the commit report.")
    reports.add_argument("-t", "--trees", action="store_true", help="Print the tree report.")
    reports.add_argument("-b", "--blobs", action="store_true", help="Print the blob report.")
    reports.add_argument(
        "--report-dir",
        type=Path,
        default=None,
        help="Also write report.json and CSV files into this directory.",
    )

    process = sub.add_parser("process-only", help="Build the graph (and snapshot) without printing reports.")
    _add_common(process, suppress=True)
    _add_save_deps(process)
    return parser


def main(argv: list[str]) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2
    return run_analysis(args=args)
