from __future__ import annotations

import sys

from . import analysis_cli, validate_reports


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        p = analysis_cli._build_parser()
        p.prog = "git-dag-analysis"
        p.print_help()
        print("")
        print("other commands:")
        print("  validate       Sanity-check a report directory written by `reports --report-dir`.")
        print("")
        print("Run `git-dag-analysis <command> --help` for command-specific options.")
        return 0
    if argv[0] == "validate":
        return validate_reports.main(argv[1:])
    return analysis_cli.main(argv)


if __name__ == "__main__":
    raise SystemExit(main())
