"""Command-line interface for jssimplify.

  jssimplify analyze <paths...> [--write] [--rule=<id>]*   find (and fix) simplifications
  jssimplify explain <rule>                                show a rule's explanation
  jssimplify rules                                         list the available rules

``analyze`` exits 0 when no unsuppressed finding remains, 1 when findings
remain unfixed and 2 on configuration or internal errors (including every
input file failing to parse, and a rewritten file that could not be written).
"""

import sys
import logging
import argparse

from simplifier import __version__
from simplifier.config import build_config
from simplifier.engine import SimplifyEngine, write_rewritten
from simplifier.errors import ConfigError
from simplifier.report import FileOutcome, FileReport
from simplifier.rule_catalog import format_rule_explanation, format_rule_list, get_rule
from simplifier.source_reader import load_sources

logger = logging.getLogger(__name__)

EXIT_CLEAN = 0
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jssimplify",
        description="Find and apply behavior-preserving simplifications in JavaScript/TypeScript",
    )
    parser.add_argument("--version", action="version", version=f"jssimplify {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyze files or directories")
    analyze.add_argument("paths", nargs="+", help="Files or directories to analyze")
    analyze.add_argument("--write", action="store_true", help="Write accepted rewrites back to the files")
    analyze.add_argument("--rule", action="append", dest="rules", metavar="ID",
                         help="Only run this rule (repeatable)")
    analyze.add_argument("--format", choices=("text", "json"), default="text", help="Report format")
    analyze.add_argument("--max-findings", type=int, help="Cap findings reported per file")
    analyze.add_argument("--marker", help="Suppression marker comment token")
    analyze.add_argument("--max-depth", type=int, dest="max_inline_depth",
                         help="Deepest initializer that may still be inlined")
    analyze.add_argument("--pure", action="append", metavar="NAME",
                         help="Treat calls to NAME (or '.method') as side-effect free (repeatable)")
    analyze.add_argument("--jobs", "-j", type=int, help="Worker threads")
    analyze.add_argument("--timeout", type=float, help="Per-file timeout in seconds")
    analyze.add_argument("-v", "--verbose", action="count", default=0,
                         help="Increase log verbosity (-v info, -vv debug)")

    explain = subparsers.add_parser("explain", help="Explain a rule")
    explain.add_argument("rule", help="Rule id, e.g. INLINABLE_SINGLE_USE")

    subparsers.add_parser("rules", help="List available rules")
    return parser


def _configure_logging(verbosity: int):
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_analyze(args) -> int:
    try:
        config = build_config(
            enabled_rule_ids=[r.strip().upper().replace("-", "_") for r in args.rules] if args.rules else None,
            max_findings_per_file=args.max_findings,
            suppression_marker=args.marker,
            apply_fixes=args.write,
            max_inline_depth=args.max_inline_depth,
            pure_functions=args.pure,
            file_timeout=args.timeout,
            max_workers=args.jobs,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    pairs, unreadable = load_sources(args.paths)
    if not pairs and not unreadable:
        print("Error: no JavaScript or TypeScript sources found", file=sys.stderr)
        return EXIT_ERROR

    report = SimplifyEngine(config).run(pairs)
    for path in unreadable:
        report.files.append(FileReport(path=path, outcome=FileOutcome.ERROR,
                                       diagnostics=["could not read file"]))

    if args.write:
        write_rewritten(report)

    if args.format == "json":
        print(report.to_json())
    else:
        print(report.to_markdown())
    return report.exit_code()


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(getattr(args, "verbose", 0))

    if args.command == "analyze":
        return run_analyze(args)
    if args.command == "explain":
        if get_rule(args.rule) is None:
            print(f"Unknown rule: {args.rule}", file=sys.stderr)
            return EXIT_ERROR
        print(format_rule_explanation(args.rule))
        return EXIT_CLEAN
    if args.command == "rules":
        print(format_rule_list())
        return EXIT_CLEAN

    parser.print_help()
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
