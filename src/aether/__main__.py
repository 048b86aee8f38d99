#!/usr/bin/env python3
"""
CLI for the Aether interpreter.

Usage:
    python -m aether run FILE [options]
    python -m aether eval CODE [options]
    python -m aether check FILE [--ast]
    python -m aether version

Examples:
    # Evaluate an expression
    python -m aether eval 'Set X 10; (X + 20)'

    # Run a script that writes files, with a step budget
    python -m aether run build.ae --allow-io --max-steps 100000

    # Show the execution trace and optimizer activity
    python -m aether run fib.ae --trace -v

The exit status is the ErrorCode of the evaluation (0 on success).
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import EngineConfig, load_config, config_from_env
from .engine import Engine, version
from .errors import AetherError, ErrorCode, ParseError
from .ast import print_ast
from .parser import parse_source
from .runtime.limits import Limits
from .transforms import OptimizationFlags


def _configure_logging(verbose: int) -> None:
    if not verbose:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    package_logger = logging.getLogger("aether")
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG if verbose > 1 else logging.INFO)


def _build_config(args) -> EngineConfig:
    """Config file (or AETHER_CONFIG), then command-line overrides."""
    config = load_config(args.config) if args.config else config_from_env()

    limits = config.limits
    overrides = {}
    if args.max_steps is not None:
        overrides["max_steps"] = args.max_steps
    if args.max_depth is not None:
        overrides["max_recursion_depth"] = args.max_depth
    if args.timeout_ms is not None:
        overrides["max_duration_ms"] = args.timeout_ms
    if overrides:
        merged = limits.to_dict()
        merged.update(overrides)
        limits = Limits.from_dict(merged)

    return EngineConfig(
        limits=limits,
        optimization=OptimizationFlags.none() if args.no_opt else config.optimization,
        allow_io=args.allow_io or config.allow_io,
        trace_max_entries=config.trace_max_entries,
        cache_max_entries=config.cache_max_entries,
    )


def _evaluate(args, code: str, filename: str) -> int:
    try:
        config = _build_config(args)
    except AetherError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return int(e.error_code)

    with Engine.from_config(config) as engine:
        result = engine.eval(code, filename)
        if result.ok:
            print(result.output)
        else:
            print(result.error, file=sys.stderr)

        if args.trace:
            print(json.dumps(engine.export_trace(), indent=2), file=sys.stderr)
        if args.stats and result.stats is not None:
            stats = dict(result.stats.to_dict(), cached=result.cached)
            print(json.dumps(stats), file=sys.stderr)

    return int(result.code)


def cmd_run(args) -> int:
    """Evaluate a script file."""
    source_path = Path(args.file)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return int(ErrorCode.INVALID_ARGUMENT)
    code = source_path.read_text(encoding="utf-8")
    return _evaluate(args, code, str(source_path))


def cmd_eval(args) -> int:
    """Evaluate code given on the command line."""
    return _evaluate(args, args.code, "<eval>")


def cmd_check(args) -> int:
    """Parse a file and report the first syntax error."""
    source_path = Path(args.file)
    if not source_path.exists():
        print(f"Error: File not found: {source_path}", file=sys.stderr)
        return int(ErrorCode.INVALID_ARGUMENT)

    try:
        program = parse_source(source_path.read_text(encoding="utf-8"), str(source_path))
    except ParseError as e:
        print(str(e), file=sys.stderr)
        return int(e.error_code)

    count = len(program.body.statements)
    print(f"OK: {source_path.name} - {count} top-level statement(s)")
    if args.ast:
        print_ast(program)
    return 0


def cmd_version(args) -> int:
    print(f"aether {version()}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="aether",
        description="Aether embeddable interpreter",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Log to stderr (-vv for debug output)")
    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    eval_options = argparse.ArgumentParser(add_help=False)
    eval_options.add_argument("--config", metavar="FILE",
                              help="YAML engine config (default: $AETHER_CONFIG)")
    eval_options.add_argument("--allow-io", action="store_true",
                              help="Grant the io capability")
    eval_options.add_argument("--max-steps", type=int, metavar="N")
    eval_options.add_argument("--max-depth", type=int, metavar="N",
                              help="Maximum call depth")
    eval_options.add_argument("--timeout-ms", type=int, metavar="MS",
                              help="Maximum wall-clock time")
    eval_options.add_argument("--no-opt", action="store_true",
                              help="Disable every optimizer pass")
    eval_options.add_argument("--trace", action="store_true",
                              help="Print the execution trace to stderr")
    eval_options.add_argument("--stats", action="store_true",
                              help="Print execution statistics to stderr")

    run_parser = subparsers.add_parser("run", parents=[eval_options],
                                       help="Run a script file")
    run_parser.add_argument("file", help="Aether source file")

    eval_parser = subparsers.add_parser("eval", parents=[eval_options],
                                        help="Evaluate code from the command line")
    eval_parser.add_argument("code", help="Aether source text")

    check_parser = subparsers.add_parser("check", help="Check a file for syntax errors")
    check_parser.add_argument("file", help="Aether source file")
    check_parser.add_argument("--ast", action="store_true",
                              help="Print the parsed tree after checking")

    subparsers.add_parser("version", help="Print the engine version")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.subcommand == "run":
        return cmd_run(args)
    elif args.subcommand == "eval":
        return cmd_eval(args)
    elif args.subcommand == "check":
        return cmd_check(args)
    elif args.subcommand == "version":
        return cmd_version(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
