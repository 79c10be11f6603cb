"""
CLI argument parsing for callwatch.
Handles command-line interface, argument validation, and building a
ProfilerConfig from the parsed arguments.
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from ..compat_logger import LEVELS
from ..config import LINE_SEPARATORS, ProfilerConfig
from ..exceptions import ConfigError
from ..utils import logger


class CallwatchArgumentParser:
    """
    Command-line argument parser for callwatch.

    Subcommands:
        run SCRIPT      instrument a script's functions, call its entry point, report
        request PATH    run one request through a RequestSession over a scripts dir
    """

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create and configure the argument parser."""
        parser = argparse.ArgumentParser(
            prog="callwatch",
            description="callwatch - call count and timing profiler",
            epilog="""
Examples:
  callwatch run jobs/nightly.py                    # aligned report
  callwatch run jobs/nightly.py --delimiter ,      # CSV report
  callwatch request app/index --scripts-dir ./scripts --param id=42
            """,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
        subparsers.required = True

        run_parser = subparsers.add_parser("run", help="Profile a Python script")
        run_parser.add_argument("script", type=Path, help="Script file to run")
        run_parser.add_argument(
            "--entry",
            default="main",
            help="Function called after instrumentation (default: main)",
        )
        self._add_common_options(run_parser)

        request_parser = subparsers.add_parser("request", help="Run one profiled request")
        request_parser.add_argument("path", help="Script path without extension, e.g. app/index")
        request_parser.add_argument(
            "--scripts-dir", type=Path, default=None, help="Scripts directory (default: from .env or ./scripts)"
        )
        request_parser.add_argument("--action", help="Script function to dispatch before init")
        request_parser.add_argument(
            "--param",
            action="append",
            default=[],
            metavar="KEY=VALUE",
            help="Request parameter (repeatable)",
        )
        self._add_common_options(request_parser)

        return parser

    def _add_common_options(self, parser: argparse.ArgumentParser) -> None:
        report_group = parser.add_argument_group("Report")
        report_group.add_argument(
            "--delimiter", "-d", default=None, help="Field delimiter; aligned columns when omitted"
        )
        report_group.add_argument(
            "--line-separator",
            choices=sorted(LINE_SEPARATORS),
            default=None,
            help="Line separator of the report (default: OS)",
        )

        rules_group = parser.add_argument_group("Rules")
        rules_group.add_argument("--rules", type=Path, default=None, help="Rules file (JSON)")
        rules_group.add_argument(
            "--sweep-root",
            action="append",
            default=[],
            metavar="MODULE",
            help="Library root to instrument (repeatable)",
        )
        rules_group.add_argument(
            "--no-sweep", action="store_true", help="Do not instrument library roots"
        )

        output_group = parser.add_argument_group("Output & Logging")
        output_group.add_argument("--env", type=Path, default=Path(".env"), help="Environment file")
        output_group.add_argument(
            "--log-level",
            type=str.upper,
            choices=list(LEVELS) + ["WARNING"],
            default=None,
            help="Console log level",
        )
        output_group.add_argument("--log-file", type=Path, help="Log file path")

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """
        Parse command-line arguments.

        Args:
            args: Optional list of arguments to parse (defaults to sys.argv)

        Returns:
            Parsed arguments namespace
        """
        parsed = self.parser.parse_args(args)

        # Validate arguments
        self._validate_args(parsed)

        return parsed

    def _validate_args(self, args: argparse.Namespace):
        """Validate parsed arguments for consistency and requirements."""
        if args.delimiter is not None and args.delimiter == "":
            self.parser.error("--delimiter must not be empty")

        if args.no_sweep and args.sweep_root:
            self.parser.error("--no-sweep and --sweep-root are mutually exclusive")

        if args.command == "run":
            if args.script.suffix != ".py":
                self.parser.error("SCRIPT must be a .py file")
            if not args.script.is_file():
                self.parser.error(f"Script not found: {args.script}")

        if args.command == "request":
            try:
                parse_params(args.param)
            except ValueError as e:
                self.parser.error(str(e))

    def create_config_from_args(self, args: argparse.Namespace) -> ProfilerConfig:
        """
        Create a ProfilerConfig from parsed arguments.

        Environment (.env and CALLWATCH_*) values are the base; explicit
        command-line options override them.
        """
        config = ProfilerConfig.from_env(args.env)

        if args.delimiter is not None:
            config.delimiter = args.delimiter
        if args.line_separator is not None:
            config.line_separator = LINE_SEPARATORS[args.line_separator]
        if args.rules is not None:
            config.rules_file = args.rules
        if args.log_level is not None:
            config.log_level = args.log_level
        if args.log_file is not None:
            config.log_file = args.log_file
        if getattr(args, "scripts_dir", None) is not None:
            config.scripts_dir = args.scripts_dir

        if args.no_sweep:
            config.sweep_roots = []
        else:
            for root in args.sweep_root:
                if root not in config.sweep_roots:
                    config.sweep_roots.append(root)

        config.validate()
        return config


def parse_params(values: List[str]) -> Dict[str, str]:
    """Turn ["id=42", "mode=full"] into {"id": "42", "mode": "full"}."""
    params: Dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid --param '{item}' (expected KEY=VALUE)")
        params[key] = value
    return params


def parse_command_line_args(args: Optional[List[str]] = None):
    """
    Parse command-line arguments.

    Returns:
        (parsed namespace, ProfilerConfig)

    Raises:
        SystemExit: If argument parsing or configuration fails
    """
    parser = CallwatchArgumentParser()
    parsed_args = parser.parse_args(args)

    try:
        config = parser.create_config_from_args(parsed_args)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.debug(f"Parsed command-line arguments: command={parsed_args.command}")
    return parsed_args, config
