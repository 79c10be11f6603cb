#!/usr/bin/env python3
"""
callwatch - call count and timing profiler
Main entry point for the application.
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

from rich import print as rprint
from rich.markup import escape

from callwatch.cli.parser import parse_command_line_args, parse_params
from callwatch.config import ProfilerConfig
from callwatch.exceptions import CallwatchError
from callwatch.logging_context import get_context_prefix
from callwatch.profiler import Profiler
from callwatch.scope import execution_scope
from callwatch.session import RequestSession, ScriptSource
from callwatch.utils import logger, print_text, setup_logging


def run_script(config: ProfilerConfig, script: Path, entry: str = "main") -> Any:
    """
    Load script, instrument its functions, call its entry function and print the report.

    The script's top-level code runs before instrumentation, so only calls
    made from the entry function onwards are measured.
    """
    rules = config.load_rules()
    path = script.stem
    source = ScriptSource(script.parent)

    with execution_scope(path):
        profiler = Profiler(path, config=config)
        profiler.profile_libraries(rules)

        module = source.load(path)
        profiler.add_all_exclude(module, rules.excluded_functions(path), path)

        func = getattr(module, entry, None)
        try:
            if callable(func):
                return func()
            logger.warning(f"{get_context_prefix()}{script} has no function '{entry}'; nothing was called")
            return None
        finally:
            if profiler.has_report():
                print_text(profiler.render())


def run_request(config: ProfilerConfig, path: str, action: Optional[str], params: Dict[str, str]) -> Any:
    """Run one request through a RequestSession; the report goes to the log."""
    request: Dict[str, Any] = dict(params)
    if action:
        request["action"] = action
    session = RequestSession(config=config)
    return session.handle(path, request)


def main(argv=None):
    """Main entry point."""
    args, config = parse_command_line_args(argv)
    setup_logging(config.log_level, config.log_file)

    try:
        if args.command == "run":
            result = run_script(config, args.script, args.entry)
        else:
            result = run_request(config, args.path, args.action, parse_params(args.param))
        if result is not None:
            rprint(f"[cyan]Result:[/cyan] {escape(repr(result))}")
    except KeyboardInterrupt:
        rprint("\n[bold yellow]Cancelled by user[/bold yellow]")
        sys.exit(0)
    except CallwatchError as e:
        rprint(f"[bold red]Error: {escape(str(e))}[/bold red]")
        sys.exit(1)
    except Exception as e:
        rprint(f"[bold red]Fatal error: {escape(str(e))}[/bold red]")
        logger.exception("Fatal error in main")
        sys.exit(1)


if __name__ == "__main__":
    main()
