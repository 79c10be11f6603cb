"""
CLI module for callwatch.
Contains command-line argument parsing and configuration creation.
"""

from .parser import CallwatchArgumentParser, parse_command_line_args, parse_params

__all__ = ["CallwatchArgumentParser", "parse_command_line_args", "parse_params"]
