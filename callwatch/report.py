# -*- coding: utf-8 -*-
"""
Profiling report rendering.

Two layouts:
- delimited: every field quoted, joined by the given delimiter (CSV-style)
- aligned:   " | "-separated columns padded to the widest cell, where
             full-width characters count as two cells

Row order is insertion order of the statistics maps: callables in the order
they were first invoked, then stopwatches in the order they were first used.
"""

import os
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

from .utils import display_width, format_number, qualified_label

HEADER_NAME = "FUNCTION / STOPWATCH NAME"
HEADER_COUNT = "COUNT"
HEADER_TIME = "TIME [ms]"

STOPWATCH_PREFIX = "[StopWatch]."
COLUMN_SEPARATOR = " | "
REPORT_TITLE = "Profiling report : "


@dataclass
class ReportRow:
    """One rendered report line: label, formatted count, formatted time."""

    name: str
    count: str
    elapsed: str


HEADER_ROW = ReportRow(HEADER_NAME, HEADER_COUNT, HEADER_TIME)


def build_rows(function_stats: Mapping, stopwatches: Mapping) -> List[ReportRow]:
    """
    Header row followed by one row per CallableStat and one per StopWatch.

    Args:
        function_stats: id -> CallableStat (anything with owner_label,
                        callable_label, count, elapsed_ms)
        stopwatches: name -> StopWatch (anything with count, elapsed_ms)
    """
    rows = [HEADER_ROW]
    for stat in function_stats.values():
        rows.append(ReportRow(
            name=qualified_label(stat.owner_label, stat.callable_label),
            count=format_number(stat.count),
            elapsed=format_number(stat.elapsed_ms),
        ))
    for name, watch in stopwatches.items():
        rows.append(ReportRow(
            name=STOPWATCH_PREFIX + str(name),
            count=format_number(watch.count),
            elapsed=format_number(watch.elapsed_ms),
        ))
    return rows


def format_delimited(rows: Iterable[ReportRow], delimiter: str, line_separator: str = os.linesep) -> str:
    """Quote every field and join with delimiter; rows joined by line_separator."""
    lines = []
    for row in rows:
        lines.append(delimiter.join(f'"{field}"' for field in (row.name, row.count, row.elapsed)))
    return line_separator.join(lines)


def format_aligned(rows: Iterable[ReportRow], line_separator: str = os.linesep) -> str:
    """
    Column-aligned table.

    The first row (header) is left-aligned in every column; the other rows
    left-align the name and right-align count and time.
    """
    rows = list(rows)
    if not rows:
        return ""

    name_width = max(display_width(r.name) for r in rows)
    count_width = max(len(r.count) for r in rows)
    time_width = max(len(r.elapsed) for r in rows)

    sep = COLUMN_SEPARATOR
    lines = []
    for i, row in enumerate(rows):
        name_pad = " " * (name_width - display_width(row.name))
        count_pad = " " * (count_width - len(row.count))
        time_pad = " " * (time_width - len(row.elapsed))

        if i == 0:
            count_cell = row.count + count_pad
            time_cell = row.elapsed + time_pad
        else:
            count_cell = count_pad + row.count
            time_cell = time_pad + row.elapsed

        lines.append(f"{sep}{row.name}{name_pad}{sep}{count_cell}{sep}{time_cell}{sep}")
    return line_separator.join(lines)


def render_report(
    profiler_name: str,
    function_stats: Mapping,
    stopwatches: Mapping,
    delimiter: Optional[str] = None,
    line_separator: str = os.linesep,
) -> str:
    """
    Full report text: a blank line, the title line, then the table.

    A non-empty delimiter selects the delimited layout.
    """
    rows = build_rows(function_stats, stopwatches)
    if delimiter:
        table = format_delimited(rows, delimiter, line_separator)
    else:
        table = format_aligned(rows, line_separator)
    return f"{line_separator}{REPORT_TITLE}{profiler_name}{line_separator}{table}"
