"""Text layout and ANSI styling for frames."""

from __future__ import annotations

import re
from typing import Mapping

from hwglance_core import Frame, FrameCell, FrameRow
from hwglance_probes import MetricKind

CSI = "\033["
CLR_RESET = f"{CSI}0m"
CLR_RED = f"{CSI}31m"
CLR_YEL = f"{CSI}33m"
CLR_GRN = f"{CSI}32m"
CLEAR_LINE = f"{CSI}2K"
HIDE_CURSOR = f"{CSI}?25l"
SHOW_CURSOR = f"{CSI}?25h"
ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")

COLUMN_GAP = "  "

Thresholds = Mapping[str, tuple[float, float]]


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def fit_width(line: str, width: int) -> str:
    """Clip ``line`` to ``width`` visible columns, keeping escape codes intact."""
    if width <= 0 or len(strip_ansi(line)) <= width:
        return line
    out: list[str] = []
    visible = 0
    pos = 0
    for match in ANSI_RE.finditer(line):
        chunk = line[pos:match.start()]
        take = chunk[: width - visible]
        out.append(take)
        visible += len(take)
        if visible >= width:
            break
        out.append(match.group())
        pos = match.end()
    else:
        out.append(line[pos:][: width - visible])
    if ANSI_RE.search(line):
        out.append(CLR_RESET)
    return "".join(out)


def color_by_thresholds(text: str, value: float, warn: float, hot: float) -> str:
    if value < warn:
        return f"{CLR_GRN}{text}{CLR_RESET}"
    if value < hot:
        return f"{CLR_YEL}{text}{CLR_RESET}"
    return f"{CLR_RED}{text}{CLR_RESET}"


def _cell_text(frame: Frame, row: FrameRow, cell: FrameCell, thresholds: Thresholds | None) -> str:
    padded = cell.text.rjust(frame.column_widths.get(cell.kind, len(cell.text)))
    if thresholds is None or cell.kind is not MetricKind.TEMPERATURE:
        return padded
    metric = cell.metric
    if metric is None or not metric.ok or metric.value is None:
        return padded
    limits = thresholds.get(row.category) or thresholds.get("other")
    if limits is None:
        return padded
    # Colour after padding so escape codes never count towards the width.
    return color_by_thresholds(padded, metric.value, limits[0], limits[1])


def format_row(frame: Frame, row: FrameRow, thresholds: Thresholds | None = None) -> str:
    cells = [_cell_text(frame, row, cell, thresholds) for cell in row.cells]
    line = row.label.ljust(frame.label_width)
    if cells:
        line += COLUMN_GAP + COLUMN_GAP.join(cells)
    return line.rstrip()


def format_frame(frame: Frame, thresholds: Thresholds | None = None) -> list[str]:
    """One line per row, in frame order."""
    return [format_row(frame, row, thresholds) for row in frame.rows]
