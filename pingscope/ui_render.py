#!/usr/bin/env python3
# Copyright 2025 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.

"""
PingScope UI Rendering Module

This module contains the terminal rendering for PingScope: ANSI text
utilities, the sparkline and boxplot graph builders, panel geometry, and the
renderers driven by the scheduler (a full-screen terminal renderer with one
panel per target plus a scrolling log region, and a plain line renderer).
"""

import logging
import math
import os
import re
import sys
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence, TextIO, Tuple

from pingscope.config import RunConfig
from pingscope.histogram import Histogram, cumulative_ratios
from pingscope.probe_engine import DEFAULT_PAYLOAD_SIZE
from pingscope.qos import format_qos
from pingscope.stats import Sample, TargetContext, format_rtt_line, format_transmit_line, latency_status

logger = logging.getLogger(__name__)

ANSI_RESET = "\x1b[0m"
ANSI_BOLD = "\x1b[1m"
ANSI_REVERSE = "\x1b[7m"
ANSI_ESCAPE_RE = re.compile(r"\x1b(?:\[[0-9;?]*[A-Za-z]|\([0B])")
DEC_GRAPHICS_ON = "\x1b(0"
DEC_GRAPHICS_OFF = "\x1b(B"

STATUS_COLORS = {
    "success": "\x1b[32m",  # Green
    "slow": "\x1b[33m",  # Yellow
    "fail": "\x1b[31m",  # Red
}

# Sparkline shades, lowest latency first.
HIST_SYMBOLS_UTF8 = ("▁", "▂", "▃", "▄", "▅", "▆", "▇", "█")
# DEC special graphics scan lines 9, 7, 5, 3, 1.
HIST_SYMBOLS_ACS = ("s", "r", "q", "p", "o")
# Color bands: plain foreground, and the filled variant whose background is
# the previous band so the shades read as one continuous bar.
TIER_COLORS = ("\x1b[32m", "\x1b[33m", "\x1b[31m")
TIER_HIST_COLORS = ("\x1b[32;40m", "\x1b[33;42m", "\x1b[31;43m")
ALERT_SYMBOL = "!"

BOXPLOT_SYMBOLS_UTF8 = {
    "median": "│",
    "box": " ",
    "whisker": "─",
    "whisker_left": "├",
    "whisker_right": "┤",
    "blank": " ",
}
BOXPLOT_SYMBOLS_ACS = {
    "median": "x",
    "box": " ",
    "whisker": "q",
    "whisker_left": "t",
    "whisker_right": "u",
    "blank": " ",
}

PANEL_HEIGHT = 5
PANEL_MARGIN = 2
PANEL_TITLE_OFFSET = 5
GRAPH_ROW = 3


class PanelTooNarrowError(ValueError):
    """Raised when a panel cannot hold its graph margins."""


# ============================================================================
# ANSI/Text Utility Functions
# ============================================================================


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return ANSI_ESCAPE_RE.sub("", text)


def truncate_visible(text: str, width: int) -> Tuple[str, int]:
    """
    Truncate text to a visible width, preserving ANSI codes.

    Returns:
        Tuple of (truncated_text, visible_count)
    """
    result = []
    visible_count = 0
    index = 0
    while index < len(text) and visible_count < width:
        if text[index] == "\x1b":
            match = ANSI_ESCAPE_RE.match(text, index)
            if match:
                result.append(match.group(0))
                index = match.end()
                continue
        result.append(text[index])
        index += 1
        visible_count += 1
    truncated = "".join(result)
    if "\x1b[" in truncated and not truncated.endswith(ANSI_RESET):
        truncated += ANSI_RESET
    return truncated, visible_count


def colorize_text(text: str, status: Optional[str], use_color: bool) -> str:
    """Apply color to text based on status."""
    if not use_color or not status:
        return text
    color = STATUS_COLORS.get(status)
    if not color:
        return text
    return f"{color}{text}{ANSI_RESET}"


def dec_graphics(char: str) -> str:
    """Wrap a character so it is drawn from the DEC special graphics set."""
    if char == " ":
        return char
    return f"{DEC_GRAPHICS_ON}{char}{DEC_GRAPHICS_OFF}"


# ============================================================================
# Sparkline Graph
# ============================================================================


def sparkline_slot(sequence: int, usable_width: int, margin: int = PANEL_MARGIN) -> int:
    """Column of the graph cell for a sequence number; the row wraps around."""
    if usable_width <= 0:
        raise PanelTooNarrowError("Panel is too narrow to hold the graph margins.")
    return ((sequence - 1) % usable_width) + margin


def sparkline_intensity(latency_ms: float, interval_seconds: float, levels: int, tiers: int) -> Tuple[int, int]:
    """
    Map a latency onto a (glyph index, color tier index) pair.

    The latency is expressed as a ratio of the probe interval (capped at 1)
    and spread over ``levels * tiers`` steps.
    """
    ratio = (latency_ms * 0.001) / interval_seconds
    if ratio > 1.0:
        ratio = 1.0
    steps = levels * tiers
    intensity = int(math.floor(ratio * steps))
    intensity = max(0, min(intensity, steps - 1))
    return intensity % levels, intensity // levels


def sparkline_cell(latency_ms: Optional[float], interval_seconds: float, use_utf8: bool, use_color: bool) -> str:
    """Build the graph cell for one probe outcome."""
    if latency_ms is None:
        attr = ANSI_BOLD + (STATUS_COLORS["fail"] if use_color else "")
        return f"{attr}{ALERT_SYMBOL}{ANSI_RESET}"

    symbols = HIST_SYMBOLS_UTF8 if use_utf8 else HIST_SYMBOLS_ACS
    tiers = len(TIER_COLORS) if use_color else 1
    glyph_index, tier_index = sparkline_intensity(latency_ms, interval_seconds, len(symbols), tiers)

    glyph = symbols[glyph_index]
    if not use_utf8:
        glyph = dec_graphics(glyph)
    if not use_color:
        return glyph
    color = TIER_HIST_COLORS[tier_index] if use_utf8 else TIER_COLORS[tier_index]
    return f"{color}{glyph}{ANSI_RESET}"


# ============================================================================
# Boxplot Graph
# ============================================================================


def classify_boxplot(ratios: Sequence[float]) -> List[Tuple[str, bool]]:
    """
    Classify each column of a cumulative distribution for the boxplot.

    Args:
        ratios: Cumulative ratio per column (NaN when there is no data)

    Returns:
        List of (symbol kind, reverse video) per column
    """
    # Comparisons with NaN are false, so an empty distribution stays blank.
    cells: List[Tuple[str, bool]] = []
    for x, ratio in enumerate(ratios):
        if x == 0:
            if ratio >= 0.5:
                cells.append(("median", True))
            elif ratio > 0.25:
                cells.append(("box", True))
            elif ratio > 0.025:
                cells.append(("whisker", False))
            else:
                cells.append(("blank", False))
            continue

        previous = ratios[x - 1]
        if previous < 0.5 <= ratio:
            cells.append(("median", True))
        elif 0.25 <= ratio <= 0.75 or (previous < 0.75 < ratio):
            cells.append(("box", True))
        elif 0.025 <= ratio < 0.5:
            cells.append(("whisker_left" if previous < 0.025 else "whisker", False))
        elif 0.5 < ratio < 0.975:
            cells.append(("whisker", False))
        elif ratio >= 0.975 and previous < 0.975:
            cells.append(("whisker_right", False))
        else:
            cells.append(("blank", False))
    return cells


def boxplot_cells(histogram: Histogram, width: int, use_utf8: bool) -> List[str]:
    """Build the boxplot graph cells for a histogram squeezed into ``width`` columns."""
    if width <= 0:
        raise PanelTooNarrowError("Panel is too narrow to hold the graph margins.")
    ratios = cumulative_ratios(histogram.downsample(width))
    symbols = BOXPLOT_SYMBOLS_UTF8 if use_utf8 else BOXPLOT_SYMBOLS_ACS
    cells = []
    for kind, reverse in classify_boxplot(ratios):
        glyph = symbols[kind]
        if not use_utf8:
            glyph = dec_graphics(glyph)
        cells.append(f"{ANSI_REVERSE}{glyph}{ANSI_RESET}" if reverse else glyph)
    return cells


# ============================================================================
# Layout/Geometry Functions
# ============================================================================


def get_terminal_size(fallback: Tuple[int, int] = (80, 24)) -> os.terminal_size:
    """
    Get the terminal size by directly querying the terminal.

    os.get_terminal_size() queries the actual terminal instead of checking
    COLUMNS/LINES first (like shutil does), so the size follows resizes.

    Args:
        fallback: Tuple of (columns, lines) to use if terminal size
                  cannot be determined

    Returns:
        os.terminal_size with columns and lines attributes
    """
    for stream in (sys.stdout, sys.stderr, sys.stdin):
        try:
            if stream.isatty():
                return os.get_terminal_size(stream.fileno())
        except (AttributeError, ValueError, OSError):
            continue
    return os.terminal_size(fallback)


def compute_log_height(term_lines: int, target_count: int) -> int:
    """Rows left for the scrolling log region above the panels."""
    return max(0, term_lines - (PANEL_HEIGHT * target_count))


def compute_panel_top(index: int, log_height: int) -> int:
    """First screen row (0-based) of the panel at ``index``."""
    return log_height + (PANEL_HEIGHT * index)


class Panel:
    """
    Fixed-height bordered screen region showing one target.

    Rows: 0 title border, 1 transmit line, 2 rtt line, 3 graph, 4 bottom border.
    Every cell holds one visible character plus its attributes.
    """

    def __init__(self, top: int, width: int, use_utf8: bool = True) -> None:
        self.top = top
        self.width = width
        self.use_utf8 = use_utf8
        self.cells: List[List[str]] = [[" "] * width for _ in range(PANEL_HEIGHT)]
        self._draw_border()

    @property
    def usable_width(self) -> int:
        """Graph columns available between the margins."""
        return self.width - (2 * PANEL_MARGIN)

    def _draw_border(self) -> None:
        if self.width < 2:
            return
        if self.use_utf8:
            horizontal, vertical, corners = "─", "│", ("┌", "┐", "└", "┘")
        else:
            horizontal, vertical, corners = "-", "|", ("+", "+", "+", "+")
        last = self.width - 1
        for x in range(1, last):
            self.cells[0][x] = horizontal
            self.cells[PANEL_HEIGHT - 1][x] = horizontal
        for y in range(1, PANEL_HEIGHT - 1):
            self.cells[y][0] = vertical
            self.cells[y][last] = vertical
        self.cells[0][0], self.cells[0][last] = corners[0], corners[1]
        self.cells[PANEL_HEIGHT - 1][0], self.cells[PANEL_HEIGHT - 1][last] = corners[2], corners[3]

    def put_text(self, row: int, x: int, text: str, attr: str = "") -> int:
        """
        Write text inside the border, clipping at the right edge.

        Returns:
            Column following the last written character
        """
        column = x
        for char in text:
            if column >= self.width - 1:
                break
            self.cells[row][column] = f"{attr}{char}{ANSI_RESET}" if attr else char
            column += 1
        return column

    def clear_row(self, row: int) -> None:
        """Blank the inside of a content row."""
        for x in range(1, self.width - 1):
            self.cells[row][x] = " "

    def put_graph_cell(self, x: int, cell: str) -> None:
        if 0 < x < self.width - 1:
            self.cells[GRAPH_ROW][x] = cell

    def set_title(self, name: str) -> None:
        column = self.put_text(0, PANEL_TITLE_OFFSET, f" {name} ", ANSI_BOLD)
        self.put_text(0, column, "ping statistics ")

    def render_lines(self) -> List[str]:
        return ["".join(row) for row in self.cells]


def draw_sparkline(
    panel: Panel,
    latency_ms: Optional[float],
    sequence: int,
    interval_seconds: float,
    use_utf8: bool,
    use_color: bool,
) -> int:
    """
    Place one sparkline glyph for ``sequence`` and blank the following slot.

    Returns:
        The column written

    Raises:
        PanelTooNarrowError: If the panel has no room between its margins
    """
    x = sparkline_slot(sequence, panel.usable_width)
    panel.put_graph_cell(x, sparkline_cell(latency_ms, interval_seconds, use_utf8, use_color))
    if x + 1 <= panel.width - PANEL_MARGIN:
        panel.put_graph_cell(x + 1, " ")
    return x


def draw_boxplot(panel: Panel, histogram: Histogram, use_utf8: bool) -> None:
    """Redraw the whole graph row as a boxplot of the histogram."""
    for offset, cell in enumerate(boxplot_cells(histogram, panel.usable_width, use_utf8)):
        panel.put_graph_cell(offset + PANEL_MARGIN, cell)


# ============================================================================
# Reply lines
# ============================================================================


def format_reply_line(context: TargetContext, sample: Sample, send_qos: int = 0, use_color: bool = False) -> str:
    """Build the log line describing one probe outcome."""
    if sample.timed_out:
        timeout = "timeout"
        if use_color:
            timeout = f"{ANSI_BOLD}{STATUS_COLORS['fail']}timeout{ANSI_RESET}"
        return f"echo reply from {context.name} ({context.address}): icmp_seq={sample.sequence} {timeout}"

    ttl = sample.ttl if sample.ttl is not None else -1
    recv_qos = sample.qos or 0
    line = (
        f"{sample.payload_len} bytes from {context.name} ({context.address}): "
        f"icmp_seq={sample.sequence} ttl={ttl} "
    )
    if recv_qos != 0 or send_qos != 0:
        line += f"qos={format_qos(recv_qos)} "
    time_text = f"{sample.latency_ms:.2f}"
    if use_color:
        time_text = colorize_text(time_text, latency_status(sample.latency_ms, context.stats), use_color)
    return f"{line}time={time_text} ms"


# ============================================================================
# Renderers
# ============================================================================


class LogRegionHandler(logging.Handler):
    """Logging handler that writes records into a renderer's log region."""

    def __init__(self, renderer: "PlainRenderer", level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.renderer = renderer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except Exception:  # pylint: disable=broad-exception-caught
            self.handleError(record)
            return
        for line in message.splitlines() or [""]:
            self.renderer.log(line)


class PlainRenderer:
    """Line-oriented renderer used when the output is not a terminal."""

    def __init__(self, config: RunConfig, stream: Optional[TextIO] = None) -> None:
        self.config = config
        self.stream = stream if stream is not None else sys.stdout
        self.contexts: List[TargetContext] = []

    def start(self, contexts: Sequence[TargetContext], payload_size: int = DEFAULT_PAYLOAD_SIZE) -> None:
        self.contexts = list(contexts)
        for context in self.contexts:
            self.stream.write(f"PING {context.name} ({context.address}) {payload_size} bytes of data.\n")
        self.stream.flush()

    def draw(self, context: TargetContext, sample: Sample) -> None:
        self.log(format_reply_line(context, sample, self.config.qos, use_color=False))

    def log(self, line: str) -> None:
        self.stream.write(f"{line}\n")

    def poll_resize(self) -> bool:
        return False

    def request_resize(self) -> None:
        """Plain output has no geometry to recompute."""

    def finish(self) -> None:
        self.stream.flush()


class TerminalRenderer(PlainRenderer):
    """
    Full-screen renderer: a scrolling log region on top, one panel per target below.

    The renderer owns every panel and the screen cache. Panels are recreated
    (empty) when the terminal is resized; the target statistics are left alone.
    """

    def __init__(
        self,
        config: RunConfig,
        stream: Optional[TextIO] = None,
        size_provider=None,
    ) -> None:
        super().__init__(config, stream)
        self._size_provider = size_provider if size_provider is not None else get_terminal_size
        self.columns = 0
        self.lines = 0
        self.log_height = 0
        self.log_lines: Deque[str] = deque(maxlen=1)
        self.active = False
        self._resize_requested = False
        self._last_frame: Dict[int, str] = {}

    def start(self, contexts: Sequence[TargetContext], payload_size: int = DEFAULT_PAYLOAD_SIZE) -> None:
        self.contexts = list(contexts)
        self.stream.write("\x1b[?25l\x1b[2J\x1b[H")
        self.active = True
        self._layout()
        self._flush()

    def _layout(self) -> None:
        """Derive the log region and panel geometry from the terminal size."""
        size = self._size_provider()
        self.columns = max(1, int(size.columns))
        self.lines = max(1, int(size.lines))
        self.log_height = compute_log_height(self.lines, len(self.contexts))
        self.log_lines = deque(self.log_lines, maxlen=max(1, self.log_height))
        for context in self.contexts:
            context.panel = Panel(
                top=compute_panel_top(context.index, self.log_height),
                width=self.columns,
                use_utf8=self.config.use_utf8,
            )
            context.panel.set_title(context.name)
            self._draw_stats(context)
        self._last_frame = {}
        logger.debug("Layout: %dx%d, log region %d row(s).", self.columns, self.lines, self.log_height)

    def request_resize(self) -> None:
        """Flag a resize; it is handled by the next poll_resize call."""
        self._resize_requested = True

    def poll_resize(self) -> bool:
        """
        Handle a pending resize, if any.

        Returns:
            True when the layout was recomputed
        """
        if not self.active:
            return False
        size = self._size_provider()
        changed = (int(size.columns), int(size.lines)) != (self.columns, self.lines)
        if not (changed or self._resize_requested):
            return False
        self._resize_requested = False
        self.on_resize()
        return True

    def on_resize(self) -> None:
        """Recompute the layout, recreate every panel and repaint the screen."""
        self._layout()
        self.stream.write("\x1b[2J")
        self._flush()

    def _draw_stats(self, context: TargetContext) -> None:
        panel = context.panel
        panel.clear_row(1)
        panel.clear_row(2)
        panel.put_text(1, PANEL_MARGIN, format_transmit_line(context.stats))
        rtt_line = format_rtt_line(context.stats, self.config.percentile)
        if rtt_line is not None:
            panel.put_text(2, PANEL_MARGIN, rtt_line)

    def _draw_graph(self, context: TargetContext, sample: Sample) -> None:
        if self.config.graph_mode == "boxplot":
            if context.stats.histogram is not None:
                draw_boxplot(context.panel, context.stats.histogram, self.config.use_utf8)
            return
        draw_sparkline(
            context.panel,
            sample.latency_ms,
            sample.sequence,
            self.config.interval,
            self.config.use_utf8,
            self.config.use_color,
        )

    def draw(self, context: TargetContext, sample: Sample) -> None:
        """Log the reply and refresh the panel of ``context``."""
        self.log(format_reply_line(context, sample, self.config.qos, self.config.use_color), flush=False)
        if context.panel is None:
            self._layout()
        self._draw_stats(context)
        try:
            self._draw_graph(context, sample)
        except PanelTooNarrowError as exc:
            logger.warning("%s: graph not updated: %s", context.name, exc)
        self._flush()

    def log(self, line: str, flush: bool = True) -> None:
        self.log_lines.append(line)
        if flush and self.active:
            self._flush()

    def build_frame(self) -> Dict[int, str]:
        """Compose the screen rows (0-based row -> text)."""
        frame: Dict[int, str] = {}
        if self.log_height > 0:
            history = list(self.log_lines)[-self.log_height :]
            first_row = self.log_height - len(history)
            for row in range(self.log_height):
                frame[row] = ""
            for offset, line in enumerate(history):
                frame[first_row + offset] = truncate_visible(line, self.columns)[0]
        for context in self.contexts:
            if context.panel is None:
                continue
            for offset, line in enumerate(context.panel.render_lines()):
                frame[context.panel.top + offset] = line
        return frame

    def _flush(self) -> None:
        if not self.active:
            return
        frame = self.build_frame()
        output_chunks = []
        for row in sorted(frame):
            if row >= self.lines:
                continue
            line = frame[row]
            if self._last_frame.get(row) == line:
                continue
            output_chunks.append(f"\x1b[{row + 1};1H\x1b[2K{line}{ANSI_RESET}")
        if output_chunks:
            self.stream.write("".join(output_chunks))
            self.stream.flush()
        self._last_frame = frame

    def finish(self) -> None:
        """Leave the cursor below the panels and restore its visibility."""
        if not self.active:
            return
        self.active = False
        self.stream.write(f"\x1b[{self.lines};1H{ANSI_RESET}\x1b[?25h\n")
        self.stream.flush()
