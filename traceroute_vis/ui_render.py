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
traceroute-vis UI Rendering Module

This module owns the terminal: alternate-screen handling, frame layout,
diff-based line output, and the renderer thread that consumes the result
channel and redraws the world map after every new point.

Only the renderer thread writes to the terminal or reads keys once the
dashboard has started.
"""

import logging
import os
import sys
import threading
from typing import List, Optional, Sequence, TextIO, Tuple

from traceroute_vis.channel import ResultChannel
from traceroute_vis.input_keys import TTY_PATH, KeyReader
from traceroute_vis.models import GeoRecord
from traceroute_vis.world_map import render_map

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "traceroute-vis"
QUIT_KEYS = ("q", "Q")
STATUS_SEPARATOR = " | "

ENTER_ALT_SCREEN = "\x1b[?1049h"
LEAVE_ALT_SCREEN = "\x1b[?1049l"
HIDE_CURSOR = "\x1b[?25l"
SHOW_CURSOR = "\x1b[?25h"
CLEAR_SCREEN = "\x1b[2J\x1b[H"


class TerminalError(OSError):
    """Raised when exclusive terminal access cannot be obtained."""


# ============================================================================
# Layout Functions
# ============================================================================


def get_terminal_size(stream: Optional[TextIO] = None, fallback: Tuple[int, int] = (80, 24)) -> os.terminal_size:
    """
    Get the terminal size by directly querying the terminal.

    Uses os.get_terminal_size() on the given stream (stdout by default)
    rather than COLUMNS/LINES, so the size follows terminal resizes.

    Args:
        stream: Stream attached to the terminal
        fallback: Tuple of (columns, lines) to use if terminal size
                  cannot be determined

    Returns:
        os.terminal_size with columns and lines attributes
    """
    if stream is None:
        stream = sys.stdout
    try:
        if stream.isatty():
            return os.get_terminal_size(stream.fileno())
    except (AttributeError, ValueError, OSError):
        pass
    return os.terminal_size(fallback)


def pad_lines(lines: Sequence[str], width: int, height: int) -> List[str]:
    """Pad lines to fill the specified width and height."""
    padded = [line[:width].ljust(width) for line in lines[:height]]
    while len(padded) < height:
        padded.append("".ljust(width))
    return padded


def title_border(title: str, inner_width: int) -> str:
    """Top border of a box with the title embedded after the corner."""
    label = f" {title} " if title else ""
    if len(label) + 1 > inner_width:
        return f"+{'-' * inner_width}+"
    return f"+-{label}{'-' * (inner_width - len(label) - 1)}+"


def box_lines(lines: Sequence[str], width: int, height: int, title: str = "") -> List[str]:
    """
    Draw a titled box around lines that are already ``width - 2`` wide.

    Inner lines are not padded so ANSI-coloured map rows keep their codes.
    """
    if width < 3 or height < 3:
        return pad_lines(lines, width, height)
    inner_width = width - 2
    inner_height = height - 2
    inner = list(lines[:inner_height])
    while len(inner) < inner_height:
        inner.append(" " * inner_width)
    boxed = [title_border(title, inner_width)]
    boxed.extend(f"|{line}|" for line in inner)
    boxed.append(f"+{'-' * inner_width}+")
    return boxed


def build_status_line(point_count: int, done: bool, last_point: Optional[GeoRecord] = None) -> str:
    """Status line shown under the map."""
    parts = [f"Points: {point_count}", f"Done - press {QUIT_KEYS[0]} to quit" if done else "Resolving..."]
    if last_point is not None:
        parts.append(f"Last: {last_point.ip} ({last_point.label()})")
    return STATUS_SEPARATOR.join(parts)


def build_frame(
    points: Sequence[GeoRecord],
    width: int,
    height: int,
    done: bool = False,
    use_color: bool = False,
    title: str = DEFAULT_TITLE,
) -> List[str]:
    """
    Build every line of one dashboard frame.

    The frame is the boxed world map with all points plotted, followed by
    a single status line.
    """
    if width <= 0 or height <= 0:
        return []
    status = build_status_line(len(points), done, points[-1] if points else None)[:width]
    if width < 3 or height < 4:
        return pad_lines([status], width, height)
    map_lines = render_map(points, width - 2, height - 3, use_color=use_color)
    return box_lines(map_lines, width, height - 1, title=title) + [status.ljust(width)]


# ============================================================================
# Terminal
# ============================================================================


class Terminal:
    """Full-screen output surface plus keyboard input."""

    def __init__(self, output: TextIO, key_reader: KeyReader):
        self.output = output
        self.key_reader = key_reader
        self.last_lines: Optional[List[str]] = None
        self.last_size: Optional[os.terminal_size] = None
        self.active = False

    def size(self) -> os.terminal_size:
        return get_terminal_size(self.output)

    def enter(self) -> None:
        """Switch to the alternate screen, hide the cursor and stop key echo."""
        self.key_reader.set_cbreak()
        self.output.write(ENTER_ALT_SCREEN + HIDE_CURSOR + CLEAR_SCREEN)
        self.output.flush()
        self.active = True

    def leave(self) -> None:
        """Restore the cursor, the primary screen and the terminal mode. Safe to call twice."""
        if not self.active:
            return
        self.key_reader.restore_mode()
        self.output.write(SHOW_CURSOR + LEAVE_ALT_SCREEN)
        self.output.flush()
        self.active = False

    def write_lines(self, lines: Sequence[str]) -> None:
        """Write a frame, rewriting only the lines that changed."""
        size = self.size()
        if self.last_lines is None or size != self.last_size:
            output_chunks = [CLEAR_SCREEN]
            for index, line in enumerate(lines):
                output_chunks.append(f"\x1b[{index + 1};1H\x1b[2K{line}")
            self.output.write("".join(output_chunks))
            self.output.flush()
            self.last_lines = list(lines)
            self.last_size = size
            return

        max_lines = max(len(self.last_lines), len(lines))
        output_chunks = []
        for index in range(max_lines):
            previous_line = self.last_lines[index] if index < len(self.last_lines) else None
            current_line = lines[index] if index < len(lines) else ""
            if previous_line == current_line and index < len(lines):
                continue
            output_chunks.append(f"\x1b[{index + 1};1H\x1b[2K{current_line}")

        if output_chunks:
            self.output.write("".join(output_chunks))
            self.output.flush()
        self.last_lines = list(lines)

    def read_key(self) -> str:
        return self.key_reader.read_key()

    def close(self) -> None:
        self.leave()
        self.key_reader.close()


def open_terminal(output: Optional[TextIO] = None, tty_path: str = TTY_PATH) -> Terminal:
    """
    Acquire the terminal for the dashboard.

    Args:
        output: Stream the dashboard is drawn on (stdout by default)
        tty_path: Controlling terminal used for key input

    Returns:
        Terminal ready for ``enter()``

    Raises:
        TerminalError: If output is not a terminal or keys cannot be read
    """
    if output is None:
        output = sys.stdout
    try:
        is_tty = output.isatty()
    except (AttributeError, ValueError):
        is_tty = False
    if not is_tty:
        raise TerminalError("Output is not a terminal; the map dashboard needs an interactive terminal.")
    try:
        key_reader = KeyReader.open(tty_path)
    except OSError as exc:
        raise TerminalError(f"Cannot open {tty_path} for keyboard input: {exc}") from exc
    return Terminal(output, key_reader)


# ============================================================================
# Renderer Thread
# ============================================================================


class MapRenderer:
    """
    Renderer loop run on a dedicated thread.

    Draws an empty map at once, redraws the whole map after every record
    received from the channel, and once the channel has closed blocks on
    the keyboard until a quit key is pressed. Keys are not read while the
    channel is open, so quitting is only possible after every lookup has
    settled.
    """

    def __init__(
        self,
        channel: ResultChannel,
        terminal: Terminal,
        use_color: bool = False,
        quit_keys: Sequence[str] = QUIT_KEYS,
        title: str = DEFAULT_TITLE,
    ):
        self.channel = channel
        self.terminal = terminal
        self.use_color = use_color
        self.quit_keys = tuple(quit_keys)
        self.title = title
        self.points: List[GeoRecord] = []
        self.done = False
        self.redraw_count = 0
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def draw(self) -> None:
        size = self.terminal.size()
        lines = build_frame(self.points, size.columns, size.lines, self.done, self.use_color, self.title)
        self.terminal.write_lines(lines)
        self.redraw_count += 1

    def wait_for_quit(self) -> None:
        """Block on the keyboard until a quit key arrives; ignore anything else."""
        while True:
            try:
                key = self.terminal.read_key()
            except KeyboardInterrupt:
                return
            if not key:
                logger.debug("Keyboard input closed; leaving the dashboard")
                return
            if key in self.quit_keys:
                return
            logger.debug("Ignoring key %r", key)

    def run(self) -> None:
        try:
            self.draw()
            for record in self.channel:
                self.points.append(record)
                self.draw()
            self.done = True
            self.draw()
            self.wait_for_quit()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self.error = exc

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name="map-renderer")
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
