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
Keyboard input handling for traceroute-vis using the readchar library.

Traceroute output normally arrives on stdin through a pipe, so keys are
read from the controlling terminal (``/dev/tty``) instead. readchar reads
from ``sys.stdin``; KeyReader points it at the terminal for the duration
of each read.
"""

import contextlib
import sys
import termios
import threading
import tty
from typing import Any, Generator, List, Optional, TextIO

import readchar
import readchar.key

TTY_PATH = "/dev/tty"


def parse_escape_sequence(seq: str) -> Optional[str]:
    """
    Parse ANSI escape sequence to identify arrow keys.

    Args:
        seq: The escape sequence string (without the leading ESC)

    Returns:
        String identifier for arrow keys ('arrow_up', 'arrow_down', etc.)
        or None if sequence is not recognized
    """
    arrow_map = {
        "A": "arrow_up",
        "B": "arrow_down",
        "C": "arrow_right",
        "D": "arrow_left",
    }
    if not seq:
        return None
    if seq[0] in ("[", "O") and seq[-1] in arrow_map:
        return arrow_map[seq[-1]]
    return None


def map_key(key_value: str) -> str:
    """
    Map a readchar key string to a traceroute-vis key name.

    Arrow keys become 'arrow_up', 'arrow_down', 'arrow_left' or
    'arrow_right'. Every other key is returned unchanged.
    """
    key_map = {
        readchar.key.UP: "arrow_up",
        readchar.key.DOWN: "arrow_down",
        readchar.key.LEFT: "arrow_left",
        readchar.key.RIGHT: "arrow_right",
    }
    if key_value in key_map:
        return key_map[key_value]

    # readchar returns full escape sequences such as "\x1b[1;5A" for modified arrows
    if key_value and key_value[0] == "\x1b" and len(key_value) > 1:
        parsed = parse_escape_sequence(key_value[1:])
        if parsed:
            return parsed

    return key_value


# Held while sys.stdin points at the terminal stream
_STDIN_SWAP_LOCK = threading.Lock()


@contextlib.contextmanager
def stdin_redirected(stream: TextIO) -> Generator[None, None, None]:
    """
    Temporarily replace ``sys.stdin`` so readchar reads from ``stream``.

    Only the renderer thread reads keys, and only after the result channel
    has closed, which happens after the last input line has been read. The
    input stream is also passed around as an object, never looked up through
    ``sys.stdin``, so the swap cannot redirect hop input. Concurrent swaps
    are serialised.
    """
    with _STDIN_SWAP_LOCK:
        saved = sys.stdin
        sys.stdin = stream
        try:
            yield
        finally:
            sys.stdin = saved


class KeyReader:
    """Blocking key reader bound to the controlling terminal."""

    def __init__(self, tty_stream: TextIO):
        self._tty = tty_stream
        self._saved_mode: Optional[List[Any]] = None

    @classmethod
    def open(cls, path: str = TTY_PATH) -> "KeyReader":
        """
        Open the controlling terminal for key input.

        Raises:
            OSError: If the terminal cannot be opened
        """
        # pylint: disable=consider-using-with
        return cls(open(path, "r", encoding="utf-8"))

    @property
    def cbreak_active(self) -> bool:
        return self._saved_mode is not None

    def set_cbreak(self) -> None:
        """
        Switch the terminal to cbreak mode with echo off until restore_mode().

        Keys pressed while the map is drawn are then neither echoed onto the
        screen nor held back until Enter. Streams that are not terminals are
        left alone.
        """
        if self._saved_mode is not None:
            return
        try:
            fd = self._tty.fileno()
            saved = termios.tcgetattr(fd)
        except (OSError, ValueError, termios.error):
            # Not a real terminal (e.g. a pipe or test stream)
            return
        tty.setcbreak(fd)
        self._saved_mode = saved

    def restore_mode(self) -> None:
        """Restore the terminal settings saved by set_cbreak(). Safe to call twice."""
        if self._saved_mode is None:
            return
        saved, self._saved_mode = self._saved_mode, None
        termios.tcsetattr(self._tty.fileno(), termios.TCSADRAIN, saved)

    def read_key(self) -> str:
        """
        Block until a key is pressed and return its mapped name.

        Raises:
            KeyboardInterrupt: When Ctrl+C is pressed
        """
        with stdin_redirected(self._tty):
            key = readchar.readkey()
        return map_key(key)

    def close(self) -> None:
        if self._tty.closed:
            return
        try:
            self.restore_mode()
        finally:
            self._tty.close()
