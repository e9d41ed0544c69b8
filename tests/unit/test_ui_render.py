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
Unit tests for traceroute_vis.ui_render.

Covers frame layout, diff-based terminal writes, terminal acquisition
errors, and the renderer thread: initial empty draw, one full redraw per
record, monotonic point sets, and quit handling only after the channel
has closed.
"""

import io
import os
import sys
import threading
import time
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from tests.support import FakeKeyReader, FakeTerminal  # noqa: E402
from traceroute_vis.channel import ResultChannel  # noqa: E402
from traceroute_vis.models import GeoRecord  # noqa: E402
from traceroute_vis.ui_render import (  # noqa: E402
    DEFAULT_TITLE,
    ENTER_ALT_SCREEN,
    LEAVE_ALT_SCREEN,
    MapRenderer,
    Terminal,
    TerminalError,
    box_lines,
    build_frame,
    build_status_line,
    open_terminal,
    pad_lines,
    title_border,
)

SAN_FRANCISCO = GeoRecord(ip="8.8.8.8", latitude=37.4, longitude=-122.1, country="US")
SYDNEY = GeoRecord(ip="1.1.1.1", latitude=-33.9, longitude=151.2, city="Sydney", country="AU")


class TestLayout(unittest.TestCase):
    """Test frame building helpers."""

    def test_pad_lines(self):
        self.assertEqual(pad_lines(["ab", "abcdef"], 4, 3), ["ab  ", "abcd", "    "])

    def test_title_border(self):
        self.assertEqual(title_border("map", 10), "+- map ----+")
        self.assertEqual(len(title_border("map", 10)), 12)

    def test_title_border_too_narrow(self):
        self.assertEqual(title_border("a long title", 5), "+-----+")

    def test_box_lines(self):
        boxed = box_lines(["ab", "cd"], 4, 5, title="")
        self.assertEqual(boxed, ["+--+", "|ab|", "|cd|", "|  |", "+--+"])

    def test_status_line_while_resolving(self):
        self.assertEqual(build_status_line(0, False), "Points: 0 | Resolving...")

    def test_status_line_done(self):
        line = build_status_line(2, True, SYDNEY)
        self.assertEqual(line, "Points: 2 | Done - press q to quit | Last: 1.1.1.1 (Sydney, AU)")

    def test_frame_size(self):
        frame = build_frame([SAN_FRANCISCO], 60, 20)
        self.assertEqual(len(frame), 20)
        self.assertTrue(all(len(line) == 60 for line in frame))
        self.assertIn(DEFAULT_TITLE, frame[0])
        self.assertTrue(frame[-1].startswith("Points: 1"))

    def test_frame_contains_points(self):
        frame = build_frame([SAN_FRANCISCO, SYDNEY], 80, 30)
        self.assertEqual("".join(frame[1:-2]).count("x"), 2)

    def test_tiny_terminal(self):
        self.assertEqual(build_frame([], 10, 2), ["Points: 0 ", "          "])
        self.assertEqual(build_frame([], 0, 0), [])


class TestTerminal(unittest.TestCase):
    """Test terminal writes against an in-memory stream."""

    def setUp(self):
        self.output = io.StringIO()
        self.key_reader = FakeKeyReader()
        self.terminal = Terminal(self.output, self.key_reader)

    def test_enter_and_leave(self):
        self.terminal.enter()
        self.assertIn(ENTER_ALT_SCREEN, self.output.getvalue())
        self.terminal.leave()
        self.terminal.leave()
        self.assertEqual(self.output.getvalue().count(LEAVE_ALT_SCREEN), 1)

    def test_key_echo_off_while_active(self):
        self.assertFalse(self.key_reader.cbreak)
        self.terminal.enter()
        self.assertTrue(self.key_reader.cbreak)
        self.terminal.leave()
        self.assertFalse(self.key_reader.cbreak)

    def test_leave_without_enter_writes_nothing(self):
        self.terminal.leave()
        self.assertEqual(self.output.getvalue(), "")

    def test_first_write_is_full(self):
        self.terminal.write_lines(["one", "two"])
        text = self.output.getvalue()
        self.assertIn("\x1b[1;1H\x1b[2Kone", text)
        self.assertIn("\x1b[2;1H\x1b[2Ktwo", text)

    def test_only_changed_lines_rewritten(self):
        self.terminal.write_lines(["one", "two"])
        self.output.truncate(0)
        self.output.seek(0)
        self.terminal.write_lines(["one", "TWO"])
        text = self.output.getvalue()
        self.assertNotIn("one", text)
        self.assertIn("\x1b[2;1H\x1b[2KTWO", text)

    def test_unchanged_frame_writes_nothing(self):
        self.terminal.write_lines(["same"])
        self.output.truncate(0)
        self.output.seek(0)
        self.terminal.write_lines(["same"])
        self.assertEqual(self.output.getvalue(), "")

    def test_close_restores_and_closes_keys(self):
        self.terminal.enter()
        self.terminal.close()
        self.assertFalse(self.terminal.active)
        self.assertTrue(self.key_reader.closed)

    def test_size_falls_back_when_not_a_tty(self):
        size = self.terminal.size()
        self.assertEqual((size.columns, size.lines), (80, 24))


class TestOpenTerminal(unittest.TestCase):
    def test_output_not_a_tty(self):
        with self.assertRaises(TerminalError):
            open_terminal(io.StringIO())

    def test_keyboard_unavailable(self):
        output = MagicMock()
        output.isatty.return_value = True
        with patch("traceroute_vis.ui_render.KeyReader.open", side_effect=OSError("No such device")):
            with self.assertRaises(TerminalError) as ctx:
                open_terminal(output, tty_path="/dev/missing")
        self.assertIn("/dev/missing", str(ctx.exception))

    def test_success(self):
        output = MagicMock()
        output.isatty.return_value = True
        reader = FakeKeyReader()
        with patch("traceroute_vis.ui_render.KeyReader.open", return_value=reader):
            terminal = open_terminal(output)
        self.assertIs(terminal.key_reader, reader)
        self.assertIs(terminal.output, output)


class RecordingRenderer(MapRenderer):
    """MapRenderer that keeps the point set seen by every redraw."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.snapshots = []

    def draw(self):
        self.snapshots.append(tuple(self.points))
        super().draw()


class TestMapRenderer(unittest.TestCase):
    """Test the renderer thread against a fake terminal."""

    def setUp(self):
        self.channel = ResultChannel()
        self.keeper = self.channel.producer()

    def _send(self, record):
        with self.keeper.clone() as producer:
            producer.send(record)

    def _wait_for(self, predicate, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return False

    def test_empty_map_drawn_immediately(self):
        terminal = FakeTerminal(keys=["q"])
        renderer = MapRenderer(self.channel, terminal)
        renderer.start()
        self.assertTrue(self._wait_for(lambda: len(terminal.frames) >= 1))
        self.assertNotIn("x", "".join(terminal.frames[0][1:-1]))
        self.keeper.release()
        renderer.join(timeout=5)

    def test_redraw_after_every_record(self):
        terminal = FakeTerminal(keys=["q"])
        renderer = RecordingRenderer(self.channel, terminal)
        renderer.start()
        self._send(SAN_FRANCISCO)
        self._send(SYDNEY)
        self.keeper.release()
        renderer.join(timeout=5)
        # initial draw, one per record, final "done" draw
        self.assertEqual(renderer.redraw_count, 4)
        self.assertEqual(renderer.points, [SAN_FRANCISCO, SYDNEY])
        self.assertIn("Done", terminal.frames[-1][-1])

    def test_redraws_are_monotonic(self):
        terminal = FakeTerminal(keys=["q"])
        renderer = RecordingRenderer(self.channel, terminal)
        renderer.start()
        for index in range(8):
            self._send(GeoRecord(ip=f"10.0.0.{index}", latitude=index * 5.0, longitude=index * 10.0))
        self.keeper.release()
        renderer.join(timeout=5)
        for previous, current in zip(renderer.snapshots, renderer.snapshots[1:]):
            self.assertTrue(set(previous) <= set(current))
            self.assertEqual(current[: len(previous)], previous)

    def test_quit_key_ignored_until_channel_closes(self):
        terminal = FakeTerminal(keys=["q"])
        reads_while_open = []
        terminal.on_read = lambda: reads_while_open.append(not self.channel.closed)
        renderer = MapRenderer(self.channel, terminal)
        thread = renderer.start()
        self._send(SAN_FRANCISCO)
        self.assertTrue(self._wait_for(lambda: len(renderer.points) == 1))
        time.sleep(0.1)
        self.assertTrue(thread.is_alive())
        self.assertEqual(terminal.key_reader.reads, [])

        self.keeper.release()
        renderer.join(timeout=5)
        self.assertFalse(thread.is_alive())
        self.assertEqual(terminal.key_reader.reads, ["q"])
        self.assertEqual(reads_while_open, [False])

    def test_arrow_key_ignored_then_quit(self):
        terminal = FakeTerminal(keys=["arrow_right", "x", "q"])
        renderer = MapRenderer(self.channel, terminal)
        self.keeper.release()
        renderer.run()
        self.assertEqual(terminal.key_reader.reads, ["arrow_right", "x", "q"])

    def test_renderer_waits_for_quit_key(self):
        terminal = FakeTerminal()
        renderer = MapRenderer(self.channel, terminal)
        thread = renderer.start()
        self.keeper.release()
        time.sleep(0.1)
        self.assertTrue(thread.is_alive())
        terminal.key_reader.keys.put("Q")
        renderer.join(timeout=5)
        self.assertFalse(thread.is_alive())

    def test_keyboard_interrupt_quits(self):
        terminal = FakeTerminal()
        terminal.read_key = MagicMock(side_effect=KeyboardInterrupt)
        renderer = MapRenderer(self.channel, terminal)
        self.keeper.release()
        renderer.run()
        self.assertIsNone(renderer.error)

    def test_closed_keyboard_quits(self):
        terminal = FakeTerminal(keys=[""])
        renderer = MapRenderer(self.channel, terminal)
        self.keeper.release()
        renderer.run()
        self.assertEqual(terminal.key_reader.reads, [""])

    def test_draw_failure_is_recorded(self):
        terminal = FakeTerminal()
        terminal.write_lines = MagicMock(side_effect=OSError("broken pipe"))
        renderer = MapRenderer(self.channel, terminal)
        renderer.run()
        self.assertIsInstance(renderer.error, OSError)

    def test_custom_quit_keys(self):
        terminal = FakeTerminal(keys=["q", "\x1b"])
        renderer = MapRenderer(self.channel, terminal, quit_keys=("\x1b",))
        self.keeper.release()
        done = threading.Event()

        def run():
            renderer.run()
            done.set()

        threading.Thread(target=run).start()
        self.assertTrue(done.wait(timeout=5))
        self.assertEqual(terminal.key_reader.reads, ["q", "\x1b"])


if __name__ == "__main__":
    unittest.main()
