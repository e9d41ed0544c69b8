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
# Review for correctness and security.

"""
Command-line interface for traceroute-vis.

This module contains the main entry point, command-line argument handling
and the lifecycle of one dashboard session: terminal acquisition, the
renderer thread, input consumption, lookup dispatch, the wait for every
lookup to settle, channel closure and shutdown.
"""

import argparse
import asyncio
import contextlib
import logging
import logging.handlers
import os
import sys
from typing import Any, Dict, Generator, List, Optional, Sequence, TextIO

import httpx

from traceroute_vis import __version__
from traceroute_vis.channel import ProducerHandle, ResultChannel
from traceroute_vis.config import load_config
from traceroute_vis.geo_lookup import DEFAULT_LOOKUP_URL, DEFAULT_TIMEOUT, GeoLookup
from traceroute_vis.hop_parser import MalformedHopLine, iter_hop_lines, parse_hop
from traceroute_vis.models import LookupStats
from traceroute_vis.ui_render import MapRenderer, TerminalError, open_terminal

logger = logging.getLogger(__name__)

# Records held back while the dashboard owns the screen
LOG_BUFFER_CAPACITY = 10000


class DeferredLogHandler(logging.handlers.MemoryHandler):
    """
    MemoryHandler that only writes when flushed explicitly.

    Once ``capacity`` records are held the oldest one is discarded for each
    new record, and the number discarded is reported on the next flush.
    """

    def __init__(self, capacity: int, target: Optional[logging.Handler] = None):
        super().__init__(capacity, flushLevel=logging.CRITICAL + 1, target=target)
        self.dropped = 0

    def shouldFlush(self, record: logging.LogRecord) -> bool:
        return False

    def emit(self, record: logging.LogRecord) -> None:
        self.acquire()
        try:
            if len(self.buffer) >= self.capacity:
                del self.buffer[0]
                self.dropped += 1
            self.buffer.append(record)
        finally:
            self.release()

    def flush(self) -> None:
        self.acquire()
        try:
            if self.dropped and self.target is not None:
                notice = logging.makeLogRecord(
                    {
                        "name": __name__,
                        "levelno": logging.WARNING,
                        "levelname": "WARNING",
                        "msg": "%d earlier log record(s) were discarded while the map was shown",
                        "args": (self.dropped,),
                    }
                )
                self.target.handle(notice)
                self.dropped = 0
            super().flush()
        finally:
            self.release()


def _configure_logging(log_level: str, log_file: Optional[str]) -> DeferredLogHandler:
    """
    Configure logging handlers for CLI execution.

    Console output is buffered in a DeferredLogHandler so it does not
    scribble over the dashboard; call ``flush()`` on the returned handler
    once the terminal has been restored. A log file, if given, is written
    directly.
    """
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter("%(message)s"))
    buffered = DeferredLogHandler(LOG_BUFFER_CAPACITY, target=console)
    handlers: List[logging.Handler] = [buffered]
    if log_file:
        handlers.insert(0, logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )
    return buffered


# Hardcoded defaults for config-overridable fields.
# Applied after config merging for any field still set to None.
_HARDCODED_DEFAULTS: Dict[str, Any] = {
    "lookup_url": DEFAULT_LOOKUP_URL,
    "timeout": DEFAULT_TIMEOUT,
    "max_concurrency": 0,
    "color": False,
    "log_level": "INFO",
}


def _apply_config_to_args(args: argparse.Namespace, config: Dict[str, Any]) -> None:
    """
    Overlay config file values onto a parsed argument namespace.

    Only fields that are still ``None`` (i.e. not explicitly set on the CLI)
    are updated.
    """
    for key, value in config.items():
        if hasattr(args, key) and getattr(args, key) is None:
            setattr(args, key, value)


@contextlib.contextmanager
def _config_warnings_to_stderr() -> Generator[None, None, None]:
    """
    Print config loader warnings on stderr while options are parsed.

    Logging is configured later from the merged options, so without this the
    warnings would only reach the package NullHandler.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter("%(message)s"))
    config_logger = logging.getLogger("traceroute_vis.config")
    config_logger.addHandler(handler)
    try:
        yield
    finally:
        config_logger.removeHandler(handler)


def handle_options(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse and validate command-line arguments."""
    parser = argparse.ArgumentParser(
        description="traceroute-vis - Plot traceroute hops on a world map in the terminal",
        epilog="Example: traceroute example.com | traceroute-vis",
    )
    parser.add_argument(
        "-f",
        "--input",
        type=str,
        default=None,
        help="Read traceroute output from a file instead of stdin",
    )
    parser.add_argument(
        "-u",
        "--lookup-url",
        type=str,
        default=None,
        help=f"Base URL of the geolocation service (default: {DEFAULT_LOOKUP_URL})",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        help=f"HTTP timeout in seconds for each lookup (default: {DEFAULT_TIMEOUT})",
    )
    parser.add_argument(
        "-j",
        "--max-concurrency",
        type=int,
        default=None,
        help="Maximum lookups in flight at once (default: 0 for unlimited)",
    )
    parser.add_argument(
        "-C",
        "--color",
        action="store_true",
        default=None,
        help="Enable colored output (white=land, yellow=hops)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level, shown after the dashboard closes (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Optional log file path for persistent logging",
    )
    parser.add_argument(
        "--no-config",
        action="store_true",
        default=False,
        help="Skip loading ~/.traceroute-vis.conf config file",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    # Load and apply config file unless --no-config was given
    if not args.no_config:
        try:
            with _config_warnings_to_stderr():
                config = load_config()
            _apply_config_to_args(args, config)
        except ValueError as exc:
            parser.error(str(exc))

    # Apply hardcoded defaults for any config-overridable field still at None
    for field, default in _HARDCODED_DEFAULTS.items():
        if getattr(args, field, None) is None:
            setattr(args, field, default)

    if args.timeout <= 0:
        parser.error("--timeout must be a positive number of seconds.")
    if args.max_concurrency < 0:
        parser.error("--max-concurrency must be zero (unlimited) or a positive integer.")
    return args


async def dispatch_lookups(
    input_stream: TextIO,
    producer: ProducerHandle,
    stats: LookupStats,
    lookup_url: str = DEFAULT_LOOKUP_URL,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    max_concurrency: int = 0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """
    Read hop lines, start one lookup per resolved hop, and wait for all of them.

    Lines are read one at a time in a worker thread so lookups already
    dispatched make progress while the next line is awaited. Each lookup
    gets its own clone of ``producer``; ``producer`` itself is left for the
    caller to release.
    """
    async with GeoLookup(
        base_url=lookup_url,
        timeout=timeout,
        max_concurrency=max_concurrency,
        stats=stats,
        transport=transport,
    ) as lookup:
        lines = iter_hop_lines(input_stream)
        while True:
            item = await asyncio.to_thread(next, lines, None)
            if item is None:
                break
            line_number, line = item
            try:
                hop = parse_hop(line, line_number)
            except MalformedHopLine as exc:
                stats.malformed += 1
                logger.warning("Skipping malformed hop %s", exc)
                continue
            if not hop.resolved:
                stats.unresolved += 1
                continue
            lookup.dispatch(hop, producer.clone())
        logger.debug("Input finished; waiting for %d pending lookup(s)", lookup.pending)
        await lookup.wait_all()


def _open_input(path: Optional[str]) -> TextIO:
    if not path:
        return sys.stdin
    # pylint: disable=consider-using-with
    return open(os.path.expanduser(path), "r", encoding="utf-8")


def run_session(args: argparse.Namespace, stats: LookupStats, input_stream: TextIO) -> int:
    """
    Run one dashboard session to completion.

    Returns:
        0 once the user has quit, 1 if the terminal could not be acquired
    """
    try:
        terminal = open_terminal()
    except TerminalError as exc:
        logger.error("Error: %s", exc)
        return 1

    channel = ResultChannel()
    producer = channel.producer()
    renderer = MapRenderer(channel, terminal, use_color=args.color)
    terminal.enter()
    try:
        renderer.start()
        try:
            asyncio.run(
                dispatch_lookups(
                    input_stream,
                    producer,
                    stats,
                    lookup_url=args.lookup_url,
                    timeout=args.timeout,
                    max_concurrency=args.max_concurrency,
                )
            )
        except KeyboardInterrupt:
            logger.warning("Interrupted; pending lookups were cancelled.")
        finally:
            producer.release()
            renderer.join()
    finally:
        terminal.close()

    if renderer.error is not None:
        logger.error("Renderer stopped unexpectedly: %r", renderer.error)
    return 0


def run(args: argparse.Namespace) -> int:
    """Run traceroute-vis with parsed arguments and return the exit status."""
    log_buffer = _configure_logging(getattr(args, "log_level", "INFO"), getattr(args, "log_file", None))
    stats = LookupStats()
    try:
        try:
            input_stream = _open_input(getattr(args, "input", None))
        except OSError as exc:
            logger.error("Error: cannot read input file: %s", exc)
            return 1
        try:
            status = run_session(args, stats, input_stream)
        finally:
            if input_stream is not sys.stdin:
                input_stream.close()
    finally:
        log_buffer.flush()

    if status == 0:
        print(stats.summary())
    return status


def main() -> None:
    """Main entrypoint for the CLI - parses arguments and runs the application."""
    args = handle_options()
    sys.exit(run(args))
