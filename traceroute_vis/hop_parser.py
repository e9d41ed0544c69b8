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
Traceroute output parsing for traceroute-vis.

Pure functions that turn raw traceroute lines into ParsedHop values.
They can be unit-tested without any terminal or network I/O.

Expected line shape (classic ``traceroute`` output)::

    traceroute to example.com (93.184.216.34), 30 hops max, 60 byte packets
     1  router.lan (192.168.1.1)  0.512 ms  0.471 ms  0.455 ms
     2  * * *
"""

from typing import Iterator, TextIO, Tuple

from traceroute_vis.models import ParsedHop

UNRESOLVED_TOKEN = "*"


class MalformedHopLine(ValueError):
    """Raised when a hop line does not contain an address token."""

    def __init__(self, line_number: int, line: str, reason: str):
        super().__init__(f"line {line_number}: {reason}: {line.strip()!r}")
        self.line_number = line_number
        self.line = line


def parse_hop(line: str, line_number: int = 0) -> ParsedHop:
    """
    Parse a single traceroute hop line.

    The first two tokens (hop index and hostname) are discarded. The third
    token is either ``*`` for a hop that did not answer, or an address
    wrapped in one delimiter character on each side, e.g. ``(10.0.0.1)``.

    Args:
        line: Raw input line
        line_number: Position of the line in the input, used in diagnostics

    Returns:
        ParsedHop with ``ip`` set, or with ``ip=None`` for an unresolved hop

    Raises:
        MalformedHopLine: If the line has fewer than three tokens or the
            address token is too short to unwrap

    Examples:
        >>> parse_hop("1 r1 (10.0.0.1)").ip
        '10.0.0.1'
        >>> parse_hop("2 * * *").resolved
        False
    """
    tokens = line.split()
    if len(tokens) < 3:
        raise MalformedHopLine(line_number, line, f"expected at least 3 fields, got {len(tokens)}")

    token = tokens[2]
    if token == UNRESOLVED_TOKEN:
        return ParsedHop(line_number=line_number)

    if len(token) <= 2:
        raise MalformedHopLine(line_number, line, f"address field {token!r} is too short")

    return ParsedHop(line_number=line_number, ip=token[1:-1])


def iter_hop_lines(stream: TextIO) -> Iterator[Tuple[int, str]]:
    """
    Yield ``(line_number, line)`` for every hop line, skipping the header.

    Lines are pulled with ``readline`` one at a time so output from a
    running traceroute is consumed as soon as it is written.
    """
    line_number = 0
    while True:
        line = stream.readline()
        if not line:
            return
        line_number += 1
        if line_number == 1:
            continue
        yield line_number, line
