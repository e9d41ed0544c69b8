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
Shared fakes for traceroute-vis tests: a scripted geolocation service and
a terminal whose keyboard is fed from a queue.
"""

import os
import queue
import threading
from typing import Callable, Dict, List, Optional, Sequence

import httpx

SCENARIO_LINES = (
    "traceroute to 8.8.8.8 (8.8.8.8), 30 hops max, 60 byte packets\n"
    "1 r1 (10.0.0.1)\n"
    "2 * * *\n"
    "3 r3 (8.8.8.8)\n"
)

GOOGLE_DNS_BODY = {"ip": "8.8.8.8", "latitude": 37.4, "longitude": -122.1, "country": "US"}
FIRST_HOP_BODY = {"ip": "10.0.0.1", "latitude": 52.5, "longitude": 13.4, "city": "Berlin", "country": "DE"}

Responder = Callable[[httpx.Request], httpx.Response]


def address_from(request: httpx.Request) -> str:
    return request.url.path.rstrip("/").rsplit("/", 1)[-1]


class ScriptedService:
    """
    httpx MockTransport handler answering per address.

    ``routes`` maps an address to a JSON body (dict), an int status code,
    or an exception class raised as a transport error. Unknown addresses
    get a 404.
    """

    def __init__(self, routes: Dict[str, object]):
        self.routes = routes
        self.requested: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        address = address_from(request)
        with self._lock:
            self.requested.append(address)
        route = self.routes.get(address, 404)
        if isinstance(route, type) and issubclass(route, httpx.TransportError):
            raise route("scripted failure", request=request)
        if isinstance(route, int):
            return httpx.Response(route)
        if isinstance(route, str):
            return httpx.Response(200, text=route)
        return httpx.Response(200, json=route)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeKeyReader:
    """Key reader fed from a queue; records every read."""

    def __init__(self, keys: Sequence[str] = (), timeout: float = 5.0):
        self.keys: "queue.Queue[str]" = queue.Queue()
        for key in keys:
            self.keys.put(key)
        self.timeout = timeout
        self.reads: List[str] = []
        self.closed = False
        self.cbreak = False

    def read_key(self) -> str:
        key = self.keys.get(timeout=self.timeout)
        self.reads.append(key)
        return key

    def set_cbreak(self) -> None:
        self.cbreak = True

    def restore_mode(self) -> None:
        self.cbreak = False

    def close(self) -> None:
        self.closed = True


class FakeTerminal:
    """Terminal stand-in recording frames written by the renderer."""

    def __init__(self, keys: Sequence[str] = (), columns: int = 60, lines: int = 20):
        self.key_reader = FakeKeyReader(keys)
        self._size = os.terminal_size((columns, lines))
        self.frames: List[List[str]] = []
        self.on_read: Optional[Callable[[], None]] = None

    def size(self) -> os.terminal_size:
        return self._size

    def write_lines(self, lines: Sequence[str]) -> None:
        self.frames.append(list(lines))

    def read_key(self) -> str:
        if self.on_read is not None:
            self.on_read()
        return self.key_reader.read_key()
