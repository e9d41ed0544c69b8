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
Result channel for traceroute-vis.

A multi-producer, single-consumer conduit between lookup tasks running on
the asyncio event loop and the renderer thread. Every producer holds a
ProducerHandle that can send at most one record. The channel closes once
the last registered handle has been released; the consumer then sees
``None`` from ``receive()`` and iteration stops.
"""

import logging
import queue
import threading
from queue import Queue
from typing import Iterator, Optional

from traceroute_vis.models import GeoRecord

logger = logging.getLogger(__name__)

_CLOSED = object()


class ChannelError(RuntimeError):
    """Raised on misuse of a channel or producer handle."""


class ProducerHandle:
    """Send side of a ResultChannel. Sends at most one record."""

    def __init__(self, channel: "ResultChannel"):
        self._channel = channel
        self._sent = False
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def send(self, record: GeoRecord) -> None:
        """
        Send one record to the consumer.

        Raises:
            ChannelError: If this handle was released or has already sent
        """
        if self._released:
            raise ChannelError("send on a released producer handle")
        if self._sent:
            raise ChannelError("producer handle has already sent a record")
        self._sent = True
        self._channel._put(record)

    def clone(self) -> "ProducerHandle":
        """Register and return a new producer on the same channel."""
        if self._released:
            raise ChannelError("clone of a released producer handle")
        return self._channel.producer()

    def release(self) -> None:
        """Release this handle. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        self._channel._release_producer()

    def __enter__(self) -> "ProducerHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False


class ResultChannel:
    """
    Multi-producer, single-consumer channel of GeoRecords.

    Closure is driven by producer handles: the channel is closed when the
    number of live handles drops to zero after at least one was registered.
    """

    def __init__(self) -> None:
        self._queue: "Queue[object]" = queue.Queue()
        self._lock = threading.Lock()
        self._producers = 0
        self._closing = False
        self._closed = False

    def producer(self) -> ProducerHandle:
        """Register a new producer and return its handle."""
        with self._lock:
            if self._closing:
                raise ChannelError("channel is already closed")
            self._producers += 1
        return ProducerHandle(self)

    @property
    def producer_count(self) -> int:
        with self._lock:
            return self._producers

    @property
    def closed(self) -> bool:
        """True once the consumer has observed closure."""
        return self._closed

    def _put(self, record: GeoRecord) -> None:
        self._queue.put(record)

    def _release_producer(self) -> None:
        with self._lock:
            self._producers -= 1
            if self._producers > 0:
                return
            self._closing = True
        logger.debug("All producers released; closing result channel")
        self._queue.put(_CLOSED)

    def receive(self, timeout: Optional[float] = None) -> Optional[GeoRecord]:
        """
        Block until a record arrives or the channel closes.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            The next GeoRecord, or None once the channel is closed

        Raises:
            queue.Empty: If ``timeout`` expires first
        """
        if self._closed:
            return None
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._closed = True
            return None
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[GeoRecord]:
        while True:
            record = self.receive()
            if record is None:
                return
            yield record
