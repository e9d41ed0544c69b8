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
Geolocation lookups for traceroute-vis.

One asynchronous HTTP GET is issued per resolved hop against an
iplocate.io-style endpoint (``<base_url>/<address>``). Lookups are
best-effort: transport errors, non-2xx responses and bodies that do not
decode into a GeoRecord are dropped without retry. Drops are counted in
LookupStats and logged at DEBUG level.

By default every lookup is started immediately with no concurrency cap.
Pass ``max_concurrency`` to bound the number of requests in flight.
"""

import asyncio
import logging
from typing import List, Optional

import httpx

from traceroute_vis.channel import ProducerHandle
from traceroute_vis.models import GeoRecord, LookupStats, ParsedHop

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_URL = "https://www.iplocate.io/api/lookup/"
DEFAULT_TIMEOUT = 5.0


def build_lookup_url(base_url: str, ip_address: str) -> str:
    """Append the address to the lookup base URL."""
    return base_url.rstrip("/") + "/" + ip_address


class GeoLookup:
    """
    Dispatcher for concurrent geolocation lookups.

    Owns a single shared ``httpx.AsyncClient`` and every task it starts.
    Use as an async context manager so the client is always closed::

        async with GeoLookup() as lookup:
            lookup.dispatch(hop, producer.clone())
            await lookup.wait_all()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_LOOKUP_URL,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        max_concurrency: int = 0,
        stats: Optional[LookupStats] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.stats = stats if stats is not None else LookupStats()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._tasks: List["asyncio.Task[None]"] = []
        self._semaphore: Optional[asyncio.Semaphore] = None
        if max_concurrency > 0:
            self._semaphore = asyncio.Semaphore(max_concurrency)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def fetch(self, ip_address: str) -> Optional[GeoRecord]:
        """
        Look up a single address.

        Args:
            ip_address: Address text extracted from a hop line

        Returns:
            GeoRecord, or None if the lookup failed for any reason
        """
        url = build_lookup_url(self.base_url, ip_address)
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
            return GeoRecord.from_dict(response.json())
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.debug("Lookup for %s failed: %s", ip_address, exc)
        except ValueError as exc:
            # json.JSONDecodeError and GeoRecordError are both ValueErrors
            logger.debug("Lookup for %s returned an unusable body: %s", ip_address, exc)
        return None

    async def _lookup_and_send(self, ip_address: str, producer: ProducerHandle) -> None:
        with producer:
            if self._semaphore is not None:
                async with self._semaphore:
                    record = await self.fetch(ip_address)
            else:
                record = await self.fetch(ip_address)
            if record is None:
                self.stats.failed += 1
                return
            self.stats.delivered += 1
            producer.send(record)

    def dispatch(self, hop: ParsedHop, producer: ProducerHandle) -> Optional["asyncio.Task[None]"]:
        """
        Start one lookup task for a resolved hop.

        The task takes ownership of ``producer`` and releases it when it
        finishes, whether or not a record was sent. Unresolved hops start
        nothing and their handle is released immediately.

        Must be called from a running event loop.
        """
        if hop.ip is None:
            producer.release()
            return None
        self.stats.dispatched += 1
        logger.debug("Dispatching lookup for %s (line %d)", hop.ip, hop.line_number)
        task = asyncio.create_task(self._lookup_and_send(hop.ip, producer), name=f"lookup-{hop.ip}")
        self._tasks.append(task)
        return task

    @property
    def pending(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    async def wait_all(self) -> None:
        """Wait until every dispatched lookup has finished."""
        if not self._tasks:
            return
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.error("Lookup task raised unexpectedly: %r", result)

    async def close(self) -> None:
        """Close HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GeoLookup":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False
