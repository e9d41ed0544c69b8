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
Data models for traceroute-vis.

ParsedHop is produced by the hop parser and consumed by the lookup
dispatcher. GeoRecord is the result of one successful geolocation lookup
and travels through the result channel to the renderer.
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

OPTIONAL_TEXT_FIELDS = ("org", "subdivision", "subdivision2", "city", "country")


class GeoRecordError(ValueError):
    """Raised when a lookup response body does not have the GeoRecord shape."""


@dataclass(frozen=True)
class ParsedHop:
    """One traceroute hop. ``ip`` is None when the hop did not respond."""

    line_number: int
    ip: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.ip is not None


def _coerce_coordinate(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    # bool is an int subclass; a JSON true/false is not a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise GeoRecordError(f"'{key}' must be a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class GeoRecord:
    """Geographic location of a single hop address."""

    ip: str
    latitude: float
    longitude: float
    org: Optional[str] = None
    subdivision: Optional[str] = None
    subdivision2: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "GeoRecord":
        """
        Build a GeoRecord from a decoded JSON response body.

        Unknown keys are ignored. Optional fields may be missing or null.

        Args:
            data: Decoded JSON value

        Returns:
            GeoRecord instance

        Raises:
            GeoRecordError: If required keys are missing or have the wrong type
        """
        if not isinstance(data, dict):
            raise GeoRecordError(f"Expected a JSON object, got {type(data).__name__}")

        ip = data.get("ip")
        if not isinstance(ip, str):
            raise GeoRecordError(f"'ip' must be a string, got {ip!r}")

        optional: Dict[str, Optional[str]] = {}
        for key in OPTIONAL_TEXT_FIELDS:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise GeoRecordError(f"'{key}' must be a string or null, got {value!r}")
            optional[key] = value

        return cls(
            ip=ip,
            latitude=_coerce_coordinate(data, "latitude"),
            longitude=_coerce_coordinate(data, "longitude"),
            **optional,
        )

    def label(self) -> str:
        """Short human-readable place name, falling back to the address."""
        parts = [part for part in (self.city, self.country) if part]
        return ", ".join(parts) if parts else self.ip


@dataclass
class LookupStats:
    """Per-run counters for hops and lookups."""

    dispatched: int = 0
    delivered: int = 0
    failed: int = 0
    unresolved: int = 0
    malformed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def summary(self) -> str:
        return (
            f"Resolved {self.delivered} of {self.dispatched} hop(s) "
            f"({self.failed} failed, {self.unresolved} unresolved, {self.malformed} malformed)"
        )
