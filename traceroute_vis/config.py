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
Config file support for traceroute-vis.

Settings are read from ``~/.traceroute-vis.conf``, written either as YAML
or as INI. Both formats keep them in a ``default`` section::

    default:                [default]
      timeout: 3            timeout = 3
      max_concurrency: 8    max_concurrency = 8

Every value is converted and range-checked here, so the command line only
ever merges usable settings.

Priority order: CLI args > ~/.traceroute-vis.conf > hardcoded defaults
"""

import configparser
import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import urlsplit

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.traceroute-vis.conf")
SECTION = "default"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_TRUE_WORDS = frozenset(("true", "yes", "1", "on"))
_FALSE_WORDS = frozenset(("false", "no", "0", "off"))


def _text(value: Any) -> str:
    if isinstance(value, (bool, dict, list)):
        raise ValueError(f"expected text, got {value!r}")
    text = str(value).strip()
    if not text:
        raise ValueError("expected text, got an empty value")
    return text


def _number(value: Any, kind: type) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"expected {kind.__name__}, got {value!r}")
    if kind is int and isinstance(value, float):
        raise ValueError(f"expected a whole number, got {value!r}")
    try:
        return kind(value)
    except ValueError as exc:
        raise ValueError(f"expected {kind.__name__}, got {value!r}") from exc


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ValueError(f"cannot read {value!r} as a boolean; use true/false, yes/no, 1/0 or on/off")


def _parse_lookup_url(value: Any) -> str:
    url = _text(value)
    if urlsplit(url).scheme not in ("http", "https") or not urlsplit(url).netloc:
        raise ValueError(f"expected an http(s) URL, got {url!r}")
    return url


def _parse_timeout(value: Any) -> float:
    seconds = _number(value, float)
    if seconds <= 0:
        raise ValueError(f"must be a positive number of seconds, got {value!r}")
    return seconds


def _parse_max_concurrency(value: Any) -> int:
    limit = _number(value, int)
    if limit < 0:
        raise ValueError(f"must be 0 (unlimited) or a positive integer, got {value!r}")
    return limit


def _parse_log_level(value: Any) -> str:
    level = _text(value).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}, got {value!r}")
    return level


# Config field name -> converter raising ValueError on unusable input
FIELD_PARSERS: Dict[str, Callable[[Any], Any]] = {
    "lookup_url": _parse_lookup_url,
    "timeout": _parse_timeout,
    "max_concurrency": _parse_max_concurrency,
    "color": _parse_bool,
    "log_level": _parse_log_level,
    "log_file": _text,
}


def parse_settings(raw: Mapping[str, Any], path: str) -> Dict[str, Any]:
    """
    Convert the raw ``default`` section of a config file into settings.

    Unknown keys and keys without a value are logged and skipped.

    Raises:
        ValueError: If a known key holds an unusable value
    """
    settings: Dict[str, Any] = {}
    for key, value in raw.items():
        parse = FIELD_PARSERS.get(key)
        if parse is None:
            logger.warning("Unknown config key '%s' in [%s] section of '%s'; ignoring.", key, SECTION, path)
            continue
        if value is None:
            logger.warning("Config key '%s' has no value in '%s'; ignoring.", key, path)
            continue
        try:
            settings[key] = parse(value)
        except ValueError as exc:
            raise ValueError(f"Invalid value for config field '{key}' in '{path}': {exc}") from exc
    return settings


def load_ini_config(path: str) -> Dict[str, Any]:
    """Load settings from an INI file; ``=`` and ``:`` both separate keys from values."""
    parser = configparser.ConfigParser(allow_no_value=True, delimiters=("=", ":"), interpolation=None)
    try:
        read_files = parser.read(path, encoding="utf-8")
    except configparser.Error as exc:
        raise ValueError(f"Invalid config file '{path}': {exc}") from exc
    if not read_files:
        raise ValueError(f"Config file '{path}' could not be read.")
    if not parser.has_section(SECTION):
        return {}
    return parse_settings(dict(parser.items(SECTION)), path)


def load_yaml_config(path: str) -> Dict[str, Any]:
    """Load settings from a YAML file with ``yaml.safe_load``."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in config file '{path}': {exc}") from exc
    except OSError as exc:
        raise ValueError(f"Cannot read config file '{path}': {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file '{path}' must hold a YAML mapping, got {type(data).__name__}.")
    section = data.get(SECTION) or {}
    if not isinstance(section, dict):
        raise ValueError(f"The '{SECTION}' section in '{path}' must be a YAML mapping.")
    return parse_settings(section, path)


def detect_format(path: str) -> str:
    """
    Return ``"ini"`` when the first meaningful line is a ``[section]`` header,
    ``"yaml"`` otherwise. Unreadable files are reported as INI so the INI
    loader raises the read error.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                stripped = line.strip()
                if stripped and not stripped.startswith(("#", ";")):
                    return "ini" if stripped.startswith("[") else "yaml"
    except OSError:
        return "ini"
    return "yaml"


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load persistent settings, or an empty dict when the file does not exist.

    Raises:
        ValueError: If the file exists but cannot be used
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
    if not os.path.exists(path):
        return {}

    file_format = detect_format(path)
    logger.debug("Loading %s config from '%s'.", file_format.upper(), path)
    if file_format == "yaml":
        return load_yaml_config(path)
    return load_ini_config(path)
