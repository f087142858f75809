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
Run configuration and config file support for PingScope.

The RunConfig value is built once from the command line (merged with
~/.pingscope.conf) and handed to the scheduler, the aggregators and the
renderer. Config files may be written in YAML or INI format.

Priority order: CLI args > ~/.pingscope.conf > hardcoded defaults
"""

import configparser
import locale
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TextIO

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.pingscope.conf")

DEFAULT_INTERVAL = 1.0
MIN_INTERVAL = 0.001
DEFAULT_PERCENTILE = 95.0
MIN_PERCENTILE = 0.1
DEFAULT_TTL = 64
DEFAULT_TIMEOUT = 1.0
GRAPH_MODES = ("sparkline", "boxplot")
COLOR_MODES = ("auto", "always", "never")
ADDRESS_FAMILIES = ("ipv4", "ipv6")

# Mapping of config field names to their expected Python types
_CONFIG_FIELD_TYPES: Dict[str, type] = {
    "interval": float,
    "count": int,
    "percentile": float,
    "exit_threshold": float,
    "ttl": int,
    "qos": str,
    "timeout": float,
    "address_family": str,
    "source_address": str,
    "device": str,
    "color": str,
    "utf8": bool,
    "graph": str,
    "log_level": str,
    "log_file": str,
}

_BOOL_TRUE_VALUES = frozenset(("true", "yes", "1", "on"))
_BOOL_FALSE_VALUES = frozenset(("false", "no", "0", "off"))


@dataclass(frozen=True)
class RunConfig:
    """Immutable settings for one monitoring run."""

    interval: float = DEFAULT_INTERVAL
    count: Optional[int] = None
    percentile: float = DEFAULT_PERCENTILE
    exit_threshold: float = 1.0
    ttl: int = DEFAULT_TTL
    qos: int = 0
    timeout: float = DEFAULT_TIMEOUT
    address_family: Optional[str] = None
    source_address: Optional[str] = None
    device: Optional[str] = None
    use_color: bool = False
    use_utf8: bool = False
    graph_mode: str = "sparkline"

    def __post_init__(self) -> None:
        if self.interval < MIN_INTERVAL:
            raise ValueError(f"Invalid interval {self.interval!r}: must be at least {MIN_INTERVAL} seconds.")
        if self.count is not None and self.count <= 0:
            raise ValueError(f"Invalid count {self.count!r}: must be a positive integer.")
        if not MIN_PERCENTILE <= self.percentile <= 100.0:
            raise ValueError(f"Invalid percentile {self.percentile!r}: must be between {MIN_PERCENTILE} and 100.")
        if not 0.0 <= self.exit_threshold <= 1.0:
            raise ValueError(f"Invalid exit threshold {self.exit_threshold!r}: must be a ratio between 0 and 1.")
        if not 0 < self.ttl < 256:
            raise ValueError(f"Invalid TTL {self.ttl!r}: must be between 1 and 255.")
        if not 0 <= self.qos <= 0xFF:
            raise ValueError(f"Invalid QoS byte {self.qos!r}.")
        if self.timeout <= 0:
            raise ValueError(f"Invalid timeout {self.timeout!r}: must be positive.")
        if self.address_family is not None and self.address_family not in ADDRESS_FAMILIES:
            raise ValueError(f"Invalid address family {self.address_family!r}.")
        if self.graph_mode not in GRAPH_MODES:
            raise ValueError(f"Invalid graph mode {self.graph_mode!r}: use one of {', '.join(GRAPH_MODES)}.")

    @property
    def unbounded(self) -> bool:
        """True when the run continues until interrupted."""
        return self.count is None


def resolve_percentile(requested: Optional[float], count: Optional[int]) -> float:
    """
    Pick the percentile to report.

    Short finite runs default to the percentile of the second-slowest probe
    so the value is not simply the maximum.
    """
    percent = requested
    if percent is None and count is not None and 0 < count < 20:
        percent = 100.0 * (count - 1) / count
    if percent is None or percent <= 0.0:
        return DEFAULT_PERCENTILE
    return percent


def detect_utf8(forced: Optional[bool] = None, stream: Optional[TextIO] = None) -> bool:
    """Decide whether UTF-8 glyphs can be used, unless forced either way."""
    if forced is not None:
        return forced
    encoding = getattr(stream if stream is not None else sys.stdout, "encoding", None)
    if not encoding:
        encoding = locale.getpreferredencoding(False)
    return str(encoding).replace("_", "-").upper() in ("UTF-8", "UTF8")


def detect_color(mode: str = "auto", stream: Optional[TextIO] = None) -> bool:
    """Resolve the color mode against the output stream capabilities."""
    if mode == "always":
        return True
    if mode == "never":
        return False
    target = stream if stream is not None else sys.stdout
    try:
        is_tty = target.isatty()
    except (AttributeError, ValueError):
        is_tty = False
    return is_tty and os.environ.get("TERM", "") != "dumb" and "NO_COLOR" not in os.environ


# ============================================================================
# Config file loading
# ============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a boolean value from a string representation."""
    lower = value.lower()
    if lower in _BOOL_TRUE_VALUES:
        return True
    if lower in _BOOL_FALSE_VALUES:
        return False
    raise ValueError(f"Cannot parse '{value}' as a boolean. Use true/false, yes/no, 1/0, or on/off.")


def _coerce_field(key: str, raw_value: Any) -> Any:
    """Coerce a raw config value to the expected type for the given field name."""
    if key not in _CONFIG_FIELD_TYPES:
        return raw_value
    field_type = _CONFIG_FIELD_TYPES[key]
    if field_type is bool:
        if isinstance(raw_value, bool):
            return raw_value
        return _parse_bool(str(raw_value))
    if isinstance(raw_value, field_type) and not isinstance(raw_value, bool):
        return raw_value
    try:
        return field_type(raw_value)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Invalid value for config field '{key}': expected {field_type.__name__}, got {raw_value!r}") from exc


def load_ini_config(path: str) -> Dict[str, Any]:
    """
    Load an INI-format config file.

    The ``[default]`` section holds settings; the ``[hosts]`` section lists
    one target per line (no ``=`` required).

    Raises:
        ValueError: On parse errors or invalid field values.
    """
    parser = configparser.ConfigParser(allow_no_value=True, delimiters=("=", ":"))
    try:
        read_files = parser.read(path, encoding="utf-8")
    except configparser.Error as exc:
        raise ValueError(f"Invalid config file '{path}': {exc}") from exc

    if not read_files:
        raise ValueError(f"Config file '{path}' could not be read.")

    result: Dict[str, Any] = {}

    if parser.has_section("default"):
        for key, raw_value in parser.items("default"):
            if key not in _CONFIG_FIELD_TYPES:
                logger.warning("Unknown config key '%s' in [default] section of '%s'; ignoring.", key, path)
                continue
            if raw_value is None:
                logger.warning("Config key '%s' has no value in '%s'; ignoring.", key, path)
                continue
            result[key] = _coerce_field(key, raw_value)

    if parser.has_section("hosts"):
        hosts: List[str] = []
        for key, value in parser.items("hosts"):
            host_entry = (value.strip() if value else None) or key.strip()
            if host_entry:
                hosts.append(host_entry)
        if hosts:
            result["hosts"] = hosts

    return result


def load_yaml_config(path: str) -> Dict[str, Any]:
    """
    Load a YAML-format config file with ``yaml.safe_load``.

    Raises:
        ValueError: On parse errors or invalid file content.
    """
    import yaml  # pylint: disable=import-outside-toplevel

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
        raise ValueError(f"Config file '{path}' must contain a YAML mapping at the top level, got {type(data).__name__}.")

    result: Dict[str, Any] = {}

    default_section = data.get("default") or {}
    if not isinstance(default_section, dict):
        raise ValueError(f"The 'default' section in '{path}' must be a YAML mapping.")
    for key, value in default_section.items():
        if key not in _CONFIG_FIELD_TYPES:
            logger.warning("Unknown config key '%s' in 'default' section of '%s'; ignoring.", key, path)
            continue
        if value is None:
            continue
        result[key] = _coerce_field(key, value)

    hosts_section = data.get("hosts")
    if hosts_section is not None:
        if not isinstance(hosts_section, list):
            raise ValueError(f"The 'hosts' section in '{path}' must be a YAML list.")
        hosts = [str(h).strip() for h in hosts_section if h is not None and str(h).strip()]
        if hosts:
            result["hosts"] = hosts

    return result


def _is_yaml_file(path: str) -> bool:
    """
    Guess the config file format.

    INI files begin with a ``[section]`` header on the first non-blank,
    non-comment line. Anything else is treated as YAML.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            for line in fh:
                stripped = line.strip()
                if stripped and not stripped.startswith("#"):
                    return not stripped.startswith("[")
    except OSError:
        pass
    return False


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load persistent settings from a config file.

    Returns an empty dict if the config file does not exist.

    Raises:
        ValueError: If the file exists but cannot be parsed.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH

    if not os.path.exists(path):
        return {}

    if _is_yaml_file(path):
        logger.debug("Loading YAML config from '%s'.", path)
        return load_yaml_config(path)

    logger.debug("Loading INI config from '%s'.", path)
    return load_ini_config(path)
