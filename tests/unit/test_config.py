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
Unit tests for pingscope.config module.

Covers:
- RunConfig validation
- Percentile defaulting and capability detection
- INI and YAML config loading, format auto-detection and load_config dispatch
"""

import io
import os
import sys
import tempfile
import unittest
from types import SimpleNamespace
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from pingscope.config import (  # noqa: E402
    DEFAULT_PERCENTILE,
    RunConfig,
    _is_yaml_file,
    detect_color,
    detect_utf8,
    load_config,
    load_ini_config,
    load_yaml_config,
    resolve_percentile,
)


def _write_temp(content: str) -> str:
    with tempfile.NamedTemporaryFile("w", suffix=".conf", delete=False, encoding="utf-8") as f:
        f.write(content)
        return f.name


class TestRunConfig(unittest.TestCase):
    """Tests for RunConfig validation"""

    def test_defaults(self):
        config = RunConfig()
        self.assertEqual(config.interval, 1.0)
        self.assertIsNone(config.count)
        self.assertTrue(config.unbounded)
        self.assertEqual(config.percentile, DEFAULT_PERCENTILE)
        self.assertEqual(config.exit_threshold, 1.0)
        self.assertEqual(config.graph_mode, "sparkline")

    def test_immutable(self):
        config = RunConfig()
        with self.assertRaises(AttributeError):
            config.interval = 2.0  # type: ignore[misc]

    def test_finite_count(self):
        self.assertFalse(RunConfig(count=5).unbounded)

    def test_invalid_values(self):
        invalid = [
            {"interval": 0.0001},
            {"count": 0},
            {"percentile": 0.0},
            {"percentile": 100.5},
            {"exit_threshold": 1.5},
            {"ttl": 0},
            {"ttl": 256},
            {"qos": 300},
            {"timeout": 0.0},
            {"address_family": "ipx"},
            {"graph_mode": "pie"},
        ]
        for kwargs in invalid:
            with self.assertRaises(ValueError, msg=str(kwargs)):
                RunConfig(**kwargs)

    def test_minimum_interval_accepted(self):
        self.assertEqual(RunConfig(interval=0.001).interval, 0.001)


class TestResolvePercentile(unittest.TestCase):
    """Tests for percentile defaulting"""

    def test_explicit_value_kept(self):
        self.assertEqual(resolve_percentile(99.0, 5), 99.0)

    def test_short_run_reports_second_slowest(self):
        self.assertAlmostEqual(resolve_percentile(None, 10), 90.0)
        self.assertAlmostEqual(resolve_percentile(None, 4), 75.0)

    def test_long_or_unbounded_run_uses_default(self):
        self.assertEqual(resolve_percentile(None, 20), DEFAULT_PERCENTILE)
        self.assertEqual(resolve_percentile(None, None), DEFAULT_PERCENTILE)

    def test_non_positive_falls_back(self):
        self.assertEqual(resolve_percentile(None, 1), DEFAULT_PERCENTILE)
        self.assertEqual(resolve_percentile(-5.0, None), DEFAULT_PERCENTILE)


class TestDetection(unittest.TestCase):
    """Tests for UTF-8 and color detection"""

    def test_utf8_forced(self):
        self.assertTrue(detect_utf8(True, SimpleNamespace(encoding="ascii")))
        self.assertFalse(detect_utf8(False, SimpleNamespace(encoding="utf-8")))

    def test_utf8_from_stream_encoding(self):
        self.assertTrue(detect_utf8(None, SimpleNamespace(encoding="utf-8")))
        self.assertTrue(detect_utf8(None, SimpleNamespace(encoding="UTF8")))
        self.assertFalse(detect_utf8(None, SimpleNamespace(encoding="ANSI_X3.4-1968")))

    def test_utf8_falls_back_to_locale(self):
        with patch("pingscope.config.locale.getpreferredencoding", return_value="UTF-8"):
            self.assertTrue(detect_utf8(None, SimpleNamespace(encoding=None)))

    def test_color_modes(self):
        stream = io.StringIO()
        self.assertTrue(detect_color("always", stream))
        self.assertFalse(detect_color("never", stream))
        self.assertFalse(detect_color("auto", stream))

    def test_color_auto_on_terminal(self):
        stream = SimpleNamespace(isatty=lambda: True)
        with patch.dict(os.environ, {"TERM": "xterm-256color"}, clear=True):
            self.assertTrue(detect_color("auto", stream))
        with patch.dict(os.environ, {"TERM": "dumb"}, clear=True):
            self.assertFalse(detect_color("auto", stream))
        with patch.dict(os.environ, {"TERM": "xterm", "NO_COLOR": "1"}, clear=True):
            self.assertFalse(detect_color("auto", stream))


class TestIniConfig(unittest.TestCase):
    """Tests for INI config loading"""

    def test_fields_and_hosts(self):
        path = _write_temp(
            "[default]\n"
            "interval = 0.5\n"
            "count = 10\n"
            "utf8 = no\n"
            "qos = ef\n"
            "graph = boxplot\n"
            "\n"
            "[hosts]\n"
            "192.0.2.1\n"
            "example.org\n"
        )
        try:
            result = load_ini_config(path)
        finally:
            os.unlink(path)
        self.assertEqual(result["interval"], 0.5)
        self.assertEqual(result["count"], 10)
        self.assertFalse(result["utf8"])
        self.assertEqual(result["qos"], "ef")
        self.assertEqual(result["graph"], "boxplot")
        self.assertEqual(result["hosts"], ["192.0.2.1", "example.org"])

    def test_unknown_key_warns(self):
        path = _write_temp("[default]\nflavour = vanilla\n")
        try:
            with self.assertLogs("pingscope.config", level="WARNING") as logs:
                result = load_ini_config(path)
        finally:
            os.unlink(path)
        self.assertEqual(result, {})
        self.assertIn("flavour", logs.output[0])

    def test_invalid_value_raises(self):
        path = _write_temp("[default]\ncount = many\n")
        try:
            with self.assertRaises(ValueError):
                load_ini_config(path)
        finally:
            os.unlink(path)

    def test_invalid_bool_raises(self):
        path = _write_temp("[default]\nutf8 = maybe\n")
        try:
            with self.assertRaises(ValueError):
                load_ini_config(path)
        finally:
            os.unlink(path)


class TestYamlConfig(unittest.TestCase):
    """Tests for YAML config loading"""

    def test_fields_and_hosts(self):
        path = _write_temp("default:\n  interval: 2\n  utf8: true\n  percentile: 99\nhosts:\n  - 192.0.2.1\n  - example.org\n")
        try:
            result = load_yaml_config(path)
        finally:
            os.unlink(path)
        self.assertEqual(result["interval"], 2.0)
        self.assertIsInstance(result["interval"], float)
        self.assertTrue(result["utf8"])
        self.assertEqual(result["percentile"], 99.0)
        self.assertEqual(result["hosts"], ["192.0.2.1", "example.org"])

    def test_empty_file(self):
        path = _write_temp("")
        try:
            self.assertEqual(load_yaml_config(path), {})
        finally:
            os.unlink(path)

    def test_non_mapping_rejected(self):
        path = _write_temp("- just\n- a list\n")
        try:
            with self.assertRaises(ValueError):
                load_yaml_config(path)
        finally:
            os.unlink(path)

    def test_invalid_yaml_rejected(self):
        path = _write_temp("default: [unclosed\n")
        try:
            with self.assertRaises(ValueError):
                load_yaml_config(path)
        finally:
            os.unlink(path)


class TestLoadConfig(unittest.TestCase):
    """Tests for format detection and dispatch"""

    def test_missing_file(self):
        self.assertEqual(load_config("/nonexistent/pingscope.conf"), {})

    def test_detects_ini(self):
        path = _write_temp("# comment\n\n[default]\nttl = 32\n")
        try:
            self.assertFalse(_is_yaml_file(path))
            self.assertEqual(load_config(path), {"ttl": 32})
        finally:
            os.unlink(path)

    def test_detects_yaml(self):
        path = _write_temp("# comment\ndefault:\n  ttl: 32\n")
        try:
            self.assertTrue(_is_yaml_file(path))
            self.assertEqual(load_config(path), {"ttl": 32})
        finally:
            os.unlink(path)


if __name__ == "__main__":
    unittest.main()
