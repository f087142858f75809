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
Unit tests for input_keys module - non-blocking keyboard input.

Covers the readchar based key reader and the cbreak context manager,
including the non-terminal paths used when stdin is a pipe.
"""

import os
import sys
import termios
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from pingscope.input_keys import read_key, terminal_cbreak_mode  # noqa: E402, isort: skip


class TestReadKey(unittest.TestCase):
    """Test non-blocking key reads"""

    def test_not_a_tty(self):
        stdin = MagicMock()
        stdin.isatty.return_value = False
        with patch("sys.stdin", stdin):
            self.assertIsNone(read_key())

    def test_no_pending_input(self):
        stdin = MagicMock()
        stdin.isatty.return_value = True
        with patch("sys.stdin", stdin), patch("pingscope.input_keys.select.select", return_value=([], [], [])):
            self.assertIsNone(read_key())

    def test_pending_key(self):
        stdin = MagicMock()
        stdin.isatty.return_value = True
        with patch("sys.stdin", stdin), patch(
            "pingscope.input_keys.select.select", return_value=([stdin], [], [])
        ), patch("pingscope.input_keys.readchar.readkey", return_value="q"):
            self.assertEqual(read_key(), "q")

    def test_read_error(self):
        stdin = MagicMock()
        stdin.isatty.return_value = True
        with patch("sys.stdin", stdin), patch(
            "pingscope.input_keys.select.select", return_value=([stdin], [], [])
        ), patch("pingscope.input_keys.readchar.readkey", side_effect=OSError("EIO")):
            self.assertIsNone(read_key())


class TestTerminalCbreakMode(unittest.TestCase):
    """Test the cbreak context manager"""

    def test_restores_settings(self):
        with patch("pingscope.input_keys.termios.tcgetattr", return_value=["saved"]), patch(
            "pingscope.input_keys.tty.setcbreak"
        ) as setcbreak, patch("pingscope.input_keys.termios.tcsetattr") as tcsetattr:
            with terminal_cbreak_mode(7):
                setcbreak.assert_called_once_with(7)
                tcsetattr.assert_not_called()
        tcsetattr.assert_called_once_with(7, termios.TCSADRAIN, ["saved"])

    def test_restores_on_error(self):
        with patch("pingscope.input_keys.termios.tcgetattr", return_value=["saved"]), patch(
            "pingscope.input_keys.tty.setcbreak"
        ), patch("pingscope.input_keys.termios.tcsetattr") as tcsetattr:
            with self.assertRaises(KeyboardInterrupt):
                with terminal_cbreak_mode(7):
                    raise KeyboardInterrupt
        tcsetattr.assert_called_once()

    def test_not_a_terminal(self):
        with patch("pingscope.input_keys.termios.tcgetattr", side_effect=termios.error(25, "Inappropriate ioctl")), patch(
            "pingscope.input_keys.tty.setcbreak"
        ) as setcbreak:
            with terminal_cbreak_mode(7):
                pass
        setcbreak.assert_not_called()


if __name__ == "__main__":
    unittest.main()
