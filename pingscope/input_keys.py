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
Keyboard input handling for PingScope using the readchar library.

Keys are only read when one is already waiting, so polling never blocks the
round loop.
"""

import contextlib
import select
import sys
import termios
import tty
from typing import Generator, Optional

import readchar


@contextlib.contextmanager
def terminal_cbreak_mode(fd: Optional[int] = None) -> Generator[None, None, None]:
    """Context manager that puts a terminal in cbreak mode and restores it on exit.

    Output processing stays on, so the renderer's newlines keep working while
    single key presses become readable without Enter.

    Args:
        fd: Terminal file descriptor to configure.  Defaults to ``sys.stdin.fileno()``.
    """
    if fd is None:
        fd = sys.stdin.fileno()
    try:
        old_settings = termios.tcgetattr(fd)
    except termios.error:
        # Not a real terminal (e.g. a pipe or test mock) - nothing to restore.
        yield
        return
    try:
        tty.setcbreak(fd)
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


def read_key() -> Optional[str]:
    """
    Read a pending key from stdin.

    Returns:
        The key as returned by ``readchar.readkey()``, or None if no input
        is waiting or stdin is not a terminal
    """
    if not sys.stdin.isatty():
        return None

    ready, _, _ = select.select([sys.stdin], [], [], 0)
    if not ready:
        return None

    try:
        return readchar.readkey()
    except (OSError, EOFError):
        return None
