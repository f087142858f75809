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
# Review for correctness and security.

"""
Host list ingestion for PingScope.
"""

import logging
import sys
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


def parse_host_line(line: str) -> Optional[str]:
    """
    Extract the host from one line of a host file.

    Only the first whitespace-separated token counts; blank lines and
    lines starting with ``#`` are skipped.

    Returns:
        The host name, or None if the line holds no host
    """
    tokens = line.split()
    if not tokens:
        return None
    host = tokens[0]
    if host.startswith("#"):
        return None
    return host


def parse_host_lines(lines: Iterable[str]) -> List[str]:
    """Collect the hosts named by an iterable of lines."""
    hosts = []
    for line in lines:
        host = parse_host_line(line)
        if host is not None:
            hosts.append(host)
    return hosts


def read_host_file(path: str) -> List[str]:
    """
    Read hosts from a file, or from standard input when ``path`` is ``-``.

    Raises:
        OSError: If the file cannot be opened or read
    """
    if path == "-":
        logger.debug("Reading hosts from STDIN.")
        return parse_host_lines(sys.stdin)

    with open(path, "r", encoding="utf-8") as fh:
        hosts = parse_host_lines(fh)
    logger.debug("Read %d host(s) from '%s'.", len(hosts), path)
    return hosts
