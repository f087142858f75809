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
ICMP echo probe engine built on scapy.

Every round sends one echo request per target in a single ``sr`` call and
waits up to the configured timeout for the replies. Each target gets its own
ICMP identifier so replies can be matched back to it. Sending raw packets
requires root or the cap_net_raw capability.
"""

import logging
import os
import socket
from typing import Any, Iterator, List, Optional, Tuple

from scapy.all import ICMP, IP, ICMPv6EchoReply, ICMPv6EchoRequest, IPv6, Raw, conf, sr
from scapy.error import Scapy_Exception

from pingscope.config import RunConfig
from pingscope.probe_engine import (
    DEFAULT_PAYLOAD_SIZE,
    ProbeEngine,
    ProbeEngineError,
    ProbeResult,
    RetryableProbeError,
)

logger = logging.getLogger(__name__)

ICMP_ECHO_REPLY = 0
_FAMILIES = {None: socket.AF_UNSPEC, "ipv4": socket.AF_INET, "ipv6": socket.AF_INET6}


def build_payload(size: int = DEFAULT_PAYLOAD_SIZE) -> bytes:
    """Build the echo payload (the classic incrementing byte pattern)."""
    return bytes((0x10 + offset) & 0xFF for offset in range(size))


def resolve_address(name: str, family: int = socket.AF_UNSPEC) -> Tuple[int, str]:
    """
    Resolve a target name to (address family, address text).

    IPv4 is preferred over IPv6 when both are available.

    Raises:
        ProbeEngineError: If the name cannot be resolved
    """
    try:
        addr_info = socket.getaddrinfo(name, None, family, socket.SOCK_RAW)
    except (socket.gaierror, OSError) as exc:
        raise ProbeEngineError(f"{exc.strerror or exc}") from exc

    ipv4_addresses = []
    ipv6_addresses = []
    for info_family, _socktype, _proto, _canonname, sockaddr in addr_info:
        if info_family == socket.AF_INET:
            ipv4_addresses.append(str(sockaddr[0]))
        elif info_family == socket.AF_INET6:
            ipv6_addresses.append(str(sockaddr[0]))

    if ipv4_addresses:
        return socket.AF_INET, ipv4_addresses[0]
    if ipv6_addresses:
        return socket.AF_INET6, ipv6_addresses[0]
    raise ProbeEngineError(f"No usable address for {name}")


class _IcmpTarget:
    """One registered destination and its latest result."""

    def __init__(self, hostname: str, address: str, family: int, ident: int) -> None:
        self.hostname = hostname
        self.address = address
        self.family = family
        self.ident = ident
        self.latest: Optional[ProbeResult] = None


class IcmpProbeEngine(ProbeEngine):
    """Probe engine sending ICMP / ICMPv6 echo requests with scapy."""

    def __init__(self, config: RunConfig, payload_size: int = DEFAULT_PAYLOAD_SIZE) -> None:
        self.config = config
        self.payload_size = payload_size
        self._payload = build_payload(payload_size)
        self._family = _FAMILIES[config.address_family]
        self._targets: List[_IcmpTarget] = []
        self._sequence = 0
        self._base_ident = os.getpid() & 0xFFFF
        self._check_raw_socket()

    def _check_raw_socket(self) -> None:
        """Fail early when raw sockets cannot be opened."""
        try:
            probe_socket = conf.L3socket(iface=self.config.device) if self.config.device else conf.L3socket()
        except (OSError, Scapy_Exception) as exc:
            raise ProbeEngineError(f"Cannot open raw socket: {exc}") from exc
        probe_socket.close()

    def add_target(self, name: str) -> str:
        family, address = resolve_address(name, self._family)
        ident = (self._base_ident + len(self._targets)) & 0xFFFF
        self._targets.append(_IcmpTarget(name, address, family, ident))
        logger.debug("Added target %s (%s) with ICMP id %d.", name, address, ident)
        return address

    def _build_request(self, target: _IcmpTarget) -> Any:
        """Build the echo request for one target and the current sequence."""
        if target.family == socket.AF_INET6:
            layer3 = IPv6(dst=target.address, hlim=self.config.ttl, tc=self.config.qos)
            if self.config.source_address:
                layer3.src = self.config.source_address
            return layer3 / ICMPv6EchoRequest(id=target.ident, seq=self._sequence, data=self._payload)

        layer3 = IP(dst=target.address, ttl=self.config.ttl, tos=self.config.qos)
        if self.config.source_address:
            layer3.src = self.config.source_address
        return layer3 / ICMP(id=target.ident, seq=self._sequence) / Raw(load=self._payload)

    @staticmethod
    def _request_ident(request: Any) -> Optional[int]:
        if ICMP in request:
            return int(request[ICMP].id)
        if ICMPv6EchoRequest in request:
            return int(request[ICMPv6EchoRequest].id)
        return None

    def _build_result(self, target: _IcmpTarget, request: Any, reply: Any) -> ProbeResult:
        """Turn a request/reply pair (or a missing reply) into a ProbeResult."""
        timeout_result = ProbeResult(target.hostname, target.address, None, self._sequence)
        if reply is None or getattr(request, "sent_time", None) is None:
            return timeout_result

        if IP in reply and ICMP in reply:
            if reply[ICMP].type != ICMP_ECHO_REPLY:
                return timeout_result
            ttl = int(reply[IP].ttl)
            qos = int(reply[IP].tos)
            payload_len = len(bytes(reply[ICMP].payload))
        elif IPv6 in reply and ICMPv6EchoReply in reply:
            ttl = int(reply[IPv6].hlim)
            qos = int(reply[IPv6].tc)
            payload_len = len(reply[ICMPv6EchoReply].data or b"")
        else:
            return timeout_result

        latency_ms = (float(reply.time) - float(request.sent_time)) * 1000.0
        return ProbeResult(target.hostname, target.address, latency_ms, self._sequence, ttl, qos, payload_len)

    def issue_round(self) -> None:
        if not self._targets:
            raise ProbeEngineError("No targets registered.")

        self._sequence = (self._sequence % 0xFFFF) + 1
        requests = [self._build_request(target) for target in self._targets]
        try:
            answered, _unanswered = sr(
                requests,
                timeout=self.config.timeout,
                iface=self.config.device,
                verbose=0,
            )
        except InterruptedError as exc:
            raise RetryableProbeError("Sending echo requests was interrupted.") from exc
        except (OSError, Scapy_Exception) as exc:
            raise ProbeEngineError(f"Sending echo requests failed: {exc}") from exc

        pairs = {}
        for request, reply in answered:
            ident = self._request_ident(request)
            if ident is not None and ident not in pairs:
                pairs[ident] = (request, reply)

        for target in self._targets:
            request, reply = pairs.get(target.ident, (None, None))
            target.latest = self._build_result(target, request, reply)

    def results(self) -> Iterator[ProbeResult]:
        for target in self._targets:
            if target.latest is None:
                yield ProbeResult(target.hostname, target.address, None, self._sequence)
            else:
                yield target.latest
