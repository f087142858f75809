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
Probe engine interface for PingScope.

A probe engine owns the echo transport: it resolves targets, sends one
probe per target for each round and reports the latest outcome per target.
The scheduler only talks to engines through the ProbeEngine interface.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, Iterable, Iterator, List, NamedTuple, Optional

DEFAULT_PAYLOAD_SIZE = 56


class ProbeEngineError(RuntimeError):
    """Raised when the probe engine cannot fulfil a request."""


class RetryableProbeError(ProbeEngineError):
    """Raised when issuing a round was interrupted and may simply be retried."""


class ProbeResult(NamedTuple):
    """Latest probe outcome of one target."""

    hostname: str
    address: str
    latency_ms: Optional[float]
    sequence: int
    ttl: Optional[int] = None
    qos: Optional[int] = None
    payload_len: int = 0


class ProbeEngine(ABC):
    """Abstract echo probe transport."""

    payload_size = DEFAULT_PAYLOAD_SIZE

    @abstractmethod
    def add_target(self, name: str) -> str:
        """
        Register a target.

        Returns:
            The resolved address text

        Raises:
            ProbeEngineError: If the target cannot be added
        """
        raise NotImplementedError

    @abstractmethod
    def issue_round(self) -> None:
        """
        Send one probe to every target and wait for the replies.

        Raises:
            RetryableProbeError: If the round was interrupted before completing
            ProbeEngineError: On any other failure
        """
        raise NotImplementedError

    @abstractmethod
    def results(self) -> Iterator[ProbeResult]:
        """Yield the latest result of every target, in registration order."""
        raise NotImplementedError

    def close(self) -> None:
        """Release transport resources."""

    def __enter__(self) -> "ProbeEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ScriptedProbeEngine(ProbeEngine):
    """
    In-memory engine replaying scripted latencies.

    script: dict[name] -> iterable of latencies in ms (None for a timeout).
    A target without remaining script entries times out. An exception in
    ``round_errors`` is raised by the matching ``issue_round`` call instead
    of completing it.
    """

    def __init__(
        self,
        script: Optional[Dict[str, Iterable[Optional[float]]]] = None,
        addresses: Optional[Dict[str, str]] = None,
        unresolvable: Iterable[str] = (),
        round_errors: Optional[Iterable[Optional[Exception]]] = None,
        ttl: int = 64,
    ) -> None:
        self.script: Dict[str, Deque[Optional[float]]] = {}
        for name, steps in (script or {}).items():
            self.script[name] = deque(steps)
        self.addresses = dict(addresses or {})
        self.unresolvable = set(unresolvable)
        self.round_errors: Deque[Optional[Exception]] = deque(round_errors or ())
        self.ttl = ttl
        self.targets: List[str] = []
        self.sequence = 0
        self.rounds_issued = 0
        self.closed = False
        self._latest: Dict[str, Optional[float]] = {}

    def add_target(self, name: str) -> str:
        if name in self.unresolvable:
            raise ProbeEngineError(f"Name or service not known: {name}")
        self.targets.append(name)
        return self.addresses.get(name, name)

    def issue_round(self) -> None:
        if self.round_errors:
            error = self.round_errors.popleft()
            if error is not None:
                raise error
        self.sequence += 1
        self.rounds_issued += 1
        for name in self.targets:
            steps = self.script.get(name)
            self._latest[name] = steps.popleft() if steps else None

    def results(self) -> Iterator[ProbeResult]:
        for name in self.targets:
            latency = self._latest.get(name)
            yield ProbeResult(
                hostname=name,
                address=self.addresses.get(name, name),
                latency_ms=latency,
                sequence=self.sequence,
                ttl=self.ttl if latency is not None else None,
                qos=0 if latency is not None else None,
                payload_len=self.payload_size if latency is not None else 0,
            )

    def close(self) -> None:
        self.closed = True
