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
Scheduler module for PingScope.

This module provides the Scheduler class driving fixed-rate probe rounds.
Every round is anchored to the timestamp it started at, so the time spent
probing and rendering is absorbed by a shorter sleep instead of drifting the
timeline. A round that overruns the interval is followed immediately by the
next one; the lost time is not compensated.
"""

import logging
import sys
import time
from enum import Enum
from typing import Callable, List, Optional, Sequence, TextIO

from pingscope.config import RunConfig
from pingscope.probe_engine import ProbeEngine, RetryableProbeError
from pingscope.stats import Sample, TargetContext, build_final_report, exit_status

logger = logging.getLogger(__name__)

STOP_KEYS = ("q", "Q")

# Longest delay between a stop request and the sleeping loop noticing it
STOP_POLL_INTERVAL = 0.05


class SchedulerState(Enum):
    """Lifecycle of a scheduler run."""

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class ScheduleState:
    """Timing of the in-flight round and the rounds left to issue."""

    def __init__(self, remaining: Optional[int] = None) -> None:
        self.begin: Optional[float] = None
        self.end: Optional[float] = None
        self.remaining = remaining

    @property
    def last_round(self) -> bool:
        return self.remaining is not None and self.remaining <= 1


class StopFlag:
    """
    Cooperative stop request that signal handlers may set.

    set() only assigns an attribute and takes no lock, so it is safe to call
    from a handler interrupting wait(). wait() sleeps in short slices and
    checks the flag between them.
    """

    def __init__(
        self,
        poll_interval: float = STOP_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock
        self._requested = False

    def set(self) -> None:
        self._requested = True

    def is_set(self) -> bool:
        return self._requested

    def wait(self, timeout: float) -> bool:
        """
        Sleep up to ``timeout`` seconds or until the flag is set.

        Returns:
            True if the flag is set
        """
        deadline = self._clock() + timeout
        while not self._requested:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            self._sleep(min(remaining, self.poll_interval))
        return True


class Scheduler:
    """
    Time-driven round loop for PingScope.

    The Scheduler issues one probe per target each round, applies every
    result to its target before rendering, then sleeps until the next round
    is due. The stop flag is only observed between rounds, so a stop request
    never cuts a round short.
    """

    def __init__(
        self,
        config: RunConfig,
        engine: ProbeEngine,
        contexts: Sequence[TargetContext],
        renderer,
        stop_event: Optional[StopFlag] = None,
        clock: Callable[[], float] = time.monotonic,
        key_reader: Optional[Callable[[], Optional[str]]] = None,
        output: Optional[TextIO] = None,
    ) -> None:
        """
        Initialize the Scheduler.

        Args:
            config: Run configuration
            engine: Probe engine with every target already registered
            contexts: Target contexts, in the engine's registration order
            renderer: PlainRenderer or TerminalRenderer
            stop_event: Flag set to request a cooperative stop
            clock: Monotonic time source in seconds
            key_reader: Non-blocking keyboard reader (None disables keys)
            output: Stream receiving the final report (default: stdout)
        """
        self.config = config
        self.engine = engine
        self.contexts: List[TargetContext] = list(contexts)
        self.renderer = renderer
        self.stop_event = stop_event if stop_event is not None else StopFlag()
        self.clock = clock
        self.key_reader = key_reader
        self.output = output
        self.schedule = ScheduleState(config.count)
        self.state = SchedulerState.IDLE
        self.rounds_completed = 0

    def request_stop(self) -> None:
        """Ask the loop to end after the in-flight round."""
        self.stop_event.set()

    def _issue(self) -> None:
        """Issue one round, retrying interrupted attempts."""
        while True:
            try:
                self.engine.issue_round()
                return
            except RetryableProbeError as exc:
                logger.debug("Retrying interrupted round: %s", exc)

    def run_round(self) -> List[Sample]:
        """
        Run one probe round: issue, apply every sample, then render.

        Returns:
            The samples of this round, in target order
        """
        self.schedule.begin = self.clock()
        self._issue()

        samples = []
        for context, result in zip(self.contexts, self.engine.results()):
            sample = Sample(
                target_index=context.index,
                latency_ms=result.latency_ms,
                sequence=result.sequence,
                ttl=result.ttl,
                qos=result.qos,
                payload_len=result.payload_len,
            )
            context.apply(sample)
            samples.append(sample)

        for context, sample in zip(self.contexts, samples):
            self.renderer.draw(context, sample)

        self.schedule.end = self.clock()
        self.rounds_completed += 1
        return samples

    def poll_events(self) -> None:
        """Handle pending resize and keyboard events without blocking."""
        self.renderer.poll_resize()
        if self.key_reader is None:
            return
        while True:
            key = self.key_reader()
            if key is None:
                return
            if key in STOP_KEYS:
                logger.debug("Stop requested from keyboard.")
                self.stop_event.set()

    def sleep_until(self, wake: float) -> None:
        """
        Sleep until ``wake`` on the scheduler clock.

        Waking early without a stop request (a signal, a spurious wakeup)
        resumes the sleep for the remaining time only.
        """
        while not self.stop_event.is_set():
            remaining = wake - self.clock()
            if remaining <= 0:
                return
            if self.stop_event.wait(remaining):
                return

    def run(self) -> int:
        """
        Run rounds until the count is exhausted or a stop is requested.

        Returns:
            Process exit status (targets above the failure threshold, capped)

        Raises:
            ProbeEngineError: If the engine fails in a non-retryable way
        """
        self.state = SchedulerState.RUNNING
        self.renderer.start(self.contexts, self.engine.payload_size)
        try:
            while not self.stop_event.is_set():
                self.run_round()
                self.poll_events()
                if self.stop_event.is_set() or self.schedule.last_round:
                    break
                if self.schedule.remaining is not None:
                    self.schedule.remaining -= 1

                self.sleep_until(self.schedule.begin + self.config.interval)
                self.poll_events()
        finally:
            self.renderer.finish()

        self.state = SchedulerState.DRAINING
        output = self.output if self.output is not None else sys.stdout
        lines, failures = build_final_report(self.contexts, self.config.percentile, self.config.exit_threshold)
        for line in lines:
            output.write(f"{line}\n")
        output.flush()
        self.state = SchedulerState.STOPPED
        logger.debug("Stopped after %d round(s); %d target(s) above the failure threshold.", self.rounds_completed, failures)
        return exit_status(failures)
