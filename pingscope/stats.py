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
Statistics computation for PingScope.

This module provides the per-target latency aggregator, the target context
that ties identity, statistics and display panel together, and the
formatters for summary and final report lines.
"""

import logging
import math
from enum import Enum
from typing import Any, List, NamedTuple, Optional, Sequence, Tuple

from pingscope.histogram import HISTOGRAM_BUCKETS, Histogram, percentile

logger = logging.getLogger(__name__)

EXIT_STATUS_MAX = 255


class MeasurementKind(Enum):
    """Outcome tag of a derived statistic."""

    NOT_YET_MEASURED = "not_yet_measured"
    VALUE = "value"
    INVALID = "invalid"


class Measurement(NamedTuple):
    """
    Result of a derived statistic query.

    ``float(measurement)`` keeps the historical encoding: the value itself,
    ``-0.0`` when nothing was measured yet and ``-1.0`` when the statistic
    cannot be computed.
    """

    kind: MeasurementKind
    value: float = math.nan

    @classmethod
    def of(cls, value: float) -> "Measurement":
        return cls(MeasurementKind.VALUE, value)

    @classmethod
    def not_yet_measured(cls) -> "Measurement":
        return cls(MeasurementKind.NOT_YET_MEASURED, -0.0)

    @classmethod
    def invalid(cls) -> "Measurement":
        return cls(MeasurementKind.INVALID, -1.0)

    @property
    def is_value(self) -> bool:
        return self.kind is MeasurementKind.VALUE

    def __float__(self) -> float:
        return self.value


class Sample(NamedTuple):
    """One probe outcome for one target in one round."""

    target_index: int
    latency_ms: Optional[float]
    sequence: int
    ttl: Optional[int] = None
    qos: Optional[int] = None
    payload_len: int = 0

    @property
    def timed_out(self) -> bool:
        return self.latency_ms is None


class LatencyAggregator:
    """
    Running latency statistics for a single target.

    Sums and the histogram only ever see received samples; ``sent`` is
    bumped once per round whatever the outcome.
    """

    def __init__(self, interval: float, histogram_size: int = HISTOGRAM_BUCKETS) -> None:
        self.interval = interval
        self.sent = 0
        self.received = 0
        self.latency_min: Optional[float] = None
        self.latency_max: Optional[float] = None
        self.latency_sum = 0.0
        self.latency_sum_sq = 0.0
        self.histogram: Optional[Histogram]
        try:
            self.histogram = Histogram(histogram_size)
        except MemoryError:
            logger.warning("Could not allocate latency histogram; percentiles will be unavailable.")
            self.histogram = None

    def record_sent(self) -> None:
        """Count one issued probe."""
        self.sent += 1

    def update(self, latency_ms: float) -> None:
        """Fold one received latency sample into the statistics."""
        self.received += 1
        self.latency_sum += latency_ms
        self.latency_sum_sq += latency_ms * latency_ms

        if self.latency_max is None or self.latency_max < latency_ms:
            self.latency_max = latency_ms
        if self.latency_min is None or self.latency_min > latency_ms:
            self.latency_min = latency_ms

        if self.histogram is not None:
            self.histogram.add(latency_ms, self.interval)

    def average(self) -> Measurement:
        """Mean latency in milliseconds."""
        if self.received < 1:
            return Measurement.not_yet_measured()
        return Measurement.of(self.latency_sum / self.received)

    def stddev(self) -> Measurement:
        """
        Sample standard deviation in milliseconds.

        Uses the two-moment form sqrt((n*sumsq - sum^2) / (n*(n-1))). For very
        large sample counts or latencies the subtraction loses precision. A
        negative radicand within rounding tolerance is reported as 0.0; one
        beyond the tolerance is reported as Invalid.
        """
        if self.received < 1:
            return Measurement.not_yet_measured()
        if self.received < 2:
            return Measurement.of(0.0)

        count = float(self.received)
        radicand = ((count * self.latency_sum_sq) - (self.latency_sum * self.latency_sum)) / (count * (count - 1.0))
        if radicand < 0.0:
            # Cancellation: identical samples can leave a tiny negative residue.
            if radicand > -1e-9 * max(1.0, self.latency_sum_sq):
                return Measurement.of(0.0)
            return Measurement.invalid()
        return Measurement.of(math.sqrt(radicand))

    def packet_loss_pct(self) -> float:
        """Percentage of issued probes without a reply."""
        if self.sent < 1:
            return 0.0
        return 100.0 * (self.sent - self.received) / float(self.sent)

    def failure_ratio(self) -> float:
        """Fraction of issued probes that failed (0.0 before anything was sent)."""
        if self.sent < 1:
            return 0.0
        return 1.0 - (float(self.received) / float(self.sent))

    def percentile(self, percent: float) -> float:
        """Latency percentile in milliseconds (NaN without data, +inf on overflow)."""
        return percentile(self.histogram, self.interval, percent)


class TargetContext:
    """
    State kept for one monitored target during a run.

    The display panel is owned by the renderer and may be replaced at any
    time (e.g. on resize); the statistics are never touched by that.
    """

    def __init__(
        self,
        index: int,
        name: str,
        address: str,
        interval: float,
        histogram_size: int = HISTOGRAM_BUCKETS,
    ) -> None:
        self.index = index
        self.name = name
        self.address = address
        self.stats = LatencyAggregator(interval, histogram_size)
        self.panel: Any = None

    def apply(self, sample: Sample) -> None:
        """Account for one sample of this target."""
        if sample.target_index != self.index:
            raise ValueError(f"Sample for target {sample.target_index} applied to target {self.index}.")
        self.stats.record_sent()
        if not sample.timed_out:
            self.stats.update(sample.latency_ms)

    def __repr__(self) -> str:
        return f"TargetContext(index={self.index!r}, name={self.name!r}, address={self.address!r})"


# ============================================================================
# Formatting
# ============================================================================


def format_transmit_line(stats: LatencyAggregator) -> str:
    """Build the "packets transmitted" line."""
    return (
        f"{stats.sent} packets transmitted, {stats.received} received, "
        f"{stats.packet_loss_pct():.2f}% packet loss, time {stats.latency_sum:.1f}ms"
    )


def format_rtt_line(stats: LatencyAggregator, percent: float) -> Optional[str]:
    """
    Build the rtt summary line.

    Returns:
        The formatted line, or None before the first reply
    """
    if stats.received == 0:
        return None
    latency_min = stats.latency_min if stats.latency_min is not None else 0.0
    latency_max = stats.latency_max if stats.latency_max is not None else 0.0
    return (
        f"rtt min/avg/{percent:.0f}%/max/sdev = "
        f"{latency_min:.3f}/{float(stats.average()):.3f}/{stats.percentile(percent):.0f}/"
        f"{latency_max:.3f}/{float(stats.stddev()):.3f} ms"
    )


def latency_status(latency_ms: float, stats: LatencyAggregator) -> str:
    """
    Classify a latency against the running mean and deviation.

    Returns:
        "success" within one stddev, "slow" within two, "fail" beyond
    """
    average = float(stats.average())
    deviation = float(stats.stddev())
    if latency_ms < average - 2 * deviation or latency_ms > average + 2 * deviation:
        return "fail"
    if latency_ms < average - deviation or latency_ms > average + deviation:
        return "slow"
    return "success"


def count_failures(contexts: Sequence[TargetContext], threshold: float) -> int:
    """Number of targets whose failure ratio exceeds ``threshold``."""
    return sum(1 for context in contexts if context.stats.failure_ratio() > threshold)


def exit_status(failures: int) -> int:
    """Clamp a failure count to a valid process exit status."""
    return max(0, min(failures, EXIT_STATUS_MAX))


def build_final_report(contexts: Sequence[TargetContext], percent: float, threshold: float) -> Tuple[List[str], int]:
    """
    Build the end-of-run report.

    Args:
        contexts: Targets in registration order
        percent: Percentile to report
        threshold: Failure ratio above which a target counts as failed

    Returns:
        Tuple of (report lines, failing target count)
    """
    lines: List[str] = []
    for context in contexts:
        lines.append("")
        lines.append(f"--- {context.name} ping statistics ---")
        lines.append(format_transmit_line(context.stats))
        rtt_line = format_rtt_line(context.stats, percent)
        if rtt_line is not None:
            lines.append(rtt_line)
    return lines, count_failures(contexts, threshold)
