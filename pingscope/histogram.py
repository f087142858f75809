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
Latency histogram and percentile queries for PingScope.

A histogram holds HISTOGRAM_BUCKETS counters: HISTOGRAM_BUCKETS - 1 linear
buckets spanning [0, interval) milliseconds and one trailing overflow bucket
for latencies at or beyond the probe interval.
"""

import math
from itertools import accumulate
from typing import List, Optional

# 1000 linear buckets plus one "infinity" bucket.
HISTOGRAM_BUCKETS = 1001


class Histogram:
    """Fixed-size bucketed latency distribution for a single target."""

    def __init__(self, size: int = HISTOGRAM_BUCKETS) -> None:
        if size < 2:
            raise ValueError("A histogram needs at least one linear bucket and the overflow bucket.")
        self.buckets: List[int] = [0] * size

    @property
    def size(self) -> int:
        """Number of buckets, overflow bucket included."""
        return len(self.buckets)

    @property
    def overflow_index(self) -> int:
        """Index of the trailing overflow bucket."""
        return len(self.buckets) - 1

    def bucket_index(self, latency_ms: float, interval_seconds: float) -> int:
        """
        Map a latency onto its bucket.

        Args:
            latency_ms: Observed latency in milliseconds
            interval_seconds: Probe interval in seconds; it defines the measurable range

        Returns:
            Bucket index, clamped to the overflow bucket
        """
        index = int(math.floor((latency_ms * self.overflow_index) / (1000.0 * interval_seconds)))
        if index < 0:
            return 0
        return min(index, self.overflow_index)

    def add(self, latency_ms: float, interval_seconds: float) -> int:
        """Count one latency sample and return the bucket it landed in."""
        index = self.bucket_index(latency_ms, interval_seconds)
        self.buckets[index] += 1
        return index

    def total(self) -> int:
        """Total number of samples counted."""
        return sum(self.buckets)

    def scale_ms(self, interval_seconds: float) -> float:
        """Width of one linear bucket in milliseconds."""
        return (1000.0 * interval_seconds) / self.overflow_index

    def downsample(self, width: int) -> List[int]:
        """
        Fold the buckets into ``width`` columns using index scaling.

        Bucket ``i`` lands in column ``floor(i * width / size)``.
        """
        if width <= 0:
            return []
        columns = [0] * width
        size = self.size
        for index, count in enumerate(self.buckets):
            columns[index * width // size] += count
        return columns


def cumulative_ratios(counts: List[int]) -> List[float]:
    """
    Convert counts into cumulative ratios.

    With no samples every ratio is NaN, so any comparison against a
    threshold is false.
    """
    cumulative = list(accumulate(counts))
    total = cumulative[-1] if cumulative else 0
    if total == 0:
        return [math.nan] * len(cumulative)
    return [value / total for value in cumulative]


def percentile(histogram: Optional[Histogram], interval_seconds: float, percent: float) -> float:
    """
    Query the latency at or below which ``percent`` of the samples fall.

    The upper bound of the matching bucket is reported, not its lower bound.

    Args:
        histogram: Histogram to query; None when it could not be allocated
        interval_seconds: Probe interval the histogram was filled with
        percent: Requested percentile in (0, 100]

    Returns:
        Latency in milliseconds; NaN when there is no data (or no histogram);
        +Infinity when the percentile falls into the overflow bucket
    """
    if histogram is None:
        return math.nan

    threshold = percent / 100.0
    ratios = cumulative_ratios(histogram.buckets)

    found = None
    for index, ratio in enumerate(ratios):
        if ratio >= threshold:
            found = index
            break

    if found is None:
        return math.nan
    if found == histogram.overflow_index:
        return math.inf

    return histogram.scale_ms(interval_seconds) * (found + 1)
