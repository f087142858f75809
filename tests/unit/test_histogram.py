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
Unit tests for pingscope.histogram module.

Covers bucket mapping, the overflow bucket, downsampling and the
percentile query with its NaN / +Infinity sentinels.
"""

import math
import os
import sys
import unittest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from pingscope.histogram import (  # noqa: E402  # pylint: disable=wrong-import-position
    HISTOGRAM_BUCKETS,
    Histogram,
    cumulative_ratios,
    percentile,
)


class TestBucketIndex(unittest.TestCase):
    """Test latency to bucket mapping"""

    def setUp(self):
        self.histogram = Histogram()

    def test_default_size(self):
        self.assertEqual(self.histogram.size, HISTOGRAM_BUCKETS)
        self.assertEqual(self.histogram.overflow_index, 1000)

    def test_linear_buckets_one_second_interval(self):
        self.assertEqual(self.histogram.bucket_index(0.0, 1.0), 0)
        self.assertEqual(self.histogram.bucket_index(0.999, 1.0), 0)
        self.assertEqual(self.histogram.bucket_index(10.0, 1.0), 10)
        self.assertEqual(self.histogram.bucket_index(999.5, 1.0), 999)

    def test_bucket_width_follows_interval(self):
        # 0.5 s interval: 1000 buckets over 500 ms, 0.5 ms each
        self.assertEqual(self.histogram.bucket_index(1.0, 0.5), 2)
        self.assertAlmostEqual(self.histogram.scale_ms(0.5), 0.5)

    def test_latency_at_or_beyond_interval_overflows(self):
        self.assertEqual(self.histogram.bucket_index(1000.0, 1.0), 1000)
        self.assertEqual(self.histogram.bucket_index(25000.0, 1.0), 1000)

    def test_negative_latency_clamps_to_first_bucket(self):
        self.assertEqual(self.histogram.bucket_index(-3.0, 1.0), 0)

    def test_add_counts_sample(self):
        index = self.histogram.add(42.0, 1.0)
        self.assertEqual(index, 42)
        self.assertEqual(self.histogram.buckets[42], 1)
        self.assertEqual(self.histogram.total(), 1)

    def test_too_small_histogram_rejected(self):
        with self.assertRaises(ValueError):
            Histogram(1)


class TestDownsample(unittest.TestCase):
    """Test folding buckets into display columns"""

    def test_columns_preserve_total(self):
        histogram = Histogram()
        for latency in (1.0, 250.0, 500.0, 999.0, 4000.0):
            histogram.add(latency, 1.0)
        columns = histogram.downsample(10)
        self.assertEqual(len(columns), 10)
        self.assertEqual(sum(columns), 5)

    def test_index_scaling(self):
        histogram = Histogram(10)
        histogram.buckets = [1, 0, 0, 0, 0, 0, 0, 0, 0, 2]
        # Bucket i lands in column i * 5 // 10
        self.assertEqual(histogram.downsample(5), [1, 0, 0, 0, 2])

    def test_non_positive_width(self):
        self.assertEqual(Histogram().downsample(0), [])


class TestCumulativeRatios(unittest.TestCase):
    """Test cumulative ratio computation"""

    def test_ratios(self):
        self.assertEqual(cumulative_ratios([1, 1, 2]), [0.25, 0.5, 1.0])

    def test_empty_distribution_is_all_nan(self):
        ratios = cumulative_ratios([0, 0, 0])
        self.assertEqual(len(ratios), 3)
        self.assertTrue(all(math.isnan(ratio) for ratio in ratios))


class TestPercentile(unittest.TestCase):
    """Test the percentile query"""

    def test_median_of_ten_samples(self):
        histogram = Histogram()
        for latency in range(10, 101, 10):
            histogram.add(float(latency), 1.0)
        # The 50% mark is reached in bucket 50; its upper bound is reported.
        self.assertAlmostEqual(percentile(histogram, 1.0, 50.0), 51.0)

    def test_percentile_100_with_overflow_is_infinite(self):
        histogram = Histogram()
        histogram.add(20.0, 1.0)
        histogram.add(5000.0, 1.0)
        self.assertEqual(percentile(histogram, 1.0, 100.0), math.inf)
        self.assertAlmostEqual(percentile(histogram, 1.0, 50.0), 21.0)

    def test_empty_histogram_is_nan(self):
        self.assertTrue(math.isnan(percentile(Histogram(), 1.0, 95.0)))

    def test_missing_histogram_is_nan(self):
        self.assertTrue(math.isnan(percentile(None, 1.0, 95.0)))

    def test_query_is_idempotent(self):
        histogram = Histogram()
        for latency in (3.0, 7.0, 11.0):
            histogram.add(latency, 0.5)
        first = percentile(histogram, 0.5, 90.0)
        second = percentile(histogram, 0.5, 90.0)
        self.assertEqual(first, second)
        self.assertEqual(histogram.total(), 3)

    def test_monotonic_in_percent(self):
        histogram = Histogram()
        for latency in (5.0, 15.0, 25.0, 35.0, 45.0):
            histogram.add(latency, 1.0)
        values = [percentile(histogram, 1.0, p) for p in (10.0, 40.0, 60.0, 100.0)]
        self.assertEqual(values, sorted(values))


if __name__ == "__main__":
    unittest.main()
