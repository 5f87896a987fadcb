"""Tests for scaperf.perf.display — terminal formatting."""

from __future__ import annotations

import unittest

from perf_test_helpers import make_runner, spread_durations

from scaperf.perf.display import (
    format_failure,
    format_pct,
    format_record,
    format_time,
    format_verdict,
)
from scaperf.perf.errors import (
    BuildFailuresPresentError,
    PerfAssertionError,
    PerformanceRegressionError,
)
from scaperf.perf.results import PerfRunRecord
from scaperf.perf.runner import ComparisonVerdict


class TestFormatTime(unittest.TestCase):
    def test_units(self) -> None:
        self.assertEqual(format_time(0.0005), "500µs")
        self.assertEqual(format_time(0.25), "250.00ms")
        self.assertEqual(format_time(12.5), "12.50s")
        self.assertEqual(format_time(125), "2m5s")

    def test_negative(self) -> None:
        self.assertEqual(format_time(-0.02, 3), "-20.000ms")

    def test_nan(self) -> None:
        self.assertEqual(format_time(float("nan")), "N/A")


class TestFormatPct(unittest.TestCase):
    def test_signs(self) -> None:
        self.assertEqual(format_pct(11.11), "+11.1%")
        self.assertEqual(format_pct(-3.0), "-3.0%")
        self.assertEqual(format_pct(float("nan")), "N/A")


class TestFormatRecord(unittest.TestCase):
    """Tests for format_record()."""

    def test_summary_lines(self) -> None:
        record = PerfRunRecord.from_runner(
            make_runner("release", [1000, 3000], failed={1}), description="last release"
        )
        text = format_record(record)
        self.assertIn("Version 'release'", text)
        self.assertIn("last release", text)
        self.assertIn("Mean: 2.000s ± 1.000s (SEM)", text)
        self.assertIn("Range: 1.000s .. 3.000s", text)
        self.assertIn("Failed builds: 1/2", text)
        self.assertNotIn("FAILED", text)

    def test_show_samples(self) -> None:
        record = PerfRunRecord.from_runner(make_runner("v", [1000, 3000], failed={1}))
        text = format_record(record, show_samples=True)
        self.assertIn("FAILED  RuntimeError: build 1 failed", text)
        self.assertIn("ok", text)

    def test_empty_record(self) -> None:
        text = format_record(PerfRunRecord(version="v"))
        self.assertIn("No samples recorded.", text)
        self.assertNotIn("Mean", text)


class TestFormatVerdict(unittest.TestCase):
    def test_faster(self) -> None:
        baseline = make_runner("old", spread_durations(1000, 1))
        verdict = make_runner("new", [900] * 10).assert_version_has_not_regressed(baseline)
        text = format_verdict(verdict)
        self.assertIn("✓ FASTER  +11.1% speedup", text)
        self.assertIn("new vs old", text)

    def test_on_par(self) -> None:
        verdict = ComparisonVerdict(
            candidate="new", baseline="old", outcome="on_par", delta_s=0.01, threshold_s=0.02
        )
        text = format_verdict(verdict)
        self.assertTrue(text.startswith("✓ ON PAR"))
        self.assertIn("delta 10.000ms", text)
        self.assertIn("threshold 20.000ms", text)


class TestFormatFailure(unittest.TestCase):
    def test_regression(self) -> None:
        exc = PerformanceRegressionError(
            "slower", candidate="mean 1.050s", baseline="mean 1.000s",
            delta_s=0.05, threshold_s=0.02,
        )
        text = format_failure(exc)
        self.assertIn("✗ REGRESSION", text)
        self.assertIn("delta 50.000ms exceeds threshold 20.000ms", text)
        self.assertIn("Candidate: mean 1.050s", text)

    def test_build_failures(self) -> None:
        text = format_failure(BuildFailuresPresentError(["candidate", "baseline"]))
        self.assertIn("✗ BUILD FAILURES", text)
        self.assertIn("candidate, baseline", text)

    def test_generic(self) -> None:
        self.assertEqual(format_failure(PerfAssertionError("odd")), "✗ odd")


if __name__ == "__main__":
    unittest.main()
