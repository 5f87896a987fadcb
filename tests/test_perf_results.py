"""Tests for scaperf.perf.results — persisted run records."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from perf_test_helpers import make_runner, ms, spread_durations

from scaperf.perf.errors import PerformanceRegressionError
from scaperf.perf.results import (
    PerfRunRecord,
    load_record,
    record_filename,
    save_record,
)
from scaperf.perf.runner import RunnerPolicy


class TestRecordFilename(unittest.TestCase):
    def test_plain(self) -> None:
        self.assertEqual(record_filename("release-2.1.0"), "release-2.1.0.json")

    def test_unsafe_characters(self) -> None:
        self.assertEqual(record_filename("feature/new cache"), "feature_new_cache.json")

    def test_nothing_safe_left(self) -> None:
        self.assertEqual(record_filename("///"), "version.json")


class TestPerfRunRecord(unittest.TestCase):
    """Tests for PerfRunRecord conversion."""

    def test_from_runner_copies_samples(self) -> None:
        policy = RunnerPolicy(measure_iterations=4)
        runner = make_runner("snap", [100, 200, 300, 400], failed={2}, policy=policy)
        record = PerfRunRecord.from_runner(runner, description="d", run_id="r1")
        self.assertEqual(record.version, "snap")
        self.assertEqual(record.description, "d")
        self.assertEqual(record.run_id, "r1")
        self.assertEqual(record.policy, policy)
        self.assertEqual(len(record.samples), 4)
        self.assertFalse(record.samples[2].success)

    def test_to_dict_includes_summary(self) -> None:
        record = PerfRunRecord.from_runner(make_runner("v", [1000, 3000]))
        d = record.to_dict()
        self.assertEqual(d["summary"]["n"], 2)
        self.assertEqual(d["summary"]["mean_s"], 2.0)
        self.assertEqual(d["summary"]["sem_s"], 1.0)
        self.assertEqual(d["samples"][0], {"elapsed_s": 1.0, "success": True})

    def test_empty_record_serializes(self) -> None:
        d = PerfRunRecord(version="v").to_dict()
        self.assertEqual(d["samples"], [])
        self.assertEqual(d["summary"]["n"], 0)

    def test_to_runner_rebuilds_statistics(self) -> None:
        record = PerfRunRecord.from_runner(make_runner("v", spread_durations(1000, 5)))
        runner = record.to_runner()
        self.assertEqual(runner.version, "v")
        self.assertEqual(runner.metrics.count, 10)
        self.assertEqual(runner.metrics.average(), ms(1000))
        self.assertEqual(runner.metrics.standard_error_of_mean(), ms(5))


class TestSaveLoad(unittest.TestCase):
    """Tests for save_record() and load_record()."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_save_creates_directory(self) -> None:
        record = PerfRunRecord.from_runner(make_runner("release", [1000, 1000]))
        path = save_record(self.root / "run" / "nested", record)
        self.assertEqual(path, self.root / "run" / "nested" / "release.json")
        self.assertEqual(json.loads(path.read_text())["version"], "release")

    def test_loaded_record_reproduces_comparison(self) -> None:
        """A comparison from saved records matches the live one."""
        baseline = make_runner("release", [1000] * 10)
        candidate = make_runner("snapshot", spread_durations(1050, 2))
        b_path = save_record(self.root, PerfRunRecord.from_runner(baseline))
        c_path = save_record(self.root, PerfRunRecord.from_runner(candidate))

        loaded_c = load_record(c_path).to_runner()
        loaded_b = load_record(b_path).to_runner()
        with self.assertRaises(PerformanceRegressionError) as ctx:
            loaded_c.assert_version_has_not_regressed(loaded_b)
        self.assertAlmostEqual(ctx.exception.delta_s, 0.05, places=6)

    def test_failures_survive_save(self) -> None:
        runner = make_runner("v", [100, 200], failed={1})
        path = save_record(self.root, PerfRunRecord.from_runner(runner))
        loaded = load_record(path)
        self.assertFalse(loaded.samples[1].success)
        self.assertIn("build 1 failed", loaded.samples[1].error)
        self.assertEqual(len(loaded.to_runner().metrics.failures), 1)

    def test_load_missing(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_record(self.root / "nope.json")

    def test_load_invalid_json(self) -> None:
        path = self.root / "bad.json"
        path.write_text("{not json")
        with self.assertRaises(ValueError):
            load_record(path)

    def test_load_not_a_record(self) -> None:
        path = self.root / "other.json"
        path.write_text(json.dumps({"hello": "world"}))
        with self.assertRaisesRegex(ValueError, "not a scaperf run record"):
            load_record(path)

    def test_load_malformed_samples(self) -> None:
        """Broken sample or policy entries are reported as ValueError."""
        cases = {
            "missing_elapsed": {"version": "x", "samples": [{"success": True}]},
            "sample_not_a_dict": {"version": "x", "samples": [3]},
            "elapsed_not_a_number": {"version": "x", "samples": [{"elapsed_s": "fast"}]},
            "policy_not_a_dict": {"version": "x", "policy": [1, 2]},
        }
        for name, data in cases.items():
            with self.subTest(name=name):
                path = self.root / f"{name}.json"
                path.write_text(json.dumps(data))
                with self.assertRaisesRegex(ValueError, "not a scaperf run record"):
                    load_record(path)


if __name__ == "__main__":
    unittest.main()
