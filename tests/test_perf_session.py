"""Tests for scaperf.perf.session — end-to-end candidate/baseline sessions."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from perf_test_helpers import FakeInvoker, fake_time_invocation

from scaperf.perf.config import PerfConfig, VersionDef
from scaperf.perf.errors import BuildFailuresPresentError, PerformanceRegressionError
from scaperf.perf.results import load_record
from scaperf.perf.runner import RunnerPolicy
from scaperf.perf.session import PerfSession


class SessionTestBase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.invokers: dict[str, FakeInvoker] = {}
        patches = [
            patch("scaperf.perf.runner.time.sleep"),
            patch("scaperf.perf.runner.time_invocation", side_effect=fake_time_invocation),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def config(self, **kwargs: object) -> PerfConfig:
        defaults: dict[str, object] = {
            "run_id": "test_run",
            "name": "unit",
            "project_dir": self.root,
            "results_dir": self.root / "results",
            "candidate": "snapshot",
            "baseline": "release",
            "policy": RunnerPolicy(warm_up_iterations=1, measure_iterations=5),
            "versions": {
                "release": VersionDef(name="release", command=["gw"], description="old"),
                "snapshot": VersionDef(name="snapshot", command=["gw"]),
            },
        }
        defaults.update(kwargs)
        return PerfConfig(**defaults)  # type: ignore[arg-type]

    def session(self, config: PerfConfig, **invoker_kwargs: dict[str, object]) -> PerfSession:
        def factory(name: str) -> FakeInvoker:
            invoker = FakeInvoker(**invoker_kwargs.get(name, {}))  # type: ignore[arg-type]
            self.invokers[name] = invoker
            return invoker

        return PerfSession(config, invoker_factory=factory, progress_callback=MagicMock())


class TestPerfSession(SessionTestBase):
    """Tests for PerfSession.run()."""

    def test_on_par(self) -> None:
        config = self.config()
        result = self.session(config).run()
        self.assertTrue(result.passed)
        self.assertIsNotNone(result.verdict)
        assert result.verdict is not None
        self.assertEqual(result.verdict.outcome, "on_par")
        self.assertEqual(result.candidate.version, "snapshot")
        self.assertEqual(result.baseline.version, "release")
        self.assertEqual(result.baseline.description, "old")
        self.assertEqual(len(result.candidate.samples), 5)

    def test_baseline_is_exercised_first(self) -> None:
        order: list[str] = []
        config = self.config()

        def factory(name: str) -> FakeInvoker:
            order.append(name)
            return FakeInvoker()

        PerfSession(config, invoker_factory=factory, progress_callback=MagicMock()).run()
        self.assertEqual(order, ["release", "snapshot"])

    def test_each_version_warmed_up_and_measured(self) -> None:
        self.session(self.config()).run()
        for name in ("release", "snapshot"):
            self.assertEqual(self.invokers[name].builds, 6)
            self.assertEqual(self.invokers[name].cleans, 6)

    def test_faster(self) -> None:
        result = self.session(
            self.config(), snapshot={"build_ms": 800.0}, release={"build_ms": 1000.0}
        ).run()
        assert result.verdict is not None
        self.assertTrue(result.verdict.faster)
        self.assertAlmostEqual(result.verdict.speedup_pct or 0, 25.0, places=6)

    def test_regression_is_reported_not_raised(self) -> None:
        result = self.session(self.config(), snapshot={"build_ms": 1100.0}).run()
        self.assertFalse(result.passed)
        self.assertIsInstance(result.failure, PerformanceRegressionError)
        self.assertIsNone(result.verdict)

    def test_measured_build_failure_fails_session(self) -> None:
        # Build 0 is the warm-up; build 3 is a measured build.
        result = self.session(self.config(), release={"fail_builds": {3}}).run()
        self.assertIsInstance(result.failure, BuildFailuresPresentError)
        assert isinstance(result.failure, BuildFailuresPresentError)
        self.assertEqual(result.failure.sides, ("baseline",))

    def test_warm_up_failure_propagates(self) -> None:
        session = self.session(self.config(), release={"fail_builds": {0}})
        with self.assertRaises(RuntimeError):
            session.run()

    def test_records_written(self) -> None:
        config = self.config()
        self.session(config).run()
        out = self.root / "results" / "test_run"
        self.assertTrue((out / "config.json").exists())
        summary = json.loads((out / "config.json").read_text())
        self.assertEqual(summary["candidate"], "snapshot")
        self.assertEqual(summary["policy"]["measure_iterations"], 5)
        release = load_record(out / "release.json")
        self.assertEqual(release.run_id, "test_run")
        self.assertEqual(len(release.samples), 5)
        self.assertTrue(release.start_time)
        self.assertTrue((out / "snapshot.json").exists())

    def test_invalid_config_raises_before_building(self) -> None:
        config = self.config(baseline="missing")
        session = self.session(config)
        with self.assertRaisesRegex(ValueError, "Invalid performance configuration"):
            session.run()
        self.assertEqual(self.invokers, {})
        self.assertFalse((self.root / "results").exists())

    def test_warnings_do_not_stop_the_run(self) -> None:
        config = self.config(policy=RunnerPolicy(warm_up_iterations=0, measure_iterations=3))
        with self.assertLogs("scaperf", level="WARNING") as logs:
            result = self.session(config).run()
        self.assertTrue(result.passed)
        self.assertIn("measure_iterations", "\n".join(logs.output))

    def test_default_invoker_factory(self) -> None:
        config = self.config()
        session = PerfSession(config)
        invoker = session.invoker_factory("release")
        self.assertEqual(invoker.command, ["gw"])  # type: ignore[attr-defined]


if __name__ == "__main__":
    unittest.main()
