"""Warm-up, measurement and regression comparison for one version.

A :class:`PerformanceRunner` is created per version under test,
exercised once against a build invoker, then compared against a
baseline runner::

    baseline = PerformanceRunner("1.0.0")
    baseline.exercise(baseline_invoker)
    candidate = PerformanceRunner("1.1.0-SNAPSHOT")
    candidate.exercise(candidate_invoker)
    verdict = candidate.assert_version_has_not_regressed(baseline)

Iterations are paced with blocking sleeps on the calling thread so
that filesystem and cache state settle in real wall-clock time between
builds.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass, fields
from datetime import timedelta
from typing import Any, Callable, Iterable

from scaperf.perf.errors import BuildFailuresPresentError, PerformanceRegressionError
from scaperf.perf.invoker import BuildInvoker
from scaperf.perf.metrics import AggregateExecutionMetrics, TimedSample
from scaperf.perf.timing import time_invocation

log = logging.getLogger("scaperf")


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunnerPolicy:
    """Iteration counts, pacing and significance floors."""

    warm_up_iterations: int = 3
    measure_iterations: int = 10
    sleep_after_run_s: float = 0.5
    sleep_after_warm_up_s: float = 5.0
    # Three standard errors keep the odds of a falsely identified
    # regression below 0.3% for normally distributed timings.
    num_standard_errors: float = 3.0
    # Slowdowns under 2% of the baseline mean are ignored.
    minimum_regression_fraction: float = 0.02

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunnerPolicy:
        """Deserialize from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def regression_threshold(
    baseline_average: timedelta,
    standard_error: timedelta,
    policy: RunnerPolicy,
) -> timedelta:
    """Largest slowdown that is still attributed to noise.

    The larger of a fixed fraction of the baseline mean and a fixed
    number of standard errors of the side suspected of being slower.
    """
    percentage_floor = baseline_average * policy.minimum_regression_fraction
    statistical_floor = standard_error * policy.num_standard_errors
    return max(percentage_floor, statistical_floor)


# ---------------------------------------------------------------------------
# Progress and verdict
# ---------------------------------------------------------------------------


@dataclass
class PerfProgress:
    """Progress info passed to the callback after each measured build."""

    version: str
    iteration: int  # 1-based
    total_iterations: int
    elapsed_s: float
    success: bool


ProgressCallback = Callable[[PerfProgress], None]


@dataclass
class ComparisonVerdict:
    """Outcome of a comparison that found no regression."""

    candidate: str
    baseline: str
    outcome: str  # "faster" or "on_par"
    delta_s: float  # candidate mean - baseline mean
    threshold_s: float  # threshold the delta was tested against
    speedup_pct: float | None = None
    message: str = ""

    @property
    def faster(self) -> bool:
        return self.outcome == "faster"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "candidate": self.candidate,
            "baseline": self.baseline,
            "outcome": self.outcome,
            "delta_s": round(self.delta_s, 6),
            "threshold_s": round(self.threshold_s, 6),
            "message": self.message,
        }
        if self.speedup_pct is not None:
            d["speedup_pct"] = round(self.speedup_pct, 2)
        return d


# ---------------------------------------------------------------------------
# PerformanceRunner
# ---------------------------------------------------------------------------


class PerformanceRunner:
    """Measures build times for one version and compares them to a baseline."""

    def __init__(
        self,
        version: str,
        *,
        policy: RunnerPolicy | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.version = version
        self.policy = policy or RunnerPolicy()
        self.progress: ProgressCallback = progress_callback or self._default_progress
        self._metrics = AggregateExecutionMetrics()
        self._samples: list[TimedSample] = []

    @classmethod
    def from_samples(
        cls,
        version: str,
        samples: Iterable[TimedSample],
        *,
        policy: RunnerPolicy | None = None,
    ) -> PerformanceRunner:
        """Rebuild an exercised runner from previously recorded samples."""
        runner = cls(version, policy=policy)
        for sample in samples:
            runner._record(sample)
        return runner

    @property
    def metrics(self) -> AggregateExecutionMetrics:
        return self._metrics

    @property
    def samples(self) -> tuple[TimedSample, ...]:
        """Measured samples in the order they were recorded."""
        return tuple(self._samples)

    def _record(self, sample: TimedSample) -> None:
        self._samples.append(sample)
        self._metrics.add(sample)

    # -- execution ----------------------------------------------------------

    def exercise(self, invoker: BuildInvoker) -> None:
        """Warm up, let the system settle, then measure.

        Warm-up builds are not recorded and their errors propagate.
        Measured build errors are recorded as failed samples and
        surface only at comparison time.  Clean errors always
        propagate.

        Raises:
            RuntimeError: If this runner already holds samples.
        """
        if self._metrics.count:
            raise RuntimeError(f"Version '{self.version}' has already been exercised.")

        policy = self.policy
        log.info(
            "Exercising '%s': %d warm-up + %d measured builds",
            self.version,
            policy.warm_up_iterations,
            policy.measure_iterations,
        )

        for i in range(policy.warm_up_iterations):
            if i > 0:
                time.sleep(policy.sleep_after_run_s)
            invoker.build()
            invoker.clean()

        log.info("Warm up is done")
        time.sleep(policy.sleep_after_warm_up_s)

        for i in range(policy.measure_iterations):
            if i > 0:
                time.sleep(policy.sleep_after_run_s)
            sample = time_invocation(invoker.build)
            self._record(sample)
            invoker.clean()
            self.progress(
                PerfProgress(
                    version=self.version,
                    iteration=i + 1,
                    total_iterations=policy.measure_iterations,
                    elapsed_s=sample.elapsed_s,
                    success=sample.success,
                )
            )

    # -- comparison ---------------------------------------------------------

    def assert_version_has_not_regressed(self, baseline: PerformanceRunner) -> ComparisonVerdict:
        """Fail if this version is significantly slower than *baseline*.

        Returns:
            ComparisonVerdict describing whether this version is faster
            than or on par with the baseline.

        Raises:
            BuildFailuresPresentError: If any measured build failed on
                either side.
            PerformanceRegressionError: If the slowdown exceeds the
                regression threshold.
        """
        failed_sides = []
        if self._metrics.failures:
            failed_sides.append("candidate")
        if baseline.metrics.failures:
            failed_sides.append("baseline")
        if failed_sides:
            raise BuildFailuresPresentError(failed_sides)

        ours = self._metrics.average()
        theirs = baseline.metrics.average()
        delta = ours - theirs

        threshold = self.max_execution_time_regression(theirs)
        if delta > threshold:
            raise PerformanceRegressionError(
                f"Version '{self.version}' is slower than '{baseline.version}'.\n"
                f"Results: {self._metrics}\n"
                f"Baseline: {baseline.metrics}",
                candidate=str(self._metrics),
                baseline=str(baseline.metrics),
                delta_s=delta.total_seconds(),
                threshold_s=threshold.total_seconds(),
            )

        # Not slower; check whether we are measurably faster.
        baseline_threshold = baseline.max_execution_time_regression(theirs)
        if -delta > baseline_threshold:
            # A zero mean is valid: builds shorter than the clock resolution.
            speedup = (theirs / ours - 1) * 100 if ours else math.inf
            message = (
                f"'{self.version}' is faster than '{baseline.version}' by {speedup:.1f}%"
            )
            log.info(message)
            return ComparisonVerdict(
                candidate=self.version,
                baseline=baseline.version,
                outcome="faster",
                delta_s=delta.total_seconds(),
                threshold_s=baseline_threshold.total_seconds(),
                speedup_pct=speedup,
                message=message,
            )

        message = f"'{self.version}' is on par with '{baseline.version}'"
        log.info(message)
        return ComparisonVerdict(
            candidate=self.version,
            baseline=baseline.version,
            outcome="on_par",
            delta_s=delta.total_seconds(),
            threshold_s=threshold.total_seconds(),
            message=message,
        )

    def max_execution_time_regression(self, baseline_average: timedelta) -> timedelta:
        """Allowed slowdown of this runner relative to *baseline_average*."""
        return regression_threshold(
            baseline_average,
            self._metrics.standard_error_of_mean(),
            self.policy,
        )

    @staticmethod
    def _default_progress(progress: PerfProgress) -> None:
        """Default progress callback: one log line per measured build."""
        status = "ok" if progress.success else "FAILED"
        log.info(
            "Iteration %d / %d is done. %8.2fs [%s]",
            progress.iteration,
            progress.total_iterations,
            progress.elapsed_s,
            status,
        )
