"""Per-iteration samples and their running aggregate.

Durations are accumulated as whole microseconds so that the mean and
the standard error of the mean are exact for identical samples and do
not drift between repeated reads.

The standard error uses the Bessel-corrected sample variance.  With a
single sample the variance is undefined; we report a standard error
of zero in that case rather than NaN, so that a one-sample aggregate
falls back to the percentage floor when compared.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from scaperf.perf.errors import EmptySampleSetError

_ONE_US = timedelta(microseconds=1)


def to_microseconds(value: timedelta) -> int:
    """Convert a timedelta to an integer number of microseconds."""
    return value // _ONE_US


# ---------------------------------------------------------------------------
# TimedSample
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimedSample:
    """Outcome of one timed build invocation."""

    elapsed: timedelta
    success: bool = True
    error: str = ""
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.elapsed < timedelta(0):
            raise ValueError(f"Elapsed time cannot be negative (got {self.elapsed}).")

    @property
    def elapsed_s(self) -> float:
        return self.elapsed.total_seconds()

    @classmethod
    def failed(cls, elapsed: timedelta, cause: BaseException) -> TimedSample:
        """Build a failed sample from the exception that ended the build."""
        return cls(
            elapsed=elapsed,
            success=False,
            error=f"{type(cause).__name__}: {cause}",
            cause=cause,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (the cause object is dropped)."""
        d: dict[str, Any] = {
            "elapsed_s": round(self.elapsed_s, 6),
            "success": self.success,
        }
        if self.error:
            d["error"] = self.error
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimedSample:
        return cls(
            elapsed=timedelta(seconds=data["elapsed_s"]),
            success=data.get("success", True),
            error=data.get("error", ""),
        )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


@dataclass
class DurationSummary:
    """Snapshot of an aggregate's statistics, in seconds."""

    n: int
    mean_s: float
    sem_s: float
    min_s: float
    max_s: float
    failures: int

    def to_dict(self) -> dict[str, float | int]:
        """Serialize to a dict with rounded values."""
        return {
            "n": self.n,
            "mean_s": round(self.mean_s, 6),
            "sem_s": round(self.sem_s, 6),
            "min_s": round(self.min_s, 6),
            "max_s": round(self.max_s, 6),
            "failures": self.failures,
        }

    def __str__(self) -> str:
        if self.n == 0:
            return "no samples"
        return (
            f"mean {self.mean_s:.3f}s ± {self.sem_s:.3f}s "
            f"(n={self.n}, min {self.min_s:.3f}s, max {self.max_s:.3f}s, "
            f"{self.failures} failed)"
        )


# ---------------------------------------------------------------------------
# AggregateExecutionMetrics
# ---------------------------------------------------------------------------


class AggregateExecutionMetrics:
    """Running statistics over the measured samples of one runner.

    Not thread-safe: samples are added sequentially by a single
    measurement loop.
    """

    def __init__(self) -> None:
        self._count = 0
        self._sum_us = 0
        self._sum_sq_us = 0
        self._min_us: int | None = None
        self._max_us: int | None = None
        self._failures: list[TimedSample] = []

    def add(self, sample: TimedSample) -> None:
        """Record one sample.

        Elapsed time is accumulated for failed samples too; a failed
        sample is additionally remembered in :attr:`failures`.
        """
        us = to_microseconds(sample.elapsed)
        self._count += 1
        self._sum_us += us
        self._sum_sq_us += us * us
        self._min_us = us if self._min_us is None else min(self._min_us, us)
        self._max_us = us if self._max_us is None else max(self._max_us, us)
        if not sample.success:
            self._failures.append(sample)

    @property
    def count(self) -> int:
        return self._count

    @property
    def failures(self) -> tuple[TimedSample, ...]:
        """Failed samples in the order they were added."""
        return tuple(self._failures)

    def _require_samples(self) -> None:
        if self._count == 0:
            raise EmptySampleSetError("Cannot compute statistics of an empty sample set.")

    def average(self) -> timedelta:
        """Mean elapsed time."""
        self._require_samples()
        return timedelta(microseconds=self._sum_us / self._count)

    def standard_error_of_mean(self) -> timedelta:
        """Sample standard deviation divided by sqrt(count).

        Zero for a single sample and for identical samples.
        """
        self._require_samples()
        n = self._count
        if n < 2:
            return timedelta(0)
        # n * sum(x^2) - sum(x)^2 is exact in integers and never negative.
        spread = n * self._sum_sq_us - self._sum_us * self._sum_us
        if spread <= 0:
            return timedelta(0)
        return timedelta(microseconds=math.sqrt(spread / (n * n * (n - 1))))

    def min(self) -> timedelta:
        self._require_samples()
        assert self._min_us is not None
        return timedelta(microseconds=self._min_us)

    def max(self) -> timedelta:
        self._require_samples()
        assert self._max_us is not None
        return timedelta(microseconds=self._max_us)

    def summary(self) -> DurationSummary:
        """Return a snapshot of the statistics; NaN fields when empty."""
        if self._count == 0:
            nan = float("nan")
            return DurationSummary(
                n=0, mean_s=nan, sem_s=nan, min_s=nan, max_s=nan, failures=0
            )
        return DurationSummary(
            n=self._count,
            mean_s=self.average().total_seconds(),
            sem_s=self.standard_error_of_mean().total_seconds(),
            min_s=self.min().total_seconds(),
            max_s=self.max().total_seconds(),
            failures=len(self._failures),
        )

    def __str__(self) -> str:
        return str(self.summary())
