"""Exceptions raised by the performance harness.

Comparison failures derive from :class:`AssertionError` so that a
regression check called from a test suite fails the test instead of
erroring it.
"""

from __future__ import annotations

from typing import Sequence


class PerfError(Exception):
    """Base class for all scaperf harness errors."""


class EmptySampleSetError(PerfError, ValueError):
    """Statistics were requested from an aggregate with no samples."""


class BuildFailedError(PerfError):
    """A build or clean command exited unsuccessfully."""

    def __init__(self, message: str, *, exit_code: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


class BuildTimeoutError(BuildFailedError):
    """A build or clean command exceeded its timeout and was killed."""


class PerfAssertionError(PerfError, AssertionError):
    """A version comparison did not hold."""


class BuildFailuresPresentError(PerfAssertionError):
    """At least one measured build failed on one side of a comparison."""

    def __init__(self, sides: Sequence[str]) -> None:
        self.sides = tuple(sides)
        super().__init__(f"Some builds have failed ({', '.join(self.sides)}).")


class PerformanceRegressionError(PerfAssertionError):
    """The candidate is slower than the baseline beyond the allowed threshold."""

    def __init__(
        self,
        message: str,
        *,
        candidate: str,
        baseline: str,
        delta_s: float,
        threshold_s: float,
    ) -> None:
        super().__init__(message)
        self.candidate = candidate
        self.baseline = baseline
        self.delta_s = delta_s
        self.threshold_s = threshold_s
