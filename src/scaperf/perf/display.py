"""Terminal display formatting for performance runs and verdicts."""

from __future__ import annotations

import math

from scaperf.perf.errors import (
    BuildFailuresPresentError,
    PerfAssertionError,
    PerformanceRegressionError,
)
from scaperf.perf.results import PerfRunRecord
from scaperf.perf.runner import ComparisonVerdict


def format_time(seconds: float, precision: int = 2) -> str:
    """Format a time value with adaptive units."""
    if math.isnan(seconds):
        return "N/A"
    if seconds < 0:
        return "-" + format_time(-seconds, precision)
    if seconds < 0.001:
        return f"{seconds * 1_000_000:.0f}µs"
    if seconds < 1:
        return f"{seconds * 1000:.{precision}f}ms"
    if seconds < 60:
        return f"{seconds:.{precision}f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m{secs:.0f}s"


def format_pct(value: float, precision: int = 1) -> str:
    """Format a percentage with sign."""
    if math.isnan(value):
        return "N/A"
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.{precision}f}%"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def format_record(record: PerfRunRecord, *, show_samples: bool = False) -> str:
    """Format one version's measurements for display."""
    summary = record.to_runner().metrics.summary()
    policy = record.policy

    title = f"Version '{record.version}'"
    lines = [title, "─" * len(title)]
    if record.description:
        lines.append(record.description)
    lines.append(
        f"Iterations: {policy.measure_iterations} measured + "
        f"{policy.warm_up_iterations} warm-up"
    )
    if record.start_time and record.end_time:
        lines.append(f"Time: {record.start_time} → {record.end_time}")

    if summary.n == 0:
        lines.append("No samples recorded.")
        return "\n".join(lines)

    lines.append(
        f"Mean: {format_time(summary.mean_s, 3)} ± {format_time(summary.sem_s, 3)} (SEM)"
    )
    lines.append(f"Range: {format_time(summary.min_s, 3)} .. {format_time(summary.max_s, 3)}")
    lines.append(f"Failed builds: {summary.failures}/{summary.n}")

    if show_samples:
        lines.append("")
        for i, sample in enumerate(record.samples, 1):
            status = "ok" if sample.success else f"FAILED  {sample.error}"
            lines.append(f"  {i:>3}  {format_time(sample.elapsed_s, 3):>10}  {status}")

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------


def format_verdict(verdict: ComparisonVerdict) -> str:
    """One-paragraph summary of a passing comparison."""
    if verdict.faster and verdict.speedup_pct is not None:
        head = f"✓ FASTER  {format_pct(verdict.speedup_pct)} speedup"
    else:
        head = "✓ ON PAR"
    return (
        f"{head}\n"
        f"  {verdict.candidate} vs {verdict.baseline}: "
        f"delta {format_time(verdict.delta_s, 3)}, "
        f"threshold {format_time(verdict.threshold_s, 3)}"
    )


def format_failure(exc: PerfAssertionError) -> str:
    """One-paragraph summary of a failing comparison."""
    if isinstance(exc, PerformanceRegressionError):
        return (
            "✗ REGRESSION\n"
            f"  delta {format_time(exc.delta_s, 3)} exceeds threshold "
            f"{format_time(exc.threshold_s, 3)}\n"
            f"  Candidate: {exc.candidate}\n"
            f"  Baseline:  {exc.baseline}"
        )
    if isinstance(exc, BuildFailuresPresentError):
        return f"✗ BUILD FAILURES\n  Failed side(s): {', '.join(exc.sides)}"
    return f"✗ {exc}"
