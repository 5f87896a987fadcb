"""Persisted records of exercised versions.

Each exercised version is written to ``<output_dir>/<version>.json``
so that the regression check can be repeated later, or against a
different baseline, without rebuilding anything::

    {
      "version": "snapshot",
      "description": "...",
      "policy": {...},
      "start_time": "...",
      "end_time": "...",
      "samples": [{"elapsed_s": 12.3, "success": true}, ...],
      "summary": {"n": 10, "mean_s": ..., "sem_s": ..., ...}
    }

The summary is informational; loading always recomputes statistics
from the samples.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from scaperf.perf.metrics import TimedSample
from scaperf.perf.runner import PerformanceRunner, RunnerPolicy

log = logging.getLogger("scaperf")

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class PerfRunRecord:
    """Measured samples of one version, plus provenance."""

    version: str
    description: str = ""
    policy: RunnerPolicy = field(default_factory=RunnerPolicy)
    samples: list[TimedSample] = field(default_factory=list)
    start_time: str = ""
    end_time: str = ""
    run_id: str = ""

    @classmethod
    def from_runner(cls, runner: PerformanceRunner, **kwargs: Any) -> PerfRunRecord:
        return cls(
            version=runner.version,
            policy=runner.policy,
            samples=list(runner.samples),
            **kwargs,
        )

    def to_runner(self) -> PerformanceRunner:
        """Rebuild a runner holding this record's samples."""
        return PerformanceRunner.from_samples(self.version, self.samples, policy=self.policy)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "description": self.description,
            "run_id": self.run_id,
            "policy": self.policy.to_dict(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "samples": [s.to_dict() for s in self.samples],
            "summary": self.to_runner().metrics.summary().to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PerfRunRecord:
        return cls(
            version=data["version"],
            description=data.get("description", ""),
            run_id=data.get("run_id", ""),
            policy=RunnerPolicy.from_dict(data.get("policy", {})),
            samples=[TimedSample.from_dict(s) for s in data.get("samples", [])],
            start_time=data.get("start_time", ""),
            end_time=data.get("end_time", ""),
        )


def record_filename(version: str) -> str:
    """File name used for a version's record."""
    safe = _UNSAFE_FILENAME.sub("_", version).strip("_") or "version"
    return f"{safe}.json"


def save_record(output_dir: Path, record: PerfRunRecord) -> Path:
    """Write *record* into *output_dir* and return the file path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / record_filename(record.version)
    path.write_text(json.dumps(record.to_dict(), indent=2) + "\n")
    log.info("Wrote %s", path)
    return path


def load_record(path: Path) -> PerfRunRecord:
    """Load a record written by :func:`save_record`.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file is not a valid record.
    """
    if not path.exists():
        raise FileNotFoundError(f"No record at {path}")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict) or "version" not in data:
        raise ValueError(f"{path} is not a scaperf run record")
    try:
        return PerfRunRecord.from_dict(data)
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"{path} is not a scaperf run record: {exc!r}") from exc
