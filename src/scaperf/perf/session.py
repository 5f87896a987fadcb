"""End-to-end candidate-versus-baseline session.

Orchestrates:
1. Configuration validation
2. Exercising the baseline, then the candidate
3. Writing one record per version
4. The regression check
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Callable

from scaperf.perf.config import PerfConfig, validate_config
from scaperf.perf.errors import PerfAssertionError
from scaperf.perf.invoker import BuildInvoker
from scaperf.perf.results import PerfRunRecord, save_record
from scaperf.perf.runner import ComparisonVerdict, PerformanceRunner, ProgressCallback

log = logging.getLogger("scaperf")

InvokerFactory = Callable[[str], BuildInvoker]


@dataclass
class SessionResult:
    """Records of both versions and the outcome of the comparison."""

    candidate: PerfRunRecord
    baseline: PerfRunRecord
    verdict: ComparisonVerdict | None = None
    failure: PerfAssertionError | None = None

    @property
    def passed(self) -> bool:
        return self.failure is None


class PerfSession:
    """Runs both versions of a PerfConfig and compares them.

    Usage::

        session = PerfSession(config)
        result = session.run()
        if not result.passed:
            ...
    """

    def __init__(
        self,
        config: PerfConfig,
        *,
        invoker_factory: InvokerFactory | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.invoker_factory: InvokerFactory = invoker_factory or config.invoker_for
        self.progress_callback = progress_callback

    def run(self) -> SessionResult:
        """Exercise baseline and candidate, save records, compare.

        Raises:
            ValueError: If the configuration is invalid.
            BuildFailedError: If a warm-up build or any clean fails.
        """
        errors = validate_config(self.config)
        fatal = [e for e in errors if e.severity == "error"]
        for w in (e for e in errors if e.severity == "warning"):
            log.warning("Config warning: %s: %s", w.field, w.message)
        if fatal:
            messages = [f"  {e.field}: {e.message}" for e in fatal]
            raise ValueError("Invalid performance configuration:\n" + "\n".join(messages))

        output_dir = self.config.output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / "config.json").write_text(
            json.dumps(self._config_summary(), indent=2) + "\n"
        )

        baseline_runner, baseline_record = self._exercise(self.config.baseline)
        candidate_runner, candidate_record = self._exercise(self.config.candidate)

        result = SessionResult(candidate=candidate_record, baseline=baseline_record)
        try:
            result.verdict = candidate_runner.assert_version_has_not_regressed(baseline_runner)
        except PerfAssertionError as exc:
            log.error("%s", exc)
            result.failure = exc
        return result

    def _exercise(self, name: str) -> tuple[PerformanceRunner, PerfRunRecord]:
        version = self.config.versions[name]
        runner = PerformanceRunner(
            name,
            policy=self.config.policy,
            progress_callback=self.progress_callback,
        )
        start = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        runner.exercise(self.invoker_factory(name))
        record = PerfRunRecord.from_runner(
            runner,
            description=version.description,
            start_time=start,
            end_time=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            run_id=self.config.run_id,
        )
        save_record(self.config.output_dir, record)
        log.info("'%s': %s", name, runner.metrics)
        return runner, record

    def _config_summary(self) -> dict[str, object]:
        cfg = self.config
        return {
            "run_id": cfg.run_id,
            "name": cfg.name,
            "description": cfg.description,
            "candidate": cfg.candidate,
            "baseline": cfg.baseline,
            "project_dir": str(cfg.project_dir) if cfg.project_dir else None,
            "arguments": cfg.arguments,
            "clean_arguments": cfg.clean_arguments,
            "timeout": cfg.timeout,
            "policy": cfg.policy.to_dict(),
            "versions": {name: v.to_dict() for name, v in cfg.versions.items()},
            "cli_args": cfg.cli_args,
        }
