"""CLI commands for scaperf perf.

Subcommands:
    scaperf perf run       Exercise baseline and candidate, then compare
    scaperf perf compare   Repeat the comparison from saved records
    scaperf perf show      Display a saved record
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from scaperf.logging import get_logger, setup_logging
from scaperf.perf.errors import BuildFailedError, PerfAssertionError

log = get_logger("cli")


@click.group()
def perf() -> None:
    """Detect build performance regressions between plugin versions."""


# ---------------------------------------------------------------------------
# perf run
# ---------------------------------------------------------------------------


@perf.command()
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML profile defining the versions to compare.",
)
@click.option(
    "--version",
    "inline_versions",
    type=str,
    multiple=True,
    help="Inline version: 'name:command=...,env.KEY=VALUE' (repeatable).",
)
@click.option("--candidate", type=str, default=None, help="Candidate version name.")
@click.option("--baseline", type=str, default=None, help="Baseline version name.")
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory to build.",
)
@click.option(
    "--arguments",
    type=str,
    default=None,
    help="Build arguments shared by all versions, e.g. 'findbugsMain cpd'.",
)
@click.option(
    "--iterations", type=int, default=None, help="Measured iterations (default: 10)."
)
@click.option("--warmup", type=int, default=None, help="Warm-up iterations (default: 3).")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Per-build timeout in seconds (default: none).",
)
@click.option(
    "--env",
    "env_pairs",
    type=str,
    multiple=True,
    help="KEY=VALUE env var for all versions (repeatable).",
)
@click.option(
    "--results-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Results output directory (default: results).",
)
@click.option("--name", type=str, default=None, help="Human-readable run name.")
@click.option(
    "--quick",
    is_flag=True,
    default=False,
    help="Quick mode: 1 warm-up, 3 measured builds, short pauses.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write a DEBUG log to this file.",
)
def run(  # noqa: PLR0913
    profile_path: Path | None,
    inline_versions: tuple[str, ...],
    candidate: str | None,
    baseline: str | None,
    project_dir: Path | None,
    arguments: str | None,
    iterations: int | None,
    warmup: int | None,
    timeout: float | None,
    env_pairs: tuple[str, ...],
    results_dir: Path | None,
    name: str | None,
    quick: bool,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Build the project under a baseline and a candidate version and compare.

    Exits with status 1 if any measured build failed or if the
    candidate is significantly slower than the baseline.

    \b
    Examples:
        # From a YAML profile
        scaperf perf run --profile perf-findbugs.yaml

        # Inline versions
        scaperf perf run --project-dir fixtures/android \\
            --arguments "findbugsDebug cpd" \\
            --version "baseline:command=./gradlew -PscaVersion=2.1.0" \\
            --version "candidate:command=./gradlew -PscaVersion=2.2.0-SNAPSHOT"
    """
    import shlex

    from scaperf.perf.config import (
        PerfConfig,
        apply_policy_overrides,
        config_from_profile,
        load_profile,
        parse_inline_version,
        quick_config,
    )
    from scaperf.perf.display import format_failure, format_record, format_verdict
    from scaperf.perf.session import PerfSession

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    cli_overrides: dict[str, object] = {
        "name": name,
        "candidate": candidate,
        "baseline": baseline,
        "project_dir": str(project_dir) if project_dir else None,
        "timeout": timeout,
        "iterations": iterations,
        "warmup": warmup,
        "results_dir": str(results_dir) if results_dir else None,
    }

    try:
        if profile_path:
            config = config_from_profile(
                load_profile(profile_path),
                cli_overrides=cli_overrides,
                base_dir=profile_path.parent,
            )
        else:
            config = PerfConfig(
                name=name or "",
                candidate=candidate or "candidate",
                baseline=baseline or "baseline",
                project_dir=project_dir,
                timeout=timeout,
            )
            config.policy = apply_policy_overrides(config.policy, cli_overrides)
            if results_dir:
                config.results_dir = results_dir

        for spec in inline_versions:
            version = parse_inline_version(spec)
            config.versions[version.name] = version
    except (ValueError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    if arguments:
        config.arguments = shlex.split(arguments)
    for pair in env_pairs:
        if "=" in pair:
            k, v = pair.split("=", 1)
            config.env[k] = v
    config.cli_args = sys.argv[1:]

    if quick:
        config = quick_config(config)

    session = PerfSession(config)
    try:
        result = session.run()
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    except BuildFailedError as exc:
        click.echo(f"Build error outside measurement: {exc}", err=True)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        click.echo("\nRun interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904

    click.echo()
    click.echo(format_record(result.baseline))
    click.echo()
    click.echo(format_record(result.candidate))
    click.echo()
    if result.failure is not None:
        click.echo(format_failure(result.failure))
    elif result.verdict is not None:
        click.echo(format_verdict(result.verdict))
    click.echo()
    click.echo(f"Results saved to: {config.output_dir}")

    if not result.passed:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# perf compare
# ---------------------------------------------------------------------------


@perf.command("compare")
@click.argument("candidate_record", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("baseline_record", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output the verdict as JSON.")
def compare(candidate_record: Path, baseline_record: Path, as_json: bool) -> None:
    """Compare two saved records without rebuilding anything.

    CANDIDATE_RECORD and BASELINE_RECORD are JSON files written by
    ``scaperf perf run``.  Exits with status 1 on failure.

    \b
    Examples:
        scaperf perf compare results/perf_001/snapshot.json \\
            results/perf_001/release.json
    """
    from scaperf.perf.display import format_failure, format_verdict
    from scaperf.perf.results import load_record

    try:
        candidate = load_record(candidate_record).to_runner()
        baseline = load_record(baseline_record).to_runner()
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    try:
        verdict = candidate.assert_version_has_not_regressed(baseline)
    except PerfAssertionError as exc:
        if as_json:
            click.echo(json.dumps({"outcome": "failed", "message": str(exc)}, indent=2))
        else:
            click.echo(format_failure(exc))
        raise SystemExit(1) from exc

    if as_json:
        click.echo(json.dumps(verdict.to_dict(), indent=2))
    else:
        click.echo(format_verdict(verdict))


# ---------------------------------------------------------------------------
# perf show
# ---------------------------------------------------------------------------


@perf.command("show")
@click.argument("record_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--samples", "show_samples", is_flag=True, help="List every measured build.")
def show(record_path: Path, show_samples: bool) -> None:
    """Display a saved record.

    RECORD_PATH is a JSON file written by ``scaperf perf run``.
    """
    from scaperf.perf.display import format_record
    from scaperf.perf.results import load_record

    try:
        record = load_record(record_path)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    log.debug("Loaded %d samples from %s", len(record.samples), record_path)
    click.echo(format_record(record, show_samples=show_samples))
