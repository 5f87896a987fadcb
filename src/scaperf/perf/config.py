"""Performance run configuration and version definition loading.

Handles:
- Loading profiles from YAML files.
- Parsing inline version definitions from CLI arguments.
- Merging CLI options with profile values.
- Building a build invoker per version.
- Validating the final configuration before any build runs.
"""

from __future__ import annotations

import logging
import shlex
import time
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from scaperf.perf.invoker import CommandBuildInvoker
from scaperf.perf.results import record_filename
from scaperf.perf.runner import RunnerPolicy

log = logging.getLogger("scaperf")


# ---------------------------------------------------------------------------
# Version definition
# ---------------------------------------------------------------------------


@dataclass
class VersionDef:
    """How to build the fixture project with one plugin version."""

    name: str
    description: str = ""
    command: list[str] = field(default_factory=list)
    arguments: list[str] | None = None  # None = use the run-wide arguments
    project_dir: Path | None = None  # None = use the run-wide project dir
    env: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (sparse: omits defaults)."""
        d: dict[str, Any] = {"name": self.name, "command": self.command}
        if self.description:
            d["description"] = self.description
        if self.arguments is not None:
            d["arguments"] = self.arguments
        if self.project_dir is not None:
            d["project_dir"] = str(self.project_dir)
        if self.env:
            d["env"] = self.env
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VersionDef:
        project_dir = data.get("project_dir")
        arguments = data.get("arguments")
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            command=_as_argv(data.get("command", [])),
            arguments=_as_argv(arguments) if arguments is not None else None,
            project_dir=Path(project_dir) if project_dir else None,
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
        )


def _as_argv(value: str | list[Any]) -> list[str]:
    """Accept either a shell-style string or a list of arguments."""
    if isinstance(value, str):
        return shlex.split(value)
    return [str(v) for v in value]


# ---------------------------------------------------------------------------
# PerfConfig
# ---------------------------------------------------------------------------


@dataclass
class PerfConfig:
    """Resolved configuration for a candidate-versus-baseline run."""

    # Identity
    run_id: str = ""  # Auto-generated if empty
    name: str = ""
    description: str = ""

    # Versions to compare
    versions: dict[str, VersionDef] = field(default_factory=dict)
    candidate: str = "candidate"
    baseline: str = "baseline"

    # Shared build settings (per-version values take precedence)
    project_dir: Path | None = None
    arguments: list[str] = field(default_factory=lambda: ["build"])
    clean_arguments: list[str] = field(default_factory=lambda: ["clean"])
    env: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None  # None = wait for builds indefinitely

    policy: RunnerPolicy = field(default_factory=RunnerPolicy)

    results_dir: Path = field(default_factory=lambda: Path("results"))

    # CLI provenance
    cli_args: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.run_id:
            self.run_id = f"perf_{time.strftime('%Y%m%d_%H%M%S')}"

    @property
    def output_dir(self) -> Path:
        return self.results_dir / self.run_id

    def invoker_for(self, name: str) -> CommandBuildInvoker:
        """Build the invoker for the version called *name*."""
        version = self.versions[name]
        project_dir = version.project_dir or self.project_dir
        if project_dir is None:
            raise ValueError(f"No project directory for version '{name}'.")
        env = dict(self.env)
        env.update(version.env)
        return CommandBuildInvoker(
            version.command,
            version.arguments if version.arguments is not None else self.arguments,
            project_dir=project_dir,
            env=env,
            timeout=self.timeout,
            clean_arguments=self.clean_arguments,
        )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: PerfConfig) -> list[ValidationError]:
    """Validate a run configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    for role, name in (("candidate", config.candidate), ("baseline", config.baseline)):
        if name not in config.versions:
            errors.append(
                ValidationError(
                    field=role,
                    message=(
                        f"The {role} version '{name}' is not defined. "
                        f"Use --profile or --version to define it."
                    ),
                )
            )

    if config.candidate == config.baseline:
        errors.append(
            ValidationError(
                field="candidate",
                message=f"Candidate and baseline are the same version ('{config.candidate}').",
            )
        )

    # Each version's record is written to <output_dir>/<record_filename>.
    seen: dict[str, str] = {}
    for name in config.versions:
        filename = record_filename(name)
        if filename in seen:
            errors.append(
                ValidationError(
                    field=f"versions.{name}",
                    message=(
                        f"Versions '{seen[filename]}' and '{name}' would both be "
                        f"saved as {filename}. Rename one of them."
                    ),
                )
            )
        else:
            seen[filename] = name

    for name, version in config.versions.items():
        if not version.command:
            errors.append(
                ValidationError(
                    field=f"versions.{name}.command",
                    message=f"Version '{name}' has no build command.",
                )
            )
        project_dir = version.project_dir or config.project_dir
        if project_dir is None:
            errors.append(
                ValidationError(
                    field=f"versions.{name}.project_dir",
                    message=(
                        f"Version '{name}' has no project directory. "
                        f"Set --project-dir or project_dir in the profile."
                    ),
                )
            )
        elif not project_dir.is_dir():
            errors.append(
                ValidationError(
                    field=f"versions.{name}.project_dir",
                    message=f"Project directory for '{name}' does not exist: {project_dir}",
                )
            )

    policy = config.policy
    if policy.measure_iterations < 2:
        errors.append(
            ValidationError(
                field="policy.measure_iterations",
                message=(
                    f"Need at least 2 measured iterations for a standard error "
                    f"(got {policy.measure_iterations})."
                ),
            )
        )
    elif policy.measure_iterations < 5:
        errors.append(
            ValidationError(
                field="policy.measure_iterations",
                message=(
                    f"Only {policy.measure_iterations} measured iterations; "
                    f"the regression check will have little statistical power."
                ),
                severity="warning",
            )
        )

    if policy.warm_up_iterations < 0:
        errors.append(
            ValidationError(
                field="policy.warm_up_iterations",
                message=(
                    f"Warm-up iterations cannot be negative (got {policy.warm_up_iterations})."
                ),
            )
        )

    for attr in ("sleep_after_run_s", "sleep_after_warm_up_s"):
        if getattr(policy, attr) < 0:
            errors.append(
                ValidationError(
                    field=f"policy.{attr}",
                    message=f"Sleep durations cannot be negative (got {getattr(policy, attr)}).",
                )
            )

    for attr in ("num_standard_errors", "minimum_regression_fraction"):
        if getattr(policy, attr) < 0:
            errors.append(
                ValidationError(
                    field=f"policy.{attr}",
                    message=f"Significance floors cannot be negative (got {getattr(policy, attr)}).",
                )
            )

    if config.timeout is not None and config.timeout <= 0:
        errors.append(
            ValidationError(
                field="timeout",
                message=f"Timeout must be positive (got {config.timeout}).",
            )
        )

    return errors


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a run profile from a YAML file.

    Profile format::

        name: "findbugs on the android fixture"
        project_dir: fixtures/android
        arguments: [findbugsDebug, cpd]
        timeout: 900

        candidate: snapshot
        baseline: release

        policy:
          warm_up_iterations: 3
          measure_iterations: 10

        versions:
          release:
            command: ./gradlew -PscaVersion=2.1.0
          snapshot:
            command: ["./gradlew", "-PscaVersion=2.2.0-SNAPSHOT"]
            env:
              GRADLE_OPTS: "-Xmx2g"

    Returns:
        The parsed YAML as a dict.
    """
    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    data = yaml.safe_load(profile_path.read_text())

    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")

    return data


def config_from_profile(
    profile_data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
    base_dir: Path | None = None,
) -> PerfConfig:
    """Build a PerfConfig from a parsed YAML profile.

    CLI overrides take precedence over profile values.  Relative
    project directories in the profile are resolved against
    *base_dir* (normally the profile's own directory).

    Args:
        profile_data: Parsed YAML profile dict.
        cli_overrides: CLI option values keyed by PerfConfig field
            name, plus ``warmup`` and ``iterations`` for the policy.
        base_dir: Directory that relative profile paths refer to.
    """
    cli = cli_overrides or {}

    def _path(value: str | None) -> Path | None:
        if not value:
            return None
        p = Path(value)
        if base_dir is not None and not p.is_absolute():
            p = base_dir / p
        return p

    policy_data = profile_data.get("policy") or {}
    if not isinstance(policy_data, dict):
        raise ValueError("Profile 'policy' must be a mapping")

    config = PerfConfig(
        name=cli.get("name") or profile_data.get("name", ""),
        description=profile_data.get("description", ""),
        candidate=cli.get("candidate") or profile_data.get("candidate", "candidate"),
        baseline=cli.get("baseline") or profile_data.get("baseline", "baseline"),
        project_dir=(
            Path(cli["project_dir"])
            if cli.get("project_dir")
            else _path(profile_data.get("project_dir"))
        ),
        env={str(k): str(v) for k, v in (profile_data.get("env") or {}).items()},
        timeout=cli.get("timeout") or profile_data.get("timeout"),
        policy=RunnerPolicy.from_dict(policy_data),
    )
    if "arguments" in profile_data:
        config.arguments = _as_argv(profile_data["arguments"])
    if "clean_arguments" in profile_data:
        config.clean_arguments = _as_argv(profile_data["clean_arguments"])

    versions_data = profile_data.get("versions", {})
    if not isinstance(versions_data, dict):
        raise ValueError("Profile 'versions' must be a mapping of version_name -> definition")

    for name, version_data in versions_data.items():
        if version_data is None:
            version_data = {}
        if isinstance(version_data, (str, list)):
            version_data = {"command": version_data}
        if not isinstance(version_data, dict):
            raise ValueError(
                f"Version '{name}' must be a mapping, got {type(version_data).__name__}"
            )
        version = VersionDef.from_dict({**version_data, "name": str(name)})
        if version.project_dir is not None:
            version.project_dir = _path(str(version.project_dir))
        config.versions[str(name)] = version

    config.policy = apply_policy_overrides(config.policy, cli)

    if cli.get("results_dir"):
        config.results_dir = Path(cli["results_dir"])
    elif profile_data.get("results_dir"):
        config.results_dir = _path(profile_data["results_dir"]) or config.results_dir

    return config


def apply_policy_overrides(policy: RunnerPolicy, cli: dict[str, Any]) -> RunnerPolicy:
    """Apply ``warmup``/``iterations`` CLI overrides to a policy."""
    changes: dict[str, Any] = {}
    if cli.get("warmup") is not None:
        changes["warm_up_iterations"] = cli["warmup"]
    if cli.get("iterations") is not None:
        changes["measure_iterations"] = cli["iterations"]
    return replace(policy, **changes) if changes else policy


# ---------------------------------------------------------------------------
# Inline version parsing
# ---------------------------------------------------------------------------


def parse_inline_version(spec: str) -> VersionDef:
    """Parse an inline version specification from the CLI.

    Format: ``"name:key=value,key=value,..."``.

    Supported keys:
      command, arguments (space-separated), project_dir, description,
      env.KEY

    Examples::

        "release:command=./gradlew -PscaVersion=2.1.0"
        "snapshot:command=./gradlew -PscaVersion=2.2.0-SNAPSHOT,env.CI=1"

    Returns:
        VersionDef with parsed values.
    """
    if ":" not in spec:
        raise ValueError(f"Invalid version spec: '{spec}'. Expected format: 'name:key=value,...'")

    name, rest = spec.split(":", 1)
    name = name.strip()
    if not name:
        raise ValueError("Version name cannot be empty.")

    version = VersionDef(name=name)

    for pair in _split_pairs(rest.strip()):
        if "=" not in pair:
            raise ValueError(f"Invalid key=value pair in version '{name}': '{pair}'")
        key, value = pair.split("=", 1)
        key = key.strip()
        value = value.strip()

        if key == "command":
            version.command = shlex.split(value)
        elif key == "arguments":
            version.arguments = shlex.split(value)
        elif key == "project_dir":
            version.project_dir = Path(value)
        elif key == "description":
            version.description = value
        elif key.startswith("env."):
            version.env[key[4:]] = value
        else:
            raise ValueError(
                f"Unknown version key '{key}' in version '{name}'. "
                f"Valid keys: command, arguments, project_dir, description, env.KEY"
            )

    return version


def _split_pairs(text: str) -> list[str]:
    """Split key=value pairs on commas.

    A segment without ``=`` continues the previous value, so values
    may themselves contain commas.
    """
    pairs: list[str] = []
    for part in text.split(","):
        if not part.strip():
            continue
        if "=" in part or not pairs:
            pairs.append(part.strip())
        else:
            pairs[-1] += "," + part.rstrip()
    return pairs


# ---------------------------------------------------------------------------
# Quick mode helper
# ---------------------------------------------------------------------------


def quick_config(config: PerfConfig) -> PerfConfig:
    """Shrink the policy for a fast smoke run.

    One warm-up build, three measured builds and short pauses.  The
    verdict of a quick run is only indicative.
    """
    config.policy = replace(
        config.policy,
        warm_up_iterations=1,
        measure_iterations=3,
        sleep_after_run_s=0.1,
        sleep_after_warm_up_s=0.5,
    )
    config.name = f"{config.name} (quick)" if config.name else "Quick run"
    return config
