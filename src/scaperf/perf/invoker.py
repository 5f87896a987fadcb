"""Build invocation collaborators.

The harness only needs something that can run a build and clean its
outputs.  :class:`BuildInvoker` states that contract;
:class:`CommandBuildInvoker` fulfils it by running an external build
command (typically a build tool wrapper pinned to one plugin version)
in a project directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from scaperf.logging import get_logger
from scaperf.perf.errors import BuildFailedError, BuildTimeoutError
from scaperf.perf.timing import CommandResult, run_command

log = get_logger("invoker")

_STDERR_TAIL_LINES = 20


@runtime_checkable
class BuildInvoker(Protocol):
    """Something that can run a build and clean its outputs.

    Both operations block until done and raise on failure.  They must
    be idempotent and safe to repeat in the same working directory.
    """

    def build(self) -> None: ...

    def clean(self) -> None: ...


class CommandBuildInvoker:
    """Run a build command and its clean counterpart in a project directory.

    ``build()`` runs ``command + arguments``; ``clean()`` runs
    ``command + clean_arguments`` with the same directory, environment
    and timeout.

    Usage::

        invoker = CommandBuildInvoker(
            ["./gradlew"], ["findbugsMain", "cpd"], project_dir=Path("fixture")
        )
        runner.exercise(invoker)
    """

    def __init__(
        self,
        command: Sequence[str],
        arguments: Sequence[str] = (),
        *,
        project_dir: Path,
        env: dict[str, str] | None = None,
        timeout: float | None = None,
        clean_arguments: Sequence[str] = ("clean",),
    ) -> None:
        if not command:
            raise ValueError("Build command cannot be empty.")
        self.command = list(command)
        self.arguments = list(arguments)
        self.clean_arguments = list(clean_arguments)
        self.project_dir = project_dir
        self.env = dict(env or {})
        self.timeout = timeout

    def build(self) -> None:
        self._run(self.arguments, action="build")

    def clean(self) -> None:
        self._run(self.clean_arguments, action="clean")

    def _run(self, arguments: list[str], *, action: str) -> CommandResult:
        argv = self.command + arguments
        result = run_command(argv, cwd=self.project_dir, env=self.env, timeout=self.timeout)
        if result.timed_out:
            raise BuildTimeoutError(
                f"{action} timed out after {self.timeout}s: {' '.join(argv)}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        if result.exit_code != 0:
            tail = "\n".join(result.stderr.splitlines()[-_STDERR_TAIL_LINES:])
            log.debug("%s failed (exit %d):\n%s", action, result.exit_code, tail)
            raise BuildFailedError(
                f"{action} failed with exit code {result.exit_code}: {' '.join(argv)}",
                exit_code=result.exit_code,
                stderr=tail,
            )
        return result

    def __repr__(self) -> str:
        return (
            f"CommandBuildInvoker(command={self.command!r}, arguments={self.arguments!r}, "
            f"project_dir={str(self.project_dir)!r})"
        )
