"""Wall-clock timing for build invocations.

:func:`time_invocation` wraps any callable and turns one call into a
:class:`TimedSample`, whether it returns or raises.  :func:`run_command`
executes a subprocess with an optional timeout, killing the whole
process group when the timeout expires so that build daemons spawned
by the command do not outlive it.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Callable, Sequence

from scaperf.perf.metrics import TimedSample

log = logging.getLogger("scaperf")


# ---------------------------------------------------------------------------
# Sample timing
# ---------------------------------------------------------------------------


def time_invocation(
    action: Callable[[], object],
    *,
    clock: Callable[[], int] = time.perf_counter_ns,
) -> TimedSample:
    """Run *action* exactly once and measure how long it took.

    Exceptions raised by *action* are captured in the returned sample
    rather than propagated.  ``KeyboardInterrupt`` and other
    ``BaseException`` subclasses still propagate.

    Args:
        action: Zero-argument callable to time.
        clock: Nanosecond clock; injectable for tests.
    """
    start = clock()
    try:
        action()
    except Exception as exc:  # noqa: BLE001
        elapsed = timedelta(microseconds=(clock() - start) / 1000)
        log.debug("Timed invocation failed after %s: %s", elapsed, exc)
        return TimedSample.failed(elapsed, exc)
    return TimedSample(elapsed=timedelta(microseconds=(clock() - start) / 1000))


# ---------------------------------------------------------------------------
# Subprocess execution
# ---------------------------------------------------------------------------


@dataclass
class CommandResult:
    """Outcome of one subprocess execution."""

    wall_time_s: float
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


def run_command(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Execute *command* and capture its output and wall time.

    Args:
        command: Argument list; the first element is the executable.
        cwd: Working directory for the subprocess.
        env: Extra environment variables layered over ``os.environ``.
        timeout: Maximum execution time in seconds, or None to wait
            indefinitely.

    Returns:
        CommandResult with the exit code, output and elapsed time.
    """
    run_env = dict(os.environ)
    if env:
        run_env.update(env)

    log.debug("Running %s (cwd=%s)", " ".join(command), cwd)
    wall_start = time.monotonic()

    timed_out = False
    proc = subprocess.Popen(
        list(command),
        cwd=str(cwd) if cwd else None,
        env=run_env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        start_new_session=True,
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
        exit_code = proc.returncode
    except subprocess.TimeoutExpired:
        timed_out = True
        _kill_process_group(proc.pid)
        try:
            stdout, stderr = proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            stdout, stderr = proc.communicate()
        exit_code = -1

    wall_time = time.monotonic() - wall_start
    log.debug("Exit %d after %.3fs%s", exit_code, wall_time, " (timed out)" if timed_out else "")

    return CommandResult(
        wall_time_s=round(wall_time, 6),
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
    )


def _kill_process_group(pid: int) -> None:
    """Kill the entire process group of a timed-out command."""
    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError) as exc:
        log.debug("Could not kill process group of %d: %s", pid, exc)
