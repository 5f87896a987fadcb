"""Command-line interface for scaperf.

Provides the main CLI entry point; the ``perf`` subgroup lives in
:mod:`scaperf.perf_cli`.
"""

from __future__ import annotations

import click

from scaperf import __version__


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """scaperf — Catch build slowdowns between static code analysis plugin versions."""


# Register subgroups.
from scaperf.perf_cli import perf as perf_group  # noqa: E402

main.add_command(perf_group)


if __name__ == "__main__":
    main()
