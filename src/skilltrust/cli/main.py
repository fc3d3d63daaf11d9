"""skilltrust CLI -- trust reports for AI agent skill definitions.

Entry point for the ``skilltrust`` command-line tool. Registers all
subcommands under a single Click group.

Commands:
    scan  -- Scan skill files, directories or URLs.

Usage::

    skilltrust scan ./skills
    skilltrust scan https://github.com/acme/weather-skill --json
    skilltrust scan SKILL.md --fail-on conditional
"""

from __future__ import annotations

import click

from skilltrust import __version__
from skilltrust.cli.scan import scan_command


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """skilltrust: static trust analysis for AI agent skills.

    Scores a skill's permissions, injection risk, dependencies, behavior
    and content, and assigns a badge from CERTIFIED to REJECTED.
    """


cli.add_command(scan_command)
