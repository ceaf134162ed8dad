"""
Main CLI entry point for recovery-tools.
"""

import click

from ..version import get_version_string
from .duplicate_cli import duplicates, merge
from .scene_cli import scenes


@click.group()
@click.version_option(version=get_version_string(), prog_name="recovery-tools")
def cli() -> None:
    """Deduplicate and cluster recovered photo collections."""


cli.add_command(duplicates)
cli.add_command(scenes)
cli.add_command(merge)


if __name__ == "__main__":
    cli()
