"""Root command group for the skillminer CLI."""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(__version__, prog_name="skillminer")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def main(verbose: bool) -> None:
    """Skillminer — discover reusable skills from coding-agent sessions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
