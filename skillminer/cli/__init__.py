"""Command-line interface."""

from . import discover  # noqa: F401  (registers the command)
from .main import main

__all__ = ["main"]
