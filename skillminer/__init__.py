"""Skillminer — discover reusable skills from coding-agent session transcripts."""

__version__ = "0.1.0"
