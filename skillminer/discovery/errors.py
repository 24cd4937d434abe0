"""Exceptions raised by the discovery pipeline."""


class DiscoveryError(Exception):
    """Base class for discovery failures."""


class CorruptStateError(DiscoveryError):
    """The persisted scan state could not be parsed or has the wrong schema.

    Callers treat this as "rescan everything", never as fatal.
    """

    def __init__(self, path, reason: str) -> None:
        super().__init__(f"Corrupt scan state at {path}: {reason}")
        self.path = path
        self.reason = reason


class UnknownPatternKeyError(DiscoveryError, ValueError):
    """A pattern key does not carry a recognized kind prefix."""
