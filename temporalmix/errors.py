"""Exception taxonomy for temporalmix."""
from __future__ import annotations


class TemporalMixError(Exception):
    """Base class for every error raised by temporalmix."""


class ConfigurationError(TemporalMixError, ValueError):
    """Invalid mixer, combine or graph configuration, raised at build time."""


class ShapeMismatch(TemporalMixError, ValueError):
    """Frames with different size, channel count or bit depth met in one stage."""

    def __init__(self, message: str, expected=None, actual=None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class IncompleteWindow(TemporalMixError, LookupError):
    """A window offset was requested before that many frames were pushed."""

    def __init__(self, offset: int, occupancy: int):
        super().__init__(f"offset {offset} requested with only {occupancy} frame(s) in window")
        self.offset = offset
        self.occupancy = occupancy


class SynchronizationStall(TemporalMixError, RuntimeError):
    """Inbound branches of a Combine node are producing at different rates."""

    def __init__(self, message: str, pending: tuple[int, ...] = ()):
        super().__init__(message)
        self.pending = pending
