"""
Error taxonomy for gsprune.

Every failure is reported to the caller by raising one of these. None of them
leave the state bitmask or the session baseline partially mutated.
"""

from __future__ import annotations


class GsPruneError(Exception):
    """Base class for all gsprune errors."""


class InvalidParameterError(GsPruneError, ValueError):
    """A filter parameter is non-finite or outside its domain."""


class MissingDataError(GsPruneError, ValueError):
    """A required attribute buffer is absent, empty or malformed."""


class NoActivePointSetError(GsPruneError, RuntimeError):
    """An operation needs a loaded point set and none is active."""


class ConcurrentInvocationError(GsPruneError, RuntimeError):
    """A filter pass collided with another pass on the same point set."""


class PassCancelledError(ConcurrentInvocationError):
    """The pass was superseded by a newer one and its output was discarded."""


__all__ = [
    "GsPruneError",
    "InvalidParameterError",
    "MissingDataError",
    "NoActivePointSetError",
    "ConcurrentInvocationError",
    "PassCancelledError",
]
