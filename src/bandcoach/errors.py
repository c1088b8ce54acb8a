"""
Error taxonomy for the planning core.

Only invalid caller input and storage failures are raised. Unavailable
candidates and unreachable time targets are recorded on the plan instead.
"""


class BandcoachError(Exception):
    """Base exception for all bandcoach errors."""

    pass


class InvalidContextError(BandcoachError, ValueError):
    """Raised when a session context is invalid (unsupported duration, bad effort level)."""

    pass


class StorageError(BandcoachError):
    """Raised when the persistence boundary cannot read or write a blob."""

    pass


class CatalogError(BandcoachError):
    """Raised when the movement catalog cannot be read or parsed."""

    pass
