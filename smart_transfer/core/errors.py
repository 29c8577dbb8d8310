# smart_transfer/core/errors.py

"""
The error taxonomy of the transfer engine.

Every exception the engine raises on purpose derives from TransferEngineError,
so a UI layer can catch the whole family in one place while still telling
the categories apart.
"""


class TransferEngineError(Exception):
    """Base class for all engine errors."""


class ListingError(TransferEngineError):
    """A directory could not be listed (unreachable, denied or not found)."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot list '{path}': {reason}")


class TransferError(TransferEngineError):
    """An I/O failure while moving the bytes of a single task."""


class StateError(TransferEngineError):
    """An operation was requested that the task's current state does not allow."""


class CapacityError(TransferEngineError, ValueError):
    """The concurrency limit was configured with an unusable value."""


class UnsupportedEntryError(TransferEngineError, ValueError):
    """An entry of the wrong kind was handed to a transfer operation."""
