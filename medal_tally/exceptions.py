"""
Exception hierarchy for the medal tally.

Load and persist failures are absorbed by the state store and only logged;
the remaining errors are raised by mutation entry points and translated into
HTTP responses by the web handlers.
"""

from typing import Any, Dict, Optional


class MedalTallyError(Exception):
    """Base class for all medal tally errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value!r}" for key, value in self.details.items())
        return f"{self.message} ({context})"


class LoadFailure(MedalTallyError):
    """A bootstrap source could not produce a snapshot."""


class SnapshotFormatError(LoadFailure):
    """A snapshot document failed validation."""


class PersistFailure(MedalTallyError):
    """The durable slot could not be written."""


class ChannelUnavailable(MedalTallyError):
    """The replication channel cannot deliver messages."""


class ReadOnlyStoreError(MedalTallyError):
    """A mutation was attempted on a read-only replica store."""


class UnknownEventError(MedalTallyError):
    """No event exists with the given id."""


class UnknownGradeError(MedalTallyError):
    """No grade exists with the given id."""


class InvalidPlacementError(MedalTallyError):
    """A placement position or medal kind is outside the allowed set."""


class InvalidMedalValueError(MedalTallyError):
    """A medal point weight is not a positive integer."""


class UnknownCategoryError(MedalTallyError):
    """A category filter slug is not one of the results tabs."""
