"""
Error taxonomy for save loading, reconciliation and syncing.

The progression and accumulator modules never raise on validated input;
everything here is raised from the persistence side.
"""

from typing import Optional


class SaveError(Exception):
    """Base class for save related failures."""


class SaveValidationError(SaveError, ValueError):
    """A snapshot is malformed or out of range and must not be persisted."""


class LegacySaveError(SaveValidationError):
    """A snapshot uses the pre-id realm layout and cannot be migrated."""


class AuthError(SaveError):
    """The remote store rejected the session; the user must sign in again."""


class TransientNetworkError(SaveError):
    """The remote store could not be reached or failed server-side. Retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionNotReadyError(SaveError):
    """An action was attempted before the canonical state was reconciled."""
