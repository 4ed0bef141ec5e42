"""
Error taxonomy for the daosync client core.

Session and submission errors propagate to the caller of the failed
operation. Read errors are absorbed by the read cache's retry policy and
only ever reach consumers as a ``StaleDataWarning`` attached to the
last-known value. Nothing here is fatal to the process.
"""

from __future__ import annotations

from dataclasses import dataclass


class DaoSyncError(Exception):
    """Base exception for all daosync errors."""

    pass


# Session / signer errors


class ProviderUnavailable(DaoSyncError):
    """Raised when no compatible environment signer is present."""

    pass


class UserRejected(DaoSyncError):
    """Raised when the user declines a connection request in the signer."""

    pass


class ProviderError(DaoSyncError):
    """Raised for any other signer fault."""

    pass


class NotConnected(DaoSyncError):
    """Raised when signing is attempted without a connected identity."""

    pass


class SubmissionRejected(DaoSyncError):
    """Raised when the signer declines or the ledger rejects a submission."""

    pass


# Ledger read errors


class LedgerReadError(DaoSyncError):
    """Base class for recoverable view read failures."""

    pass


class ViewTransportError(LedgerReadError):
    """Raised when a view request could not be delivered or answered."""

    pass


class MalformedResponse(LedgerReadError):
    """Raised when a view result does not have the expected shape."""

    pass


class ProposalCountUnavailable(LedgerReadError):
    """Raised when no proposal count has ever been resolved for a viewer."""

    pass


# Local errors


class ValidationFailed(DaoSyncError):
    """Raised by local pre-checks before anything reaches the network."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class MutationInProgress(DaoSyncError):
    """Raised when a mutation kind is invoked while already submitting."""

    pass


@dataclass
class StaleDataWarning(UserWarning):
    """Non-fatal: a refresh exhausted its retries, last good value kept."""

    key: str
    attempts: int
    error: str

    def __str__(self) -> str:
        return (
            f"Serving stale data for {self.key} after {self.attempts} failed "
            f"attempts: {self.error}"
        )
