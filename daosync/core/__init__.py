"""
daosync core module

Error taxonomy, logging setup, task lifecycle, identity events, the
environment signer interface and hint persistence.
"""

from .errors import (
    DaoSyncError,
    LedgerReadError,
    MalformedResponse,
    MutationInProgress,
    NotConnected,
    ProposalCountUnavailable,
    ProviderError,
    ProviderUnavailable,
    StaleDataWarning,
    SubmissionRejected,
    UserRejected,
    ValidationFailed,
    ViewTransportError,
)

__all__ = [
    "DaoSyncError",
    "LedgerReadError",
    "MalformedResponse",
    "MutationInProgress",
    "NotConnected",
    "ProposalCountUnavailable",
    "ProviderError",
    "ProviderUnavailable",
    "StaleDataWarning",
    "SubmissionRejected",
    "UserRejected",
    "ValidationFailed",
    "ViewTransportError",
]
