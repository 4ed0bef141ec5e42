"""
daosync datastructures

Immutable snapshots of ledger state and the pure derivations over them.
"""

from __future__ import annotations

from .dao_types import (
    OCTAS_PER_APT,
    DAOStats,
    Identity,
    MemberTokens,
    Proposal,
    ProposalStatus,
    TreasuryInfo,
    compute_dao_stats,
    format_address,
    format_apt,
    is_account_address,
    to_octas,
)

__all__ = [
    "OCTAS_PER_APT",
    "DAOStats",
    "Identity",
    "MemberTokens",
    "Proposal",
    "ProposalStatus",
    "TreasuryInfo",
    "compute_dao_stats",
    "format_address",
    "format_apt",
    "is_account_address",
    "to_octas",
]
