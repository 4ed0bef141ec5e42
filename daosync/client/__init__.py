"""
daosync client module

Session store, ledger gateway, read cache, proposal aggregator and
mutation orchestrator, plus the ``DaoClientAPI`` facade wiring them.
"""

from __future__ import annotations

from .aggregator import ProposalAggregator, ProposalSet
from .client_api import DaoClientAPI
from .ledger_gateway import LedgerGateway, RestViewTransport, ViewTransport
from .orchestrator import (
    ExecuteEligibility,
    MutationKind,
    MutationOrchestrator,
    MutationOutcome,
    MutationState,
    execute_eligibility,
)
from .read_cache import CachedValue, CacheKey, EntityKind, ReadCache, ReadScope
from .session import SessionStore

__all__ = [
    "CacheKey",
    "CachedValue",
    "DaoClientAPI",
    "EntityKind",
    "ExecuteEligibility",
    "LedgerGateway",
    "MutationKind",
    "MutationOrchestrator",
    "MutationOutcome",
    "MutationState",
    "ProposalAggregator",
    "ProposalSet",
    "ReadCache",
    "ReadScope",
    "RestViewTransport",
    "SessionStore",
    "ViewTransport",
    "execute_eligibility",
]
