"""
DAO value types shared by the synchronization core.

Everything in this module is an immutable snapshot of what the ledger last
reported. None of these objects are ever mutated locally: a refresh always
replaces the whole value. ``DAOStats`` is derived on demand by
``compute_dao_stats`` and is never stored.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from hypothesis import strategies as st

from .type_aliases import (
    AccountAddress,
    Octas,
    ProposalCount,
    ProposalNumber,
    VoteCount,
)

OCTAS_PER_APT: Octas = 100_000_000

ACCOUNT_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


def is_account_address(value: str) -> bool:
    """Check that ``value`` is a full-length hex account address."""
    return bool(ACCOUNT_ADDRESS_PATTERN.fullmatch(value))


def format_apt(octas: Octas) -> str:
    """Render an octas amount as APT with four decimals."""
    apt = Decimal(octas) / OCTAS_PER_APT
    return f"{apt.quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP):.4f}"


def to_octas(apt: float | str | Decimal) -> Octas:
    """Convert a user-entered APT amount to octas, rounding down."""
    try:
        value = Decimal(str(apt))
    except InvalidOperation as e:
        raise ValueError(f"Not a numeric amount: {apt!r}") from e
    if not value.is_finite():
        raise ValueError(f"Not a finite amount: {apt!r}")
    return int((value * OCTAS_PER_APT).to_integral_value(rounding=ROUND_FLOOR))


def format_address(address: AccountAddress) -> str:
    """Shorten an address to ``0x1234...abcd`` for display."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


class ProposalStatus(Enum):
    """Proposal status codes as reported by the ledger."""

    OPEN = 0
    FUNDED = 1
    REJECTED = 2

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True, slots=True)
class Identity:
    """Connection state of the current user within one client session."""

    address: AccountAddress | None = None
    connected: bool = False
    connecting: bool = False

    @classmethod
    def empty(cls) -> Identity:
        return cls()

    @classmethod
    def connected_as(cls, address: AccountAddress) -> Identity:
        return cls(address=address, connected=True, connecting=False)

    def with_connecting(self, connecting: bool) -> Identity:
        return Identity(
            address=self.address, connected=self.connected, connecting=connecting
        )


@dataclass(frozen=True, slots=True)
class TreasuryInfo:
    """Treasury snapshot for the viewing identity."""

    total_funds: Octas
    proposal_count: ProposalCount
    staked_tokens: Octas

    def __post_init__(self) -> None:
        if self.total_funds < 0:
            raise ValueError("Treasury funds cannot be negative")
        if self.proposal_count < 0:
            raise ValueError("Proposal count cannot be negative")
        if self.staked_tokens < 0:
            raise ValueError("Staked tokens cannot be negative")


@dataclass(frozen=True, slots=True)
class MemberTokens:
    """Token balances of one member.

    ``staked_balance <= balance`` is not enforced; whatever the ledger reports
    is authoritative.
    """

    balance: Octas
    staked_balance: Octas

    def __post_init__(self) -> None:
        if self.balance < 0:
            raise ValueError("Balance cannot be negative")
        if self.staked_balance < 0:
            raise ValueError("Staked balance cannot be negative")

    @property
    def is_member(self) -> bool:
        return self.balance > 0

    @property
    def can_vote(self) -> bool:
        return self.staked_balance > 0

    @property
    def staked_ratio(self) -> float:
        """Fraction of the balance that is staked, capped at 1.0."""
        if self.balance == 0:
            return 0.0
        return min(self.staked_balance / self.balance, 1.0)


@dataclass(frozen=True, slots=True)
class Proposal:
    """Funding proposal as last read from the ledger."""

    id: ProposalNumber
    recipient: AccountAddress
    requested_amount: Octas
    yes_votes: VoteCount
    no_votes: VoteCount
    status: ProposalStatus
    executed: bool

    def __post_init__(self) -> None:
        if self.id < 1:
            raise ValueError("Proposal id must be >= 1")
        if self.requested_amount < 0:
            raise ValueError("Requested amount cannot be negative")
        if self.yes_votes < 0 or self.no_votes < 0:
            raise ValueError("Vote counts cannot be negative")

    @property
    def is_open(self) -> bool:
        return self.status is ProposalStatus.OPEN

    @property
    def total_votes(self) -> VoteCount:
        return self.yes_votes + self.no_votes

    @property
    def approval_ratio(self) -> float:
        total = self.total_votes
        return self.yes_votes / total if total else 0.0


@dataclass(frozen=True, slots=True)
class DAOStats:
    """Dashboard statistics derived from treasury and proposal snapshots."""

    total_members: int
    total_proposals: int
    treasury_balance: Octas
    active_proposals: int


def compute_dao_stats(
    treasury: TreasuryInfo | None, proposals: Iterable[Proposal]
) -> DAOStats:
    """Derive ``DAOStats`` from the current snapshots.

    The ledger exposes no member-count view, so ``total_members`` is 0.
    Proposal figures describe the collection actually held, so ids whose
    read failed do not count.
    """
    held = list(proposals)
    return DAOStats(
        total_members=0,
        total_proposals=len(held),
        treasury_balance=treasury.total_funds if treasury is not None else 0,
        active_proposals=sum(1 for proposal in held if proposal.is_open),
    )


# Hypothesis strategies for property-based testing


def account_address_strategy() -> st.SearchStrategy[AccountAddress]:
    """Generate valid 32-byte hex account addresses."""
    return st.binary(min_size=32, max_size=32).map(lambda raw: "0x" + raw.hex())


def treasury_info_strategy(
    max_proposals: int = 20,
) -> st.SearchStrategy[TreasuryInfo]:
    """Generate valid TreasuryInfo snapshots."""
    return st.builds(
        TreasuryInfo,
        total_funds=st.integers(min_value=0, max_value=10**15),
        proposal_count=st.integers(min_value=0, max_value=max_proposals),
        staked_tokens=st.integers(min_value=0, max_value=10**15),
    )


def member_tokens_strategy() -> st.SearchStrategy[MemberTokens]:
    """Generate valid MemberTokens snapshots."""
    return st.builds(
        MemberTokens,
        balance=st.integers(min_value=0, max_value=10**15),
        staked_balance=st.integers(min_value=0, max_value=10**15),
    )


def proposal_strategy(
    proposal_id: ProposalNumber | None = None,
) -> st.SearchStrategy[Proposal]:
    """Generate valid Proposal snapshots, optionally with a fixed id."""
    return st.builds(
        Proposal,
        id=st.just(proposal_id)
        if proposal_id is not None
        else st.integers(min_value=1, max_value=10_000),
        recipient=account_address_strategy(),
        requested_amount=st.integers(min_value=0, max_value=10**15),
        yes_votes=st.integers(min_value=0, max_value=10**9),
        no_votes=st.integers(min_value=0, max_value=10**9),
        status=st.sampled_from(ProposalStatus),
        executed=st.booleans(),
    )


def proposal_collection_strategy(
    max_size: int = 20,
) -> st.SearchStrategy[list[Proposal]]:
    """Generate proposal collections with unique, ascending ids."""

    @st.composite
    def generate_collection(draw: st.DrawFn) -> list[Proposal]:
        ids = draw(
            st.lists(
                st.integers(min_value=1, max_value=max_size * 2),
                unique=True,
                max_size=max_size,
            )
        )
        return [draw(proposal_strategy(proposal_id)) for proposal_id in sorted(ids)]

    return generate_collection()
