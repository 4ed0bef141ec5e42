"""
Mutation orchestrator: local intent to signed ledger actions.

Each mutation kind runs its own small state machine::

    IDLE -> SUBMITTING -> SETTLED | FAILED -> IDLE

Only one submission per kind may be in flight; a second call while
SUBMITTING is refused with ``MutationInProgress``. Different kinds may
overlap. Once handed to the signer a submission always runs to completion,
even if the caller stops waiting. On success the read cache entries the
action can affect are invalidated; on failure nothing local changes. There
are no optimistic updates and no automatic re-submission.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

import ulid
from loguru import logger

from ..config import DaoSyncSettings
from ..core.errors import MutationInProgress, NotConnected, ValidationFailed
from ..core.signer import SubmissionAck
from ..core.task_manager import TaskManager
from ..datastructures.dao_types import (
    MemberTokens,
    Proposal,
    TreasuryInfo,
    is_account_address,
)
from ..datastructures.type_aliases import (
    AccountAddress,
    AttemptId,
    Octas,
    ProposalNumber,
)
from .ledger_gateway import LedgerGateway
from .read_cache import CacheKey, ReadCache
from .session import SessionStore


class MutationKind(Enum):
    JOIN = "join"
    STAKE = "stake"
    CREATE_PROPOSAL = "create_proposal"
    VOTE = "vote"
    EXECUTE = "execute"


class MutationState(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SETTLED = "settled"
    FAILED = "failed"


class ExecuteEligibility(Enum):
    """Advisory hint for rendering an execute control.

    Who may execute is enforced by the ledger; vote tallies are deliberately
    not consulted here.
    """

    NOT_OPEN = "not_open"
    ALREADY_EXECUTED = "already_executed"
    LEDGER_DECIDES = "ledger_decides"


@dataclass(frozen=True, slots=True)
class MutationOutcome:
    """What a settled mutation did."""

    kind: MutationKind
    attempt_id: AttemptId
    ack: SubmissionAck
    invalidated: tuple[CacheKey, ...]

    @property
    def tx_hash(self) -> str | None:
        return self.ack.tx_hash


@dataclass(slots=True)
class MutationRecord:
    """Current state and last outcome of one mutation kind."""

    state: MutationState = MutationState.IDLE
    attempt_id: AttemptId | None = None
    last_state: MutationState | None = None
    last_error: Exception | None = None


def execute_eligibility(proposal: Proposal) -> ExecuteEligibility:
    if proposal.executed:
        return ExecuteEligibility.ALREADY_EXECUTED
    if not proposal.is_open:
        return ExecuteEligibility.NOT_OPEN
    return ExecuteEligibility.LEDGER_DECIDES


@dataclass(slots=True)
class MutationOrchestrator:
    """Validates, submits and settles the five DAO mutations."""

    session: SessionStore
    gateway: LedgerGateway
    cache: ReadCache
    min_description_length: int = 20
    max_description_length: int = 500

    _records: dict[MutationKind, MutationRecord] = field(init=False)
    _submissions: TaskManager = field(init=False)

    def __post_init__(self) -> None:
        self._records = {kind: MutationRecord() for kind in MutationKind}
        self._submissions = TaskManager("MutationOrchestrator")

    @classmethod
    def from_settings(
        cls,
        session: SessionStore,
        gateway: LedgerGateway,
        cache: ReadCache,
        settings: DaoSyncSettings,
    ) -> MutationOrchestrator:
        return cls(
            session=session,
            gateway=gateway,
            cache=cache,
            min_description_length=settings.min_description_length,
            max_description_length=settings.max_description_length,
        )

    # State inspection

    def state(self, kind: MutationKind) -> MutationState:
        return self._records[kind].state

    def record(self, kind: MutationKind) -> MutationRecord:
        return self._records[kind]

    def is_pending(self, kind: MutationKind) -> bool:
        return self._records[kind].state is MutationState.SUBMITTING

    # Mutations

    async def join(self) -> MutationOutcome:
        address = self._require_address()
        return await self._submit(
            MutationKind.JOIN,
            self.gateway.join,
            (CacheKey.member_tokens(address),),
        )

    async def stake(self, amount: Octas) -> MutationOutcome:
        self._check_amount("amount", amount)
        address = self._require_address()
        tokens: MemberTokens | None = self.cache.peek(CacheKey.member_tokens(address))
        if tokens is not None and amount > tokens.balance:
            raise ValidationFailed("amount", "Insufficient balance")
        return await self._submit(
            MutationKind.STAKE,
            lambda: self.gateway.stake(amount),
            (CacheKey.member_tokens(address), CacheKey.treasury(address)),
        )

    async def create_proposal(
        self, recipient: AccountAddress, amount: Octas, description: str
    ) -> MutationOutcome:
        """Submit a funding proposal.

        ``description`` is only checked locally; the ledger action takes the
        recipient and amount.
        """
        recipient = recipient.strip()
        if not recipient:
            raise ValidationFailed("recipient", "Recipient address is required")
        if not is_account_address(recipient):
            raise ValidationFailed("recipient", "Invalid account address format")
        self._check_amount("amount", amount)
        self._check_description(description)

        address = self._require_address()
        treasury: TreasuryInfo | None = self.cache.peek(CacheKey.treasury(address))
        if treasury is not None and amount > treasury.total_funds:
            raise ValidationFailed("amount", "Amount exceeds treasury balance")
        tokens: MemberTokens | None = self.cache.peek(CacheKey.member_tokens(address))
        if tokens is not None and not tokens.is_member:
            raise ValidationFailed(
                "member", "You must be a DAO member to create proposals"
            )

        return await self._submit(
            MutationKind.CREATE_PROPOSAL,
            lambda: self.gateway.create_proposal(recipient, amount),
            (CacheKey.proposals(address), CacheKey.treasury(address)),
        )

    async def vote(self, proposal_id: ProposalNumber, approve: bool) -> MutationOutcome:
        self._check_proposal_id(proposal_id)
        address = self._require_address()
        tokens: MemberTokens | None = self.cache.peek(CacheKey.member_tokens(address))
        if tokens is not None and not tokens.can_vote:
            raise ValidationFailed("stake", "You need staked tokens to vote")
        return await self._submit(
            MutationKind.VOTE,
            lambda: self.gateway.vote(proposal_id, approve),
            (CacheKey.proposal(address, proposal_id),),
        )

    async def execute(self, proposal_id: ProposalNumber) -> MutationOutcome:
        self._check_proposal_id(proposal_id)
        address = self._require_address()
        return await self._submit(
            MutationKind.EXECUTE,
            lambda: self.gateway.execute(proposal_id),
            (CacheKey.proposal(address, proposal_id), CacheKey.treasury(address)),
        )

    # Local pre-checks

    def _require_address(self) -> AccountAddress:
        address = self.session.address
        if address is None:
            raise NotConnected("Connect a wallet first")
        return address

    @staticmethod
    def _check_amount(name: str, amount: Octas) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationFailed(name, "Amount must be a whole number of octas")
        if amount <= 0:
            raise ValidationFailed(name, "Amount must be a positive number")

    @staticmethod
    def _check_proposal_id(proposal_id: ProposalNumber) -> None:
        if isinstance(proposal_id, bool) or not isinstance(proposal_id, int):
            raise ValidationFailed("proposal_id", "Proposal id must be an integer")
        if proposal_id < 1:
            raise ValidationFailed("proposal_id", "Proposal ids start at 1")

    def _check_description(self, description: str) -> None:
        text = description.strip()
        if not text:
            raise ValidationFailed("description", "Description is required")
        if len(text) < self.min_description_length:
            raise ValidationFailed(
                "description",
                f"Description must be at least {self.min_description_length} "
                "characters",
            )
        if len(text) > self.max_description_length:
            raise ValidationFailed(
                "description",
                f"Description must be at most {self.max_description_length} "
                "characters",
            )

    # Submission

    async def _submit(
        self,
        kind: MutationKind,
        action: Callable[[], Awaitable[SubmissionAck]],
        affects: tuple[CacheKey, ...],
    ) -> MutationOutcome:
        record = self._records[kind]
        if record.state is MutationState.SUBMITTING:
            raise MutationInProgress(
                f"A {kind.value} submission ({record.attempt_id}) is still pending"
            )

        attempt_id = str(ulid.new())
        record.state = MutationState.SUBMITTING
        record.attempt_id = attempt_id
        record.last_error = None
        logger.info("[{}] {} submitting", attempt_id, kind.value)

        try:
            task = self._submissions.create_task(
                self._run(kind, attempt_id, action, affects),
                name=f"{kind.value}:{attempt_id}",
            )
        except RuntimeError:
            record.state = MutationState.IDLE
            raise
        return await asyncio.shield(task)

    async def _run(
        self,
        kind: MutationKind,
        attempt_id: AttemptId,
        action: Callable[[], Awaitable[SubmissionAck]],
        affects: tuple[CacheKey, ...],
    ) -> MutationOutcome:
        record = self._records[kind]
        try:
            ack = await action()
            for key in affects:
                self.cache.invalidate(key)
        except Exception as e:
            record.last_state = MutationState.FAILED
            record.last_error = e
            logger.warning("[{}] {} failed: {}", attempt_id, kind.value, e)
            raise
        else:
            record.last_state = MutationState.SETTLED
        finally:
            record.state = MutationState.IDLE

        logger.success("[{}] {} settled as {}", attempt_id, kind.value, ack.tx_hash)
        return MutationOutcome(
            kind=kind, attempt_id=attempt_id, ack=ack, invalidated=affects
        )

    async def close(self) -> None:
        """Wait for in-flight submissions, then release the task group."""
        await self._submissions.drain()
        await self._submissions.shutdown()
