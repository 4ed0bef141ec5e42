from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from ..config import DaoSyncSettings
from ..core.errors import NotConnected
from ..core.persistence.hint_store import HintStore, MemoryHintStore, SQLiteHintStore
from ..core.signer import SignerLocator
from ..datastructures.dao_types import (
    DAOStats,
    Identity,
    MemberTokens,
    Proposal,
    TreasuryInfo,
)
from ..datastructures.type_aliases import AccountAddress, Octas, ProposalNumber
from .aggregator import ProposalAggregator, ProposalSet
from .ledger_gateway import LedgerGateway, RestViewTransport, ViewTransport
from .orchestrator import MutationOrchestrator, MutationOutcome
from .read_cache import CachedValue, CacheKey, ReadCache
from .session import SessionStore


@dataclass(slots=True)
class DaoClientAPI:
    """A high-level client for one DAO session.

    Wires the session store, ledger gateway, read cache, proposal aggregator
    and mutation orchestrator together. The read cache follows the session
    identity: polling starts on connect or restore and stops on disconnect.
    """

    locator: SignerLocator
    settings: DaoSyncSettings = field(default_factory=DaoSyncSettings)
    transport: ViewTransport | None = None
    hints: HintStore | None = None

    # Fields assigned in __post_init__
    session: SessionStore = field(init=False)
    gateway: LedgerGateway = field(init=False)
    cache: ReadCache = field(init=False)
    aggregator: ProposalAggregator = field(init=False)
    orchestrator: MutationOrchestrator = field(init=False)
    _started: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        if self.transport is None:
            self.transport = RestViewTransport(
                node_url=self.settings.node_url, timeout=self.settings.view_timeout
            )
        if self.hints is None:
            self.hints = (
                SQLiteHintStore(self.settings.hint_db_path)
                if self.settings.hint_db_path is not None
                else MemoryHintStore()
            )
        self.session = SessionStore(locator=self.locator, hints=self.hints)
        self.gateway = LedgerGateway(
            settings=self.settings, transport=self.transport, session=self.session
        )
        self.cache = ReadCache.from_settings(self.gateway, self.settings)
        self.aggregator = ProposalAggregator(
            self.cache, max_parallel_reads=self.settings.max_parallel_reads
        )
        self.orchestrator = MutationOrchestrator.from_settings(
            self.session, self.gateway, self.cache, self.settings
        )
        self.session.events.subscribe(self.cache)

    # Lifecycle

    async def start(self) -> Identity:
        """Open storage and silently restore the previous session."""
        if not self._started:
            if isinstance(self.hints, SQLiteHintStore):
                await self.hints.open()
            self._started = True
        return await self.session.restore_session()

    async def close(self) -> None:
        """Stop polling, finish in-flight submissions and release resources."""
        await self.orchestrator.close()
        await self.cache.close()
        await self.session.close()
        if self.transport is not None:
            await self.transport.close()
        self._started = False
        logger.debug("DAO client closed")

    async def __aenter__(self) -> "DaoClientAPI":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Session

    @property
    def identity(self) -> Identity:
        return self.session.identity

    async def connect(self, provider_hint: str | None = None) -> Identity:
        return await self.session.connect(provider_hint)

    async def disconnect(self) -> None:
        await self.session.disconnect()

    def _viewer(self) -> AccountAddress:
        address = self.session.address
        if address is None:
            raise NotConnected("Connect a wallet to read DAO state")
        return address

    # Reads

    async def treasury_info(self) -> CachedValue[TreasuryInfo]:
        return await self.cache.read(CacheKey.treasury(self._viewer()))

    async def member_tokens(self) -> CachedValue[MemberTokens]:
        return await self.cache.read(CacheKey.member_tokens(self._viewer()))

    async def proposals(self) -> ProposalSet:
        return await self.aggregator.aggregate(self._viewer())

    async def proposal(self, proposal_id: ProposalNumber) -> CachedValue[Proposal]:
        return await self.aggregator.proposal(self._viewer(), proposal_id)

    async def dao_stats(self) -> DAOStats:
        return await self.aggregator.stats(self._viewer())

    def watch_proposals(
        self, interval: float | None = None
    ) -> AsyncIterator[ProposalSet]:
        """Iterate proposal sets as the proposal count changes."""
        return self.aggregator.watch(
            self._viewer(), interval or self.settings.proposal_poll_interval
        )

    # Mutations

    async def join(self) -> MutationOutcome:
        return await self.orchestrator.join()

    async def stake(self, amount: Octas) -> MutationOutcome:
        return await self.orchestrator.stake(amount)

    async def create_proposal(
        self, recipient: AccountAddress, amount: Octas, description: str
    ) -> MutationOutcome:
        return await self.orchestrator.create_proposal(recipient, amount, description)

    async def vote(self, proposal_id: ProposalNumber, approve: bool) -> MutationOutcome:
        return await self.orchestrator.vote(proposal_id, approve)

    async def execute(self, proposal_id: ProposalNumber) -> MutationOutcome:
        return await self.orchestrator.execute(proposal_id)
