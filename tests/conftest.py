"""Pytest configuration and fixtures for daosync testing.

The ledger and the wallet are replaced by in-process fakes so the read
cache, aggregator and orchestrator can be driven deterministically: view
results and failures are scripted per function, and submissions can be
held open with an ``asyncio.Event`` to observe in-flight states.
"""

import asyncio
from collections.abc import AsyncGenerator, Mapping, Sequence
from typing import Any

import pytest
import pytest_asyncio

from daosync.client.aggregator import ProposalAggregator
from daosync.client.ledger_gateway import LedgerGateway
from daosync.client.orchestrator import MutationOrchestrator
from daosync.client.read_cache import ReadCache, RetryPolicy
from daosync.client.session import SessionStore
from daosync.config import DaoSyncSettings
from daosync.core.errors import ViewTransportError
from daosync.core.persistence.hint_store import MemoryHintStore
from daosync.core.signer import StaticSignerLocator

ALICE = "0x" + "a1" * 32
BOB = "0x" + "b2" * 32
CAROL = "0x" + "c3" * 32

APT = 100_000_000


class FakeSigner:
    """Wallet double: answers prompts and records submitted payloads."""

    def __init__(self, address: str = ALICE) -> None:
        self.address = address
        self.session_live = False
        self.connect_error: Exception | None = None
        self.submit_error: Exception | None = None
        self.submitted: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None
        self.submit_started = asyncio.Event()
        self.completed = 0

    async def connect(self) -> Mapping[str, Any]:
        if self.connect_error is not None:
            raise self.connect_error
        self.session_live = True
        return {"address": self.address, "publicKey": "0x01"}

    async def is_connected(self) -> bool:
        return self.session_live

    async def sign_and_submit(self, payload: dict[str, Any]) -> Mapping[str, Any]:
        self.submitted.append(payload)
        self.submit_started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.submit_error is not None:
            raise self.submit_error
        self.completed += 1
        return {"hash": f"0x{self.completed:064x}"}

    def functions(self) -> list[str]:
        return [payload["function"].rsplit("::", 1)[-1] for payload in self.submitted]


class FakeLedger:
    """ViewTransport double with scripted results per view function."""

    def __init__(self) -> None:
        self.treasury: list[Any] = [APT, 0, 0]
        self.tokens: dict[str, list[Any]] = {}
        self.proposals: dict[int, list[Any]] = {}
        self.fail_next: dict[str, int] = {}
        self.down: set[str] = set()
        self.broken_proposals: set[int] = set()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def add_proposal(
        self,
        proposal_id: int,
        *,
        recipient: str = BOB,
        amount: int = APT,
        yes: int = 0,
        no: int = 0,
        status: int = 0,
        executed: bool = False,
    ) -> None:
        self.proposals[proposal_id] = [recipient, amount, yes, no, status, executed]
        self.treasury[1] = max(self.treasury[1], proposal_id)

    def count(self, name: str) -> int:
        return sum(1 for called, _ in self.calls if called == name)

    async def view(self, function: str, arguments: Sequence[Any]) -> list[Any]:
        name = function.rsplit("::", 1)[-1]
        self.calls.append((name, tuple(arguments)))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next.get(name, 0) > 0:
            self.fail_next[name] -= 1
            raise ViewTransportError(f"{name} unavailable")
        if name in self.down:
            raise ViewTransportError(f"{name} unavailable")

        match name:
            case "get_treasury_info":
                return list(self.treasury)
            case "get_member_tokens":
                return list(self.tokens.get(arguments[0], [0, 0]))
            case "get_proposal_info":
                proposal_id = arguments[1]
                if proposal_id in self.broken_proposals:
                    raise ViewTransportError(f"proposal {proposal_id} unavailable")
                if proposal_id not in self.proposals:
                    raise ViewTransportError(f"proposal {proposal_id} not found")
                return list(self.proposals[proposal_id])
        raise ViewTransportError(f"unknown view {name}")

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and short-lived tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settings() -> DaoSyncSettings:
    return DaoSyncSettings(
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        poll_interval=3600.0,
        proposal_poll_interval=3600.0,
        hint_db_path=None,
        log_file=None,
    )


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def signer() -> FakeSigner:
    return FakeSigner()


@pytest.fixture
def locator(signer: FakeSigner) -> StaticSignerLocator:
    found = StaticSignerLocator()
    found.register("petra", signer)
    return found


@pytest.fixture
def hints() -> MemoryHintStore:
    return MemoryHintStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session(locator: StaticSignerLocator, hints: MemoryHintStore) -> SessionStore:
    return SessionStore(locator=locator, hints=hints)


@pytest.fixture
def gateway(
    settings: DaoSyncSettings, ledger: FakeLedger, session: SessionStore
) -> LedgerGateway:
    return LedgerGateway(settings=settings, transport=ledger, session=session)


@pytest_asyncio.fixture
async def cache(
    gateway: LedgerGateway, clock: FakeClock
) -> AsyncGenerator[ReadCache, None]:
    read_cache = ReadCache(
        gateway,
        poll_interval=3600.0,
        proposal_poll_interval=3600.0,
        stale_grace=5.0,
        retry=RetryPolicy(attempts=3, base_delay=0.0, max_delay=0.0),
        clock=clock,
    )
    yield read_cache
    await read_cache.close()


@pytest.fixture
def aggregator(cache: ReadCache) -> ProposalAggregator:
    return ProposalAggregator(cache)


@pytest_asyncio.fixture
async def orchestrator(
    session: SessionStore, gateway: LedgerGateway, cache: ReadCache
) -> AsyncGenerator[MutationOrchestrator, None]:
    mutations = MutationOrchestrator(session=session, gateway=gateway, cache=cache)
    yield mutations
    await mutations.close()


@pytest_asyncio.fixture
async def connected(session: SessionStore) -> SessionStore:
    """The session store after a successful connect as ALICE."""
    await session.connect("petra")
    return session
