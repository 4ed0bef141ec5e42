"""
Read cache: polling-refreshed, time-bounded view of ledger entities.

The cache is the single source of truth for fetched entities. Only its own
refresh machinery writes entries; the mutation orchestrator may invalidate
them; everybody else reads.

Freshness rules:

- A refresh cycle makes up to ``RetryPolicy.attempts`` fetches with
  exponential backoff. If all fail, the last good value is kept and a
  ``StaleDataWarning`` is attached; an entry is never emptied by a failure.
- A completed cycle is served to reads for ``stale_grace`` seconds.
- ``invalidate`` bumps an entry's version; a read then re-fetches once.
  Any number of invalidations before that read cost a single fetch.
- At most one fetch per key runs at a time; readers and poll ticks that
  arrive meanwhile wait for the same fetch.
- ``stop()`` moves to a new epoch: fetches started earlier never write.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from loguru import logger

from ..config import DaoSyncSettings
from ..core.errors import LedgerReadError, StaleDataWarning
from ..core.identity_events import IdentityEvent
from ..core.task_manager import TaskManager
from ..datastructures.type_aliases import (
    AccountAddress,
    DurationSeconds,
    ProposalNumber,
    Timestamp,
)
from .ledger_gateway import LedgerGateway


class EntityKind(Enum):
    """Kinds of ledger-derived entities held by the cache."""

    TREASURY = "treasury"
    MEMBER_TOKENS = "member_tokens"
    PROPOSAL = "proposal"


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Identifies one cached entity, or the whole proposal collection.

    ``CacheKey.proposals(address)`` has no proposal id and only serves as an
    invalidation target covering every proposal cached for that viewer.
    """

    kind: EntityKind
    address: AccountAddress
    proposal_id: ProposalNumber | None = None

    @classmethod
    def treasury(cls, address: AccountAddress) -> CacheKey:
        return cls(EntityKind.TREASURY, address)

    @classmethod
    def member_tokens(cls, address: AccountAddress) -> CacheKey:
        return cls(EntityKind.MEMBER_TOKENS, address)

    @classmethod
    def proposal(
        cls, address: AccountAddress, proposal_id: ProposalNumber
    ) -> CacheKey:
        return cls(EntityKind.PROPOSAL, address, proposal_id)

    @classmethod
    def proposals(cls, address: AccountAddress) -> CacheKey:
        return cls(EntityKind.PROPOSAL, address, None)

    @property
    def is_collection(self) -> bool:
        return self.kind is EntityKind.PROPOSAL and self.proposal_id is None

    def covers(self, other: CacheKey) -> bool:
        if self.is_collection:
            return other.kind is EntityKind.PROPOSAL and other.address == self.address
        return self == other

    def __str__(self) -> str:
        if self.proposal_id is None:
            return f"{self.kind.value}:{self.address}"
        return f"{self.kind.value}:{self.address}:{self.proposal_id}"


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Backoff schedule for one refresh cycle."""

    attempts: int = 3
    base_delay: DurationSeconds = 1.0
    max_delay: DurationSeconds = 30.0

    def delay(self, failed_attempt: int) -> DurationSeconds:
        """Delay after the ``failed_attempt``-th failure (0-based)."""
        return min(self.base_delay * (2**failed_attempt), self.max_delay)

    @classmethod
    def from_settings(cls, settings: DaoSyncSettings) -> RetryPolicy:
        return cls(
            attempts=settings.retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class CachedValue(Generic[T]):
    """What a read returns: the value plus how much to trust it."""

    key: CacheKey
    value: T | None
    fetched_at: Timestamp | None = None
    warning: StaleDataWarning | None = None

    @property
    def stale(self) -> bool:
        return self.warning is not None

    @property
    def available(self) -> bool:
        return self.value is not None


@dataclass(slots=True)
class _Entry:
    value: Any = None
    fetched_at: Timestamp | None = None
    checked_at: Timestamp | None = None
    version: int = 0
    checked_version: int = -1
    warning: StaleDataWarning | None = None


@dataclass(slots=True)
class _Flight:
    task: asyncio.Task[None]
    waiters: int = 0


class ReadCache:
    """Keyed cache of treasury, member token and proposal snapshots."""

    def __init__(
        self,
        gateway: LedgerGateway,
        *,
        poll_interval: DurationSeconds = 5.0,
        proposal_poll_interval: DurationSeconds = 10.0,
        stale_grace: DurationSeconds = 5.0,
        retry: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.gateway = gateway
        self.poll_interval = poll_interval
        self.proposal_poll_interval = proposal_poll_interval
        self.stale_grace = stale_grace
        self.retry = retry or RetryPolicy()
        self._clock = clock

        self._entries: dict[CacheKey, _Entry] = {}
        self._inflight: dict[CacheKey, _Flight] = {}
        self._epoch = 0
        self._fetches = TaskManager("ReadCache.fetch")
        self._poller: TaskManager | None = None
        self._polling_address: AccountAddress | None = None
        self.fetch_count = 0

    @classmethod
    def from_settings(
        cls, gateway: LedgerGateway, settings: DaoSyncSettings
    ) -> ReadCache:
        return cls(
            gateway,
            poll_interval=settings.poll_interval,
            proposal_poll_interval=settings.proposal_poll_interval,
            stale_grace=settings.stale_grace,
            retry=RetryPolicy.from_settings(settings),
        )

    # Reads

    async def read(self, key: CacheKey) -> CachedValue[Any]:
        """Return the value for ``key``, fetching only if it is not fresh.

        Never raises for ledger read failures: after exhausted retries the
        last good value (possibly ``None``) comes back with a warning.
        """
        if key.is_collection:
            raise ValueError("Read proposals one id at a time")

        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry):
            return self._snapshot(key, entry)

        await self._refresh(key)
        entry = self._entries.get(key)
        if entry is not None and entry.checked_version < entry.version:
            # Invalidated while the joined fetch was already running.
            await self._refresh(key)
            entry = self._entries.get(key)
        return self._snapshot(key, entry)

    def peek(self, key: CacheKey) -> Any | None:
        """Last known value without any I/O."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def cached_keys(self, kind: EntityKind | None = None) -> list[CacheKey]:
        return [key for key in self._entries if kind is None or key.kind is kind]

    def scope(self, name: str = "ReadScope") -> ReadScope:
        return ReadScope(self, name)

    # Invalidation

    def invalidate(self, key: CacheKey) -> int:
        """Force the next read of ``key`` (or the covered keys) to re-fetch."""
        touched = 0
        for cached_key, entry in self._entries.items():
            if key.covers(cached_key):
                entry.version += 1
                touched += 1
        logger.debug("Invalidated {} ({} entries)", key, touched)
        return touched

    # Refresh machinery

    def _is_fresh(self, entry: _Entry) -> bool:
        if entry.checked_at is None or entry.checked_version != entry.version:
            return False
        return (self._clock() - entry.checked_at) < self.stale_grace

    def _snapshot(self, key: CacheKey, entry: _Entry | None) -> CachedValue[Any]:
        if entry is None:
            return CachedValue(key=key, value=None)
        return CachedValue(
            key=key,
            value=entry.value,
            fetched_at=entry.fetched_at,
            warning=entry.warning,
        )

    async def _refresh(self, key: CacheKey) -> None:
        flight = self._inflight.get(key)
        if flight is None:
            entry = self._entries.setdefault(key, _Entry())
            task = self._fetches.create_task(
                self._fetch_cycle(key, self._epoch, entry.version),
                name=f"fetch:{key}",
            )
            flight = _Flight(task=task)
            self._inflight[key] = flight
            task.add_done_callback(lambda _, k=key, f=flight: self._land(k, f))

        flight.waiters += 1
        try:
            await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            caller_cancelled = current is not None and current.cancelling() > 0
            if flight.task.cancelled() and not caller_cancelled:
                # The fetch was dropped by stop(); the caller itself was not
                # cancelled and gets whatever the entry still holds.
                return
            raise
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                logger.debug("No readers left for {}, cancelling fetch", key)
                flight.task.cancel()

    def _land(self, key: CacheKey, flight: _Flight) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]

    async def _fetch_cycle(self, key: CacheKey, epoch: int, version: int) -> None:
        last_error: LedgerReadError | None = None
        for attempt in range(self.retry.attempts):
            try:
                value = await self._fetch_once(key)
            except LedgerReadError as e:
                last_error = e
                logger.warning(
                    "Fetch of {} failed (attempt {}/{}): {}",
                    key,
                    attempt + 1,
                    self.retry.attempts,
                    e,
                )
                if attempt + 1 < self.retry.attempts:
                    await asyncio.sleep(self.retry.delay(attempt))
                continue

            if self._accepts(key, epoch):
                entry = self._entries.setdefault(key, _Entry())
                now = self._clock()
                entry.value = value
                entry.fetched_at = now
                entry.checked_at = now
                entry.checked_version = version
                entry.warning = None
            return

        if self._accepts(key, epoch):
            entry = self._entries.setdefault(key, _Entry())
            entry.checked_at = self._clock()
            entry.checked_version = version
            entry.warning = StaleDataWarning(
                key=str(key), attempts=self.retry.attempts, error=str(last_error)
            )
            logger.warning("{}", entry.warning)

    def _accepts(self, key: CacheKey, epoch: int) -> bool:
        if epoch != self._epoch:
            logger.debug("Discarding result for {} from an old session", key)
            return False
        return True

    async def _fetch_once(self, key: CacheKey) -> Any:
        self.fetch_count += 1
        match key.kind:
            case EntityKind.TREASURY:
                return await self.gateway.get_treasury_info(key.address)
            case EntityKind.MEMBER_TOKENS:
                return await self.gateway.get_member_tokens(key.address)
            case EntityKind.PROPOSAL:
                assert key.proposal_id is not None
                return await self.gateway.get_proposal_info(
                    key.address, key.proposal_id
                )

    # Polling lifecycle

    @property
    def epoch(self) -> int:
        """Bumped by every ``stop()``, i.e. on each identity change."""
        return self._epoch

    @property
    def polling(self) -> bool:
        return self._poller is not None and bool(self._poller)

    @property
    def polling_address(self) -> AccountAddress | None:
        return self._polling_address

    def start(self, address: AccountAddress) -> None:
        """Begin polling for ``address``; restarts if another was polled."""
        if self._polling_address == address and self.polling:
            return
        self.stop()

        self._polling_address = address
        self._poller = TaskManager(f"ReadCache.poll[{address[:10]}]")
        for key in (CacheKey.treasury(address), CacheKey.member_tokens(address)):
            self._poller.create_task(self._poll_loop(key), name=f"poll:{key}")
        self._poller.create_task(
            self._poll_proposals(address), name=f"poll:proposals:{address}"
        )
        logger.info("Polling started for {} every {}s", address, self.poll_interval)

    def stop(self) -> None:
        """Stop polling and forget everything fetched for the old identity."""
        self._epoch += 1
        if self._poller is not None:
            self._poller.cancel_all()
            self._poller = None
        for flight in list(self._inflight.values()):
            flight.task.cancel()
        self._inflight.clear()
        self._entries.clear()
        if self._polling_address is not None:
            logger.info("Polling stopped for {}", self._polling_address)
        self._polling_address = None

    async def _poll_loop(self, key: CacheKey) -> None:
        while True:
            try:
                await self._refresh(key)
            except Exception as e:
                logger.error("Poll of {} failed: {}", key, e)
            await asyncio.sleep(self.poll_interval)

    async def _poll_proposals(self, address: AccountAddress) -> None:
        while True:
            await asyncio.sleep(self.proposal_poll_interval)
            keys = [
                key
                for key in self.cached_keys(EntityKind.PROPOSAL)
                if key.address == address
            ]
            if not keys:
                continue
            results = await asyncio.gather(
                *(self._refresh(key) for key in keys), return_exceptions=True
            )
            for key, result in zip(keys, results, strict=True):
                if isinstance(result, Exception):
                    logger.error("Poll of {} failed: {}", key, result)

    # Identity events

    def on_identity_connected(self, event: IdentityEvent) -> None:
        if event.address is not None:
            self.start(event.address)

    def on_identity_disconnected(self, event: IdentityEvent) -> None:
        self.stop()

    async def close(self) -> None:
        self.stop()
        await self._fetches.shutdown()


class ReadScope:
    """Reads tied to the lifetime of one consumer (a view, a CLI command).

    Closing the scope cancels its pending reads. A fetch that no other
    reader is waiting for is cancelled with it, so its result is never
    written to the cache.
    """

    def __init__(self, cache: ReadCache, name: str = "ReadScope") -> None:
        self._cache = cache
        self._tasks = TaskManager(name)

    @property
    def closed(self) -> bool:
        return self._tasks.closed

    async def read(self, key: CacheKey) -> CachedValue[Any]:
        task = self._tasks.create_task(self._cache.read(key), name=f"read:{key}")
        return await task

    async def close(self) -> None:
        await self._tasks.shutdown()

    async def __aenter__(self) -> ReadScope:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
