"""
Proposal aggregator.

Expands the treasury's proposal count into the individual proposals,
reading every id through the read cache in parallel. One bad id never
blanks the list: it is logged and left out.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from loguru import logger

from ..core.errors import ProposalCountUnavailable
from ..datastructures.dao_types import (
    DAOStats,
    Proposal,
    TreasuryInfo,
    compute_dao_stats,
)
from ..datastructures.type_aliases import (
    AccountAddress,
    DurationSeconds,
    ProposalNumber,
)
from .read_cache import CachedValue, CacheKey, ReadCache


@dataclass(frozen=True, slots=True)
class ProposalSet:
    """Result of one aggregation run."""

    treasury: TreasuryInfo
    proposals: tuple[Proposal, ...]
    missing: tuple[ProposalNumber, ...] = ()
    stale: bool = False

    @property
    def proposal_count(self) -> int:
        return self.treasury.proposal_count

    @property
    def ids(self) -> tuple[ProposalNumber, ...]:
        return tuple(proposal.id for proposal in self.proposals)

    @property
    def open_proposals(self) -> tuple[Proposal, ...]:
        return tuple(proposal for proposal in self.proposals if proposal.is_open)

    def by_id(self, proposal_id: ProposalNumber) -> Proposal | None:
        for proposal in self.proposals:
            if proposal.id == proposal_id:
                return proposal
        return None

    def stats(self) -> DAOStats:
        return compute_dao_stats(self.treasury, self.proposals)


@dataclass(slots=True)
class ProposalAggregator:
    """Builds the proposal collection for a viewer from the read cache."""

    cache: ReadCache
    max_parallel_reads: int = 16
    _last_seen: dict[AccountAddress, int] = field(default_factory=dict, init=False)

    async def aggregate(self, viewer: AccountAddress) -> ProposalSet:
        """Read the treasury count, then every proposal ``1..count``.

        Raises:
            ProposalCountUnavailable: No treasury snapshot could be obtained.
        """
        treasury_read = await self.cache.read(CacheKey.treasury(viewer))
        treasury = treasury_read.value
        if treasury is None:
            raise ProposalCountUnavailable(
                f"No proposal count available for {viewer}"
                + (f": {treasury_read.warning}" if treasury_read.warning else "")
            )

        count = treasury.proposal_count
        previous = self._last_seen.get(viewer)
        if previous is not None and previous != count:
            logger.info(
                "Proposal count for {} changed {} -> {}", viewer, previous, count
            )
        self._last_seen[viewer] = count

        ids = range(1, count + 1)
        limit = asyncio.Semaphore(self.max_parallel_reads)

        async def read_one(pid: ProposalNumber) -> CachedValue[Proposal]:
            async with limit:
                return await self.cache.read(CacheKey.proposal(viewer, pid))

        results = await asyncio.gather(
            *(read_one(pid) for pid in ids), return_exceptions=True
        )

        proposals: list[Proposal] = []
        missing: list[ProposalNumber] = []
        stale = treasury_read.stale
        for pid, result in zip(ids, results, strict=True):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error("Proposal {} read failed: {}", pid, result)
                missing.append(pid)
                continue
            if result.value is None:
                logger.warning("Proposal {} unavailable, omitting it", pid)
                missing.append(pid)
                continue
            stale = stale or result.stale
            proposals.append(result.value)

        return ProposalSet(
            treasury=treasury,
            proposals=tuple(sorted(proposals, key=lambda p: p.id)),
            missing=tuple(missing),
            stale=stale,
        )

    async def stats(self, viewer: AccountAddress) -> DAOStats:
        return (await self.aggregate(viewer)).stats()

    async def proposal(
        self, viewer: AccountAddress, proposal_id: ProposalNumber
    ) -> CachedValue[Proposal]:
        if proposal_id < 1:
            raise ValueError("Proposal ids start at 1")
        return await self.cache.read(CacheKey.proposal(viewer, proposal_id))

    def forget(self, viewer: AccountAddress) -> None:
        self._last_seen.pop(viewer, None)

    async def watch(
        self, viewer: AccountAddress, interval: DurationSeconds
    ) -> AsyncIterator[ProposalSet]:
        """Yield a new ``ProposalSet`` each time the proposal count changes.

        The first successful aggregation is always yielded. An unresolvable
        count is logged and retried on the next tick. The iterator ends when
        the cache moves to a new identity epoch (disconnect or a switch to
        another address), so nothing is read for a viewer that has left.
        """
        epoch = self.cache.epoch
        last_count: int | None = None
        while self.cache.epoch == epoch:
            try:
                result = await self.aggregate(viewer)
            except ProposalCountUnavailable as e:
                logger.warning("Proposal watch for {}: {}", viewer, e)
            else:
                if self.cache.epoch != epoch:
                    break
                if result.proposal_count != last_count:
                    last_count = result.proposal_count
                    yield result
            await asyncio.sleep(interval)
        logger.debug("Proposal watch for {} ended with its session", viewer)
