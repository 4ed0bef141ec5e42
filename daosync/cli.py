import asyncio
import pprint as pp
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any

from jsonargparse import CLI
from loguru import logger

from daosync.client.aggregator import ProposalAggregator
from daosync.client.ledger_gateway import LedgerGateway, RestViewTransport
from daosync.client.read_cache import CacheKey, ReadCache
from daosync.client.session import SessionStore
from daosync.config import DaoSyncSettings
from daosync.core.errors import DaoSyncError
from daosync.core.logging import configure_from_settings
from daosync.core.signer import StaticSignerLocator
from daosync.datastructures.dao_types import format_address, format_apt


@dataclass(slots=True)
class DaoSyncCLI:
    """Read-only command line access to a DAO module's views.

    Writes need a wallet and are not offered here.
    """

    node_url: str | None = None
    contract_address: str | None = None
    log_level: str = "WARNING"

    def _settings(self) -> DaoSyncSettings:
        overrides: dict[str, Any] = {"log_level": self.log_level}
        if self.node_url:
            overrides["node_url"] = self.node_url
        if self.contract_address:
            overrides["contract_address"] = self.contract_address
        return DaoSyncSettings(**overrides)

    def _run(
        self, body: Callable[[ReadCache, ProposalAggregator], Awaitable[Any]]
    ) -> Any:
        settings = self._settings()
        configure_from_settings(settings)

        async def runner() -> Any:
            transport = RestViewTransport(settings.node_url, settings.view_timeout)
            session = SessionStore(locator=StaticSignerLocator())
            gateway = LedgerGateway(settings, transport, session)
            cache = ReadCache.from_settings(gateway, settings)
            try:
                aggregator = ProposalAggregator(
                    cache, max_parallel_reads=settings.max_parallel_reads
                )
                return await body(cache, aggregator)
            finally:
                await cache.close()
                await transport.close()

        try:
            return asyncio.run(runner())
        except DaoSyncError as e:
            logger.error("{}: {}", type(e).__name__, e)
            raise SystemExit(1) from e

    def treasury(self, address: str) -> None:
        """Show the treasury as seen by ``address``."""

        async def body(cache: ReadCache, _: ProposalAggregator) -> None:
            read = await cache.read(CacheKey.treasury(address))
            if read.value is None:
                logger.error("Treasury unavailable: {}", read.warning)
                return
            print(f"Total funds:    {format_apt(read.value.total_funds)} APT")
            print(f"Staked tokens:  {format_apt(read.value.staked_tokens)} APT")
            print(f"Proposals:      {read.value.proposal_count}")

        self._run(body)

    def tokens(self, address: str) -> None:
        """Show the token balances of member ``address``."""

        async def body(cache: ReadCache, _: ProposalAggregator) -> None:
            read = await cache.read(CacheKey.member_tokens(address))
            if read.value is None:
                logger.error("Member tokens unavailable: {}", read.warning)
                return
            print(f"Balance:  {format_apt(read.value.balance)} APT")
            print(f"Staked:   {format_apt(read.value.staked_balance)} APT")
            print(f"Ratio:    {read.value.staked_ratio:.1%}")

        self._run(body)

    def proposals(self, address: str) -> None:
        """List every proposal readable by ``address``."""

        async def body(_: ReadCache, aggregator: ProposalAggregator) -> None:
            result = await aggregator.aggregate(address)
            for proposal in result.proposals:
                print(
                    f"#{proposal.id:<4} {proposal.status.label:<9} "
                    f"{format_apt(proposal.requested_amount):>14} APT -> "
                    f"{format_address(proposal.recipient)} "
                    f"(yes {proposal.yes_votes} / no {proposal.no_votes})"
                )
            if result.missing:
                logger.warning("Unreadable proposal ids: {}", list(result.missing))

        self._run(body)

    def stats(self, address: str) -> None:
        """Print derived DAO statistics for ``address``."""

        async def body(_: ReadCache, aggregator: ProposalAggregator) -> None:
            pp.pprint(asdict(await aggregator.stats(address)))

        self._run(body)


def main() -> None:
    CLI(DaoSyncCLI, as_dict=False)  # type: ignore[no-untyped-call]


if __name__ == "__main__":
    main()
