"""
Ledger gateway: named views and actions of the DAO module.

The gateway is stateless. Views go through a ``ViewTransport`` and have
their results shape-checked into value types; actions are turned into
``ActionPayload`` objects and handed to the session store for signing.
Retries and caching belong to the read cache, never to this layer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import aiohttp
import orjson
from loguru import logger
from pydantic import NonNegativeInt, StrictStr, TypeAdapter, ValidationError

from ..config import DaoSyncSettings
from ..core.errors import MalformedResponse, ViewTransportError
from ..core.signer import ActionPayload, SubmissionAck
from ..datastructures.dao_types import (
    MemberTokens,
    Proposal,
    ProposalStatus,
    TreasuryInfo,
)
from ..datastructures.type_aliases import (
    AccountAddress,
    FunctionId,
    Octas,
    ProposalNumber,
)
from .session import SessionStore

# Entry functions
JOIN_DAO = "join_dao"
STAKE_TOKENS = "stake_tokens"
CREATE_PROPOSAL = "create_investment_proposal"
VOTE_PROPOSAL = "vote_on_proposal"
EXECUTE_PROPOSAL = "execute_proposal"

# View functions
GET_TREASURY_INFO = "get_treasury_info"
GET_MEMBER_TOKENS = "get_member_tokens"
GET_PROPOSAL_INFO = "get_proposal_info"

_TREASURY_ROW = TypeAdapter(tuple[NonNegativeInt, NonNegativeInt, NonNegativeInt])
_MEMBER_TOKENS_ROW = TypeAdapter(tuple[NonNegativeInt, NonNegativeInt])
_PROPOSAL_ROW = TypeAdapter(
    tuple[
        StrictStr,
        NonNegativeInt,
        NonNegativeInt,
        NonNegativeInt,
        NonNegativeInt,
        bool,
    ]
)


class ViewTransport(Protocol):
    """Executes a read-only view function on the ledger."""

    async def view(self, function: FunctionId, arguments: Sequence[Any]) -> list[Any]:
        ...

    async def close(self) -> None: ...


@dataclass(slots=True)
class RestViewTransport:
    """Calls ``POST {node_url}/view`` on a fullnode REST API.

    u64 arguments are sent as decimal strings, as the REST API expects.
    """

    node_url: str
    timeout: float = 10.0
    _session: aiohttp.ClientSession | None = field(default=None, init=False)

    async def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Content-Type": "application/json"},
            )
        return self._session

    @staticmethod
    def encode_argument(value: Any) -> Any:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        return value

    async def view(self, function: FunctionId, arguments: Sequence[Any]) -> list[Any]:
        body = {
            "function": function,
            "type_arguments": [],
            "arguments": [self.encode_argument(arg) for arg in arguments],
        }
        session = await self._client()
        url = f"{self.node_url.rstrip('/')}/view"
        try:
            async with session.post(url, data=orjson.dumps(body)) as response:
                raw = await response.read()
                if response.status >= 400:
                    raise ViewTransportError(
                        f"{function} returned HTTP {response.status}: "
                        f"{raw[:200].decode(errors='replace')}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ViewTransportError(f"{function} request failed: {e}") from e

        try:
            decoded = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise MalformedResponse(f"{function} returned invalid JSON") from e
        if not isinstance(decoded, list):
            raise MalformedResponse(
                f"{function} returned {type(decoded).__name__}, expected list"
            )
        return decoded

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


T = TypeVar("T")


def _parse(adapter: TypeAdapter[T], function: str, result: Any) -> T:
    try:
        return adapter.validate_python(result)
    except ValidationError as e:
        raise MalformedResponse(
            f"{function} result {result!r} has unexpected shape: "
            f"{e.error_count()} errors"
        ) from e


def parse_treasury_info(result: Any) -> TreasuryInfo:
    total_funds, proposal_count, staked_tokens = _parse(
        _TREASURY_ROW, GET_TREASURY_INFO, result
    )
    return TreasuryInfo(
        total_funds=total_funds,
        proposal_count=proposal_count,
        staked_tokens=staked_tokens,
    )


def parse_member_tokens(result: Any) -> MemberTokens:
    balance, staked_balance = _parse(_MEMBER_TOKENS_ROW, GET_MEMBER_TOKENS, result)
    return MemberTokens(balance=balance, staked_balance=staked_balance)


def parse_proposal_info(proposal_id: ProposalNumber, result: Any) -> Proposal:
    recipient, amount, yes_votes, no_votes, status_code, executed = _parse(
        _PROPOSAL_ROW, GET_PROPOSAL_INFO, result
    )
    try:
        status = ProposalStatus(status_code)
    except ValueError as e:
        raise MalformedResponse(
            f"{GET_PROPOSAL_INFO} returned unknown status {status_code}"
        ) from e
    return Proposal(
        id=proposal_id,
        recipient=recipient,
        requested_amount=amount,
        yes_votes=yes_votes,
        no_votes=no_votes,
        status=status,
        executed=executed,
    )


@dataclass(slots=True)
class LedgerGateway:
    """Translates named views and actions into ledger calls."""

    settings: DaoSyncSettings
    transport: ViewTransport
    session: SessionStore

    # Views

    async def get_treasury_info(self, viewer: AccountAddress) -> TreasuryInfo:
        result = await self._view(GET_TREASURY_INFO, [viewer])
        return parse_treasury_info(result)

    async def get_member_tokens(self, member: AccountAddress) -> MemberTokens:
        result = await self._view(GET_MEMBER_TOKENS, [member])
        return parse_member_tokens(result)

    async def get_proposal_info(
        self, viewer: AccountAddress, proposal_id: ProposalNumber
    ) -> Proposal:
        result = await self._view(GET_PROPOSAL_INFO, [viewer, proposal_id])
        return parse_proposal_info(proposal_id, result)

    async def _view(self, name: str, arguments: list[Any]) -> list[Any]:
        function = self.settings.function_id(name)
        logger.debug("View {} {}", name, arguments)
        return await self.transport.view(function, arguments)

    # Actions

    def payload(self, name: str, *arguments: Any) -> ActionPayload:
        return ActionPayload(
            function=self.settings.function_id(name), arguments=arguments
        )

    async def join(self) -> SubmissionAck:
        return await self.session.sign(self.payload(JOIN_DAO))

    async def stake(self, amount: Octas) -> SubmissionAck:
        return await self.session.sign(self.payload(STAKE_TOKENS, amount))

    async def create_proposal(
        self, recipient: AccountAddress, amount: Octas
    ) -> SubmissionAck:
        return await self.session.sign(
            self.payload(CREATE_PROPOSAL, recipient, amount)
        )

    async def vote(self, proposal_id: ProposalNumber, approve: bool) -> SubmissionAck:
        return await self.session.sign(
            self.payload(VOTE_PROPOSAL, proposal_id, approve)
        )

    async def execute(self, proposal_id: ProposalNumber) -> SubmissionAck:
        return await self.session.sign(self.payload(EXECUTE_PROPOSAL, proposal_id))
