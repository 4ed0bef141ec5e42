"""Tests for view result parsing and action payload construction."""

import pytest

from daosync.client.ledger_gateway import (
    LedgerGateway,
    RestViewTransport,
    parse_member_tokens,
    parse_proposal_info,
    parse_treasury_info,
)
from daosync.client.session import SessionStore
from daosync.config import DEFAULT_CONTRACT_ADDRESS, DaoSyncSettings
from daosync.core.errors import MalformedResponse, NotConnected
from daosync.datastructures.dao_types import (
    MemberTokens,
    ProposalStatus,
    TreasuryInfo,
)

from .conftest import ALICE, BOB, FakeLedger, FakeSigner

MODULE = f"{DEFAULT_CONTRACT_ADDRESS}::InvestDAO"


class TestParsing:
    def test_treasury_from_u64_strings(self):
        assert parse_treasury_info(["100000000", "2", "0"]) == TreasuryInfo(
            total_funds=100_000_000, proposal_count=2, staked_tokens=0
        )

    def test_member_tokens_from_numbers(self):
        assert parse_member_tokens([5, 3]) == MemberTokens(5, 3)

    def test_proposal_row(self):
        proposal = parse_proposal_info(7, [BOB, "250", "3", "1", 1, True])
        assert proposal.id == 7
        assert proposal.recipient == BOB
        assert proposal.requested_amount == 250
        assert proposal.status is ProposalStatus.FUNDED
        assert proposal.executed

    @pytest.mark.parametrize(
        "result",
        [
            [],
            ["1", "2"],
            ["1", "2", "3", "4"],
            ["-1", "0", "0"],
            ["lots", "0", "0"],
            None,
            {"total": 1},
        ],
    )
    def test_malformed_treasury(self, result):
        with pytest.raises(MalformedResponse):
            parse_treasury_info(result)

    @pytest.mark.parametrize(
        "result",
        [
            [BOB, "1", "0", "0", 0],
            [42, "1", "0", "0", 0, False],
            [BOB, "1", "0", "0", "open", False],
        ],
    )
    def test_malformed_proposal(self, result):
        with pytest.raises(MalformedResponse):
            parse_proposal_info(1, result)

    def test_unknown_status_code(self):
        with pytest.raises(MalformedResponse, match="unknown status 9"):
            parse_proposal_info(1, [BOB, "1", "0", "0", 9, False])


class TestGatewayViews:
    @pytest.mark.asyncio
    async def test_views_use_qualified_function_ids(
        self, gateway: LedgerGateway, ledger: FakeLedger
    ):
        ledger.add_proposal(1, yes=2)
        ledger.tokens[ALICE] = [10, 4]

        treasury = await gateway.get_treasury_info(ALICE)
        tokens = await gateway.get_member_tokens(ALICE)
        proposal = await gateway.get_proposal_info(ALICE, 1)

        assert treasury.proposal_count == 1
        assert tokens == MemberTokens(10, 4)
        assert proposal.yes_votes == 2
        assert ledger.calls == [
            ("get_treasury_info", (ALICE,)),
            ("get_member_tokens", (ALICE,)),
            ("get_proposal_info", (ALICE, 1)),
        ]

    @pytest.mark.asyncio
    async def test_shape_errors_surface_as_malformed(
        self, gateway: LedgerGateway, ledger: FakeLedger
    ):
        ledger.treasury = ["1", "2"]
        with pytest.raises(MalformedResponse):
            await gateway.get_treasury_info(ALICE)


class TestGatewayActions:
    def test_payload(self, gateway: LedgerGateway):
        payload = gateway.payload("vote_on_proposal", 3, True)
        assert payload.function == f"{MODULE}::vote_on_proposal"
        assert payload.arguments == (3, True)
        assert payload.type == "entry_function_payload"

    @pytest.mark.asyncio
    async def test_actions_require_connection(self, gateway: LedgerGateway):
        with pytest.raises(NotConnected):
            await gateway.join()

    @pytest.mark.asyncio
    async def test_actions_build_expected_payloads(
        self, gateway: LedgerGateway, connected: SessionStore, signer: FakeSigner
    ):
        await gateway.join()
        await gateway.stake(500)
        await gateway.create_proposal(BOB, 1_000)
        await gateway.vote(2, False)
        ack = await gateway.execute(2)

        assert ack.tx_hash == f"0x{5:064x}"
        assert [(p["function"], p["arguments"]) for p in signer.submitted] == [
            (f"{MODULE}::join_dao", []),
            (f"{MODULE}::stake_tokens", [500]),
            (f"{MODULE}::create_investment_proposal", [BOB, 1_000]),
            (f"{MODULE}::vote_on_proposal", [2, False]),
            (f"{MODULE}::execute_proposal", [2]),
        ]


class TestRestViewTransport:
    def test_encode_argument(self):
        assert RestViewTransport.encode_argument(12) == "12"
        assert RestViewTransport.encode_argument(True) is True
        assert RestViewTransport.encode_argument(ALICE) == ALICE

    def test_settings_function_id(self):
        settings = DaoSyncSettings(contract_address="0x1", module_name="Dao")
        assert settings.function_id("get_treasury_info") == (
            "0x1::Dao::get_treasury_info"
        )
