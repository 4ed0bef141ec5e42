"""Tests for the session store: connect, disconnect, restore and signing."""

import pytest

from daosync.client.session import SessionStore
from daosync.core.errors import (
    NotConnected,
    ProviderError,
    ProviderUnavailable,
    SubmissionRejected,
    UserRejected,
)
from daosync.core.identity_events import IdentityEvent, IdentityEventType
from daosync.core.persistence.hint_store import (
    LAST_ADDRESS,
    WAS_CONNECTED,
    MemoryHintStore,
)
from daosync.core.signer import (
    ActionPayload,
    LedgerRejected,
    SignerDeclined,
    StaticSignerLocator,
)
from daosync.datastructures.dao_types import Identity

from .conftest import ALICE, BOB, FakeSigner


class RecordingComponent:
    def __init__(self) -> None:
        self.events: list[IdentityEvent] = []

    def on_identity_connected(self, event: IdentityEvent) -> None:
        self.events.append(event)

    def on_identity_disconnected(self, event: IdentityEvent) -> None:
        self.events.append(event)


class BrokenHintStore(MemoryHintStore):
    async def get(self, name: str) -> str | None:
        raise OSError("storage unavailable")


def payload() -> ActionPayload:
    return ActionPayload(function="0x1::InvestDAO::join_dao")


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_sets_identity_and_hints(
        self, session: SessionStore, hints: MemoryHintStore
    ):
        identity = await session.connect("petra")

        assert identity == Identity.connected_as(ALICE)
        assert session.address == ALICE
        assert await hints.get(WAS_CONNECTED) == "true"
        assert await hints.get(LAST_ADDRESS) == ALICE

    @pytest.mark.asyncio
    async def test_connect_without_signer(self, hints: MemoryHintStore):
        session = SessionStore(locator=StaticSignerLocator(), hints=hints)
        with pytest.raises(ProviderUnavailable):
            await session.connect()
        assert session.identity == Identity.empty()

    @pytest.mark.asyncio
    async def test_user_rejection(self, session: SessionStore, signer: FakeSigner):
        signer.connect_error = SignerDeclined("User rejected the request")
        with pytest.raises(UserRejected, match="User rejected"):
            await session.connect()
        assert not session.identity.connected
        assert not session.identity.connecting

    @pytest.mark.asyncio
    async def test_other_signer_fault(self, session: SessionStore, signer: FakeSigner):
        signer.connect_error = RuntimeError("bridge crashed")
        with pytest.raises(ProviderError, match="bridge crashed"):
            await session.connect()
        assert not session.identity.connecting

    @pytest.mark.asyncio
    async def test_response_without_address(self, session: SessionStore):
        class NoAddressSigner(FakeSigner):
            async def connect(self):
                return {}

        session.locator = StaticSignerLocator({"petra": NoAddressSigner()})
        with pytest.raises(ProviderError, match="no address"):
            await session.connect()
        assert session.identity == Identity.empty()

    @pytest.mark.asyncio
    async def test_connect_publishes_event(self, session: SessionStore):
        component = RecordingComponent()
        session.events.subscribe(component)

        await session.connect()

        assert [e.event_type for e in component.events] == [
            IdentityEventType.CONNECTED
        ]
        assert component.events[0].address == ALICE


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_resets_identity_and_hints(
        self, connected: SessionStore, hints: MemoryHintStore
    ):
        await connected.disconnect()

        assert connected.identity == Identity.empty()
        assert connected.address is None
        assert await hints.get(WAS_CONNECTED) is None
        assert await hints.get(LAST_ADDRESS) is None

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, session: SessionStore):
        await session.disconnect()
        await session.disconnect()
        assert session.identity == Identity.empty()

    @pytest.mark.asyncio
    async def test_disconnect_publishes_event(self, connected: SessionStore):
        component = RecordingComponent()
        connected.events.subscribe(component)
        await connected.disconnect()
        assert component.events[-1].event_type is IdentityEventType.DISCONNECTED


class TestRestoreSession:
    @pytest.mark.asyncio
    async def test_restore_reproduces_identity(
        self,
        connected: SessionStore,
        locator: StaticSignerLocator,
        hints: MemoryHintStore,
    ):
        fresh = SessionStore(locator=locator, hints=hints)
        component = RecordingComponent()
        fresh.events.subscribe(component)

        identity = await fresh.restore_session()

        assert identity == connected.identity
        assert component.events[0].event_type is IdentityEventType.RESTORED

    @pytest.mark.asyncio
    async def test_restore_without_hint(self, session: SessionStore):
        assert await session.restore_session() == Identity.empty()

    @pytest.mark.asyncio
    async def test_restore_drops_hint_when_signer_not_live(
        self,
        connected: SessionStore,
        signer: FakeSigner,
        locator: StaticSignerLocator,
        hints: MemoryHintStore,
    ):
        signer.session_live = False
        fresh = SessionStore(locator=locator, hints=hints)

        assert await fresh.restore_session() == Identity.empty()
        assert await hints.get(WAS_CONNECTED) is None
        assert await hints.get(LAST_ADDRESS) is None

    @pytest.mark.asyncio
    async def test_restore_drops_hint_when_signer_gone(
        self, connected: SessionStore, hints: MemoryHintStore
    ):
        fresh = SessionStore(locator=StaticSignerLocator(), hints=hints)

        assert await fresh.restore_session() == Identity.empty()
        assert await hints.get(WAS_CONNECTED) is None

    @pytest.mark.asyncio
    async def test_restore_swallows_signer_errors(
        self, connected: SessionStore, signer: FakeSigner, hints: MemoryHintStore
    ):
        class FlakySigner(FakeSigner):
            async def is_connected(self) -> bool:
                raise RuntimeError("bridge crashed")

        fresh = SessionStore(
            locator=StaticSignerLocator({"petra": FlakySigner()}), hints=hints
        )
        assert await fresh.restore_session() == Identity.empty()
        assert await hints.get(LAST_ADDRESS) is None

    @pytest.mark.asyncio
    async def test_restore_with_unreadable_storage(self, locator: StaticSignerLocator):
        session = SessionStore(locator=locator, hints=BrokenHintStore())
        assert await session.restore_session() == Identity.empty()


class TestSign:
    @pytest.mark.asyncio
    async def test_sign_requires_connection(self, session: SessionStore):
        with pytest.raises(NotConnected):
            await session.sign(payload())

    @pytest.mark.asyncio
    async def test_sign_returns_ack(self, connected: SessionStore, signer: FakeSigner):
        ack = await connected.sign(payload())

        assert ack.tx_hash == f"0x{1:064x}"
        assert signer.submitted == [
            {
                "type": "entry_function_payload",
                "function": "0x1::InvestDAO::join_dao",
                "type_arguments": [],
                "arguments": [],
            }
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [SignerDeclined("declined"), LedgerRejected("EINSUFFICIENT")]
    )
    async def test_rejections_map_to_submission_rejected(
        self, connected: SessionStore, signer: FakeSigner, error: Exception
    ):
        signer.submit_error = error
        with pytest.raises(SubmissionRejected):
            await connected.sign(payload())

    @pytest.mark.asyncio
    async def test_unexpected_fault_maps_to_provider_error(
        self, connected: SessionStore, signer: FakeSigner
    ):
        signer.submit_error = ConnectionResetError("gone")
        with pytest.raises(ProviderError):
            await connected.sign(payload())

    @pytest.mark.asyncio
    async def test_signer_vanished(self, connected: SessionStore):
        connected.locator.unregister("petra")
        with pytest.raises(ProviderUnavailable):
            await connected.sign(payload())


class TestSignerLocator:
    def test_preference_order(self):
        petra, martian, other = FakeSigner(), FakeSigner(BOB), FakeSigner()
        locator = StaticSignerLocator()
        assert locator() is None

        locator.register("other", other)
        assert locator() is other
        locator.register("Martian", martian)
        assert locator() is martian
        locator.register("petra", petra)
        assert locator() is petra
        assert locator("MARTIAN") is martian
        assert locator("unknown") is petra
