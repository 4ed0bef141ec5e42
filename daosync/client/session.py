"""
Session store: the single owner of the connected identity.

One ``SessionStore`` is constructed per client session and passed to every
component that needs to know who is connected or needs to sign. It is the
only code that talks to the environment signer.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger
from pydantic import ValidationError

from ..core.errors import (
    NotConnected,
    ProviderError,
    ProviderUnavailable,
    SubmissionRejected,
    UserRejected,
)
from ..core.identity_events import IdentityEvent, IdentityEventBus
from ..core.persistence.hint_store import (
    LAST_ADDRESS,
    WAS_CONNECTED,
    HintStore,
    MemoryHintStore,
)
from ..core.signer import (
    ActionPayload,
    LedgerRejected,
    Signer,
    SignerDeclined,
    SignerLocator,
    SubmissionAck,
)
from ..datastructures.dao_types import Identity


@dataclass(slots=True)
class SessionStore:
    """Holds the session identity and its signing capability."""

    locator: SignerLocator
    hints: HintStore = field(default_factory=MemoryHintStore)
    events: IdentityEventBus = field(default_factory=IdentityEventBus)

    _identity: Identity = field(default_factory=Identity.empty, init=False)
    _provider_hint: str | None = field(default=None, init=False)

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def address(self) -> str | None:
        return self._identity.address if self._identity.connected else None

    async def connect(self, provider_hint: str | None = None) -> Identity:
        """Request access from the environment signer.

        Raises:
            ProviderUnavailable: No compatible signer is present.
            UserRejected: The user declined the connection prompt.
            ProviderError: Any other signer fault.
        """
        signer = self.locator(provider_hint)
        if signer is None:
            raise ProviderUnavailable(
                f"No signer available for {provider_hint or 'any provider'}"
            )

        self._identity = self._identity.with_connecting(True)
        try:
            response = await signer.connect()
        except SignerDeclined as e:
            self._identity = self._identity.with_connecting(False)
            logger.info("Connection request declined: {}", e)
            raise UserRejected(str(e) or "Connection request declined") from e
        except Exception as e:
            self._identity = self._identity.with_connecting(False)
            logger.error("Signer connection failed: {}", e)
            raise ProviderError(f"Signer connection failed: {e}") from e

        address = response.get("address") if response else None
        if not isinstance(address, str) or not address:
            self._identity = self._identity.with_connecting(False)
            raise ProviderError(f"Signer returned no address: {response!r}")

        self._identity = Identity.connected_as(address)
        self._provider_hint = provider_hint
        await self._write_hints(address)
        logger.info("Connected as {}", address)
        self.events.publish(IdentityEvent.connected(self._identity))
        return self._identity

    async def disconnect(self) -> None:
        """Reset the identity and forget the reconnect hint. Never raises."""
        was_connected = self._identity.connected
        self._identity = Identity.empty()
        self._provider_hint = None
        await self._clear_hints()
        if was_connected:
            logger.info("Disconnected")
        self.events.publish(IdentityEvent.disconnected())

    async def restore_session(self) -> Identity:
        """Silently rehydrate the identity from the reconnect hint.

        Only succeeds when the signer itself still reports a live session;
        every other outcome clears the hint and leaves the identity empty.
        """
        try:
            was_connected = await self.hints.get(WAS_CONNECTED)
            saved_address = await self.hints.get(LAST_ADDRESS)
        except Exception as e:
            logger.debug("Reconnect hint unreadable: {}", e)
            await self._clear_hints()
            return self._identity

        if was_connected != "true" or not saved_address:
            return self._identity

        try:
            signer = self.locator(None)
            if signer is None or not await signer.is_connected():
                logger.debug("Signer has no live session, dropping reconnect hint")
                await self._clear_hints()
                return self._identity
        except Exception as e:
            logger.debug("Session restore failed: {}", e)
            await self._clear_hints()
            return self._identity

        self._identity = Identity.connected_as(saved_address)
        logger.info("Restored session for {}", saved_address)
        self.events.publish(IdentityEvent.restored(self._identity))
        return self._identity

    async def sign(self, payload: ActionPayload) -> SubmissionAck:
        """Have the signer sign and submit ``payload``.

        No timeout is applied: the user may take as long as they like to
        approve in their wallet.

        Raises:
            NotConnected: No identity is connected.
            ProviderUnavailable: The signer is gone.
            SubmissionRejected: The signer declined or the ledger rejected it.
            ProviderError: Any other signer fault.
        """
        if not self._identity.connected:
            raise NotConnected("Connect a wallet before submitting transactions")

        signer = self._signer()
        if signer is None:
            raise ProviderUnavailable("Signer is no longer available")

        logger.debug("Submitting {} {}", payload.function, payload.arguments)
        try:
            response = await signer.sign_and_submit(payload.to_signer_dict())
        except (SignerDeclined, LedgerRejected) as e:
            logger.warning("Submission of {} rejected: {}", payload.function, e)
            raise SubmissionRejected(str(e) or "Submission rejected") from e
        except Exception as e:
            logger.error("Submission of {} failed: {}", payload.function, e)
            raise ProviderError(f"Signer failed to submit: {e}") from e

        try:
            ack = SubmissionAck.from_response(response or {})
        except ValidationError as e:
            raise ProviderError(f"Unreadable submission response: {e}") from e
        logger.info("Submitted {} as {}", payload.function, ack.tx_hash)
        return ack

    async def close(self) -> None:
        """Tear down the session object; the reconnect hint is kept."""
        self.events.clear()
        await self.hints.close()

    def _signer(self) -> Signer | None:
        return self.locator(self._provider_hint)

    async def _write_hints(self, address: str) -> None:
        try:
            await self.hints.put(WAS_CONNECTED, "true")
            await self.hints.put(LAST_ADDRESS, address)
        except Exception as e:
            logger.warning("Could not persist reconnect hint: {}", e)

    async def _clear_hints(self) -> None:
        for name in (WAS_CONNECTED, LAST_ADDRESS):
            try:
                await self.hints.delete(name)
            except Exception as e:
                logger.warning("Could not clear reconnect hint {}: {}", name, e)

    def __repr__(self) -> str:
        return f"SessionStore(identity={self._identity!r})"
