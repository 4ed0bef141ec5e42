"""
Environment signer interface and the payload models exchanged with it.

A signer is whatever the host environment provides to hold the user's keys
(a browser wallet bridge, a hardware wallet daemon, a test double). The
core only needs three calls from it and treats every compliant provider
the same way; discovery is reduced to looking a signer up by name.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..datastructures.type_aliases import FunctionId, TransactionHash


class SignerDeclined(Exception):
    """Raised by a signer when the user refuses a prompt."""

    pass


class LedgerRejected(Exception):
    """Raised by a signer when the ledger refused a submitted transaction."""

    pass


class Signer(Protocol):
    """Capability exposed by the environment signer."""

    async def connect(self) -> Mapping[str, Any]:
        """Prompt for access; the response carries an ``address``."""
        ...

    async def is_connected(self) -> bool:
        """Report the signer's own session state without prompting."""
        ...

    async def sign_and_submit(self, payload: dict[str, Any]) -> Mapping[str, Any]:
        """Sign ``payload`` and submit it; the response carries a hash."""
        ...


class SignerLocator(Protocol):
    def __call__(self, provider_hint: str | None = None) -> Signer | None: ...


@dataclass(slots=True)
class StaticSignerLocator:
    """Finds signers registered by name.

    Without a hint the ``preference`` order is tried, mirroring how browser
    wallets are tried (Petra first, then Martian).
    """

    signers: dict[str, Signer] = field(default_factory=dict)
    preference: tuple[str, ...] = ("petra", "martian")

    def register(self, name: str, signer: Signer) -> None:
        self.signers[name.lower()] = signer

    def unregister(self, name: str) -> None:
        self.signers.pop(name.lower(), None)

    def __call__(self, provider_hint: str | None = None) -> Signer | None:
        if provider_hint is not None:
            found = self.signers.get(provider_hint.lower())
            if found is not None:
                return found
        for name in self.preference:
            if name in self.signers:
                return self.signers[name]
        return next(iter(self.signers.values()), None)


class ActionPayload(BaseModel):
    """Entry-function call handed to the signer."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(default="entry_function_payload")
    function: FunctionId = Field(description="Fully qualified entry function.")
    type_arguments: tuple[str, ...] = Field(default_factory=tuple)
    arguments: tuple[Any, ...] = Field(
        default_factory=tuple, description="Positional entry function arguments."
    )

    def to_signer_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class SubmissionAck(BaseModel):
    """Acknowledgement returned by the signer for a submitted action."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    tx_hash: TransactionHash | None = Field(
        default=None, validation_alias=AliasChoices("hash", "txHash", "tx_hash")
    )
    raw: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, response: Mapping[str, Any]) -> SubmissionAck:
        return cls.model_validate({**response, "raw": dict(response)})
