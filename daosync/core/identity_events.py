"""
Identity event bus.

The session store publishes an event whenever the connected identity
changes; components that own identity-scoped work (the read cache's poll
loops) subscribe instead of the session store knowing about them.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from loguru import logger

from ..datastructures.dao_types import Identity
from ..datastructures.type_aliases import AccountAddress, Timestamp


class IdentityEventType(Enum):
    """Types of identity events."""

    CONNECTED = "identity_connected"
    RESTORED = "identity_restored"
    DISCONNECTED = "identity_disconnected"


@dataclass(frozen=True, slots=True)
class IdentityEvent:
    """A change of the session's identity."""

    event_type: IdentityEventType
    identity: Identity
    timestamp: Timestamp

    @property
    def address(self) -> AccountAddress | None:
        return self.identity.address

    @classmethod
    def connected(cls, identity: Identity) -> "IdentityEvent":
        return cls(IdentityEventType.CONNECTED, identity, time.time())

    @classmethod
    def restored(cls, identity: Identity) -> "IdentityEvent":
        return cls(IdentityEventType.RESTORED, identity, time.time())

    @classmethod
    def disconnected(cls) -> "IdentityEvent":
        return cls(IdentityEventType.DISCONNECTED, Identity.empty(), time.time())


class IdentityAwareComponent(Protocol):
    """Protocol for components that follow the session identity."""

    def on_identity_connected(self, event: IdentityEvent) -> None:
        """Called after connect or a silent session restore."""
        ...

    def on_identity_disconnected(self, event: IdentityEvent) -> None:
        """Called after disconnect."""
        ...


class IdentityEventBus:
    """Synchronous fan-out of identity events to subscribers."""

    def __init__(self, max_history: int = 50) -> None:
        self._subscribers: list[IdentityAwareComponent] = []
        self._history: list[IdentityEvent] = []
        self._max_history = max_history

    def subscribe(self, component: IdentityAwareComponent) -> None:
        if component not in self._subscribers:
            self._subscribers.append(component)
            logger.debug("{} subscribed to identity events", type(component).__name__)

    def unsubscribe(self, component: IdentityAwareComponent) -> None:
        if component in self._subscribers:
            self._subscribers.remove(component)

    def clear(self) -> None:
        self._subscribers.clear()

    def publish(self, event: IdentityEvent) -> None:
        """Deliver ``event`` to every subscriber.

        A failing subscriber is logged and does not stop delivery to the rest.
        """
        logger.debug(
            "Publishing {} for {} to {} subscribers",
            event.event_type.value,
            event.address,
            len(self._subscribers),
        )
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        for subscriber in list(self._subscribers):
            try:
                if event.event_type is IdentityEventType.DISCONNECTED:
                    subscriber.on_identity_disconnected(event)
                else:
                    subscriber.on_identity_connected(event)
            except Exception as e:
                logger.error(
                    "Identity subscriber {} failed on {}: {}",
                    type(subscriber).__name__,
                    event.event_type.value,
                    e,
                )

    def recent_events(self, limit: int = 10) -> list[IdentityEvent]:
        return self._history[-limit:]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
