"""Contract between the session layer and a messaging transport.

A transport owns the wire protocol, encryption, and the socket. It reports
what happens through ``emit`` with the typed events below, and answers the
two pull-hooks it is handed when it needs state that the session layer keeps.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from wagate.types import Identity

# --- Batch items ---


@dataclass(frozen=True)
class TransportMessage:
    """One inbound message as the transport saw it."""

    id: str | None
    remote_jid: str | None
    from_me: bool = False
    push_name: str | None = None
    content: dict[str, Any] | None = None  # JSON-safe payload mapping
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class GroupMetadata:
    id: str
    metadata: Any


# --- Event types ---


@dataclass(frozen=True)
class PairingPayloadChanged:
    """A new pairing code is available for display."""

    payload: str


@dataclass(frozen=True)
class ConnectionOpened:
    identity: Identity | None


@dataclass(frozen=True)
class ConnectionClosed:
    reason: int | None  # DisconnectReason code when the transport knows one


@dataclass(frozen=True)
class InboundMessages:
    """``notify`` batches are new traffic; anything else is a replay."""

    kind: str
    messages: tuple[TransportMessage, ...]


@dataclass(frozen=True)
class GroupMetadataPushed:
    groups: tuple[GroupMetadata, ...]


@dataclass(frozen=True)
class CredentialsChanged:
    update: dict[str, Any]


type TransportEvent = (
    PairingPayloadChanged
    | ConnectionOpened
    | ConnectionClosed
    | InboundMessages
    | GroupMetadataPushed
    | CredentialsChanged
)


# --- Wiring ---


@dataclass(frozen=True)
class TransportHooks:
    """Pull-hooks a transport may call back into; both return None on a miss."""

    resolve_message: Callable[[str], Any | None]
    resolve_group_metadata: Callable[[str], Any | None]


@dataclass(frozen=True)
class TransportContext:
    emit: Callable[[TransportEvent], None]
    hooks: TransportHooks
    credentials: dict[str, Any] | None = None


class Transport(Protocol):
    async def start(self) -> None:
        """Begin connecting. Must not wait for the connection to open."""
        ...

    async def send_text(self, jid: str, body: str) -> str | None:
        """Send *body* to *jid*; return the transport-assigned message id."""
        ...

    async def close(self) -> None: ...


type TransportFactory = Callable[[TransportContext], Transport]
