"""Data models for wagate."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import TYPE_CHECKING, Any

from wagate.content import extract_text, message_type

if TYPE_CHECKING:
    from wagate.transport import TransportMessage


class ConnectionState(StrEnum):
    INITIALIZING = "initializing"
    AWAITING_PAIRING = "awaiting_pairing"  # a pairing payload is current and unconsumed
    OPEN = "open"
    CLOSED = "closed"


class DisconnectReason(IntEnum):
    """Status codes the protocol attaches to a dropped connection."""

    LOGGED_OUT = 401
    FORBIDDEN = 403
    CONNECTION_LOST = 408
    TIMED_OUT = 408
    MULTIDEVICE_MISMATCH = 411
    CONNECTION_CLOSED = 428
    CONNECTION_REPLACED = 440
    BAD_SESSION = 500
    UNAVAILABLE_SERVICE = 503
    RESTART_REQUIRED = 515


_REASON_LABELS: dict[int, str] = {
    DisconnectReason.BAD_SESSION: "Bad session",
    DisconnectReason.CONNECTION_CLOSED: "Connection closed",
    DisconnectReason.CONNECTION_LOST: "Connection lost (timed out)",
    DisconnectReason.CONNECTION_REPLACED: "Connection replaced (logged in elsewhere)",
    DisconnectReason.LOGGED_OUT: "Logged out",
    DisconnectReason.RESTART_REQUIRED: "Restart required",
}


def describe_reason(code: int | None) -> str:
    return _REASON_LABELS.get(code, f"Unknown ({code})") if code is not None else "Unknown (None)"


def should_reconnect(code: int | None) -> bool:
    """Every disconnect is retried except an explicit logout."""
    return code != DisconnectReason.LOGGED_OUT


@dataclass(frozen=True)
class Identity:
    """Own account descriptor, known once the connection is open."""

    id: str
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable view of the connection state machine.

    Only SessionManager builds these; readers always get a consistent copy.
    """

    state: ConnectionState = ConnectionState.INITIALIZING
    pairing_payload: str | None = None  # only while AWAITING_PAIRING
    identity: Identity | None = None  # only while OPEN
    disconnect_reason: int | None = None  # only while CLOSED

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.OPEN

    @property
    def has_pending_pairing(self) -> bool:
        return self.state is ConnectionState.AWAITING_PAIRING and self.pairing_payload is not None


@dataclass(frozen=True)
class SessionStatus:
    connected: bool
    identity: Identity | None
    has_pending_pairing: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "me": self.identity.to_dict() if self.identity else None,
            "hasQR": self.has_pending_pairing,
        }


@dataclass
class InboundMessageRecord:
    id: str | None
    remote_jid: str | None
    from_me: bool
    push_name: str | None
    timestamp: int  # arrival time, ms since epoch
    text: str | None
    message_type: str
    content: dict[str, Any] | None = None
    # Opaque transport payload, kept so the transport can rehydrate the message.
    raw: Any = field(default=None, repr=False, compare=False)

    @classmethod
    def from_transport(
        cls, message: TransportMessage, received_at: int | None = None
    ) -> InboundMessageRecord:
        return cls(
            id=message.id or None,
            remote_jid=message.remote_jid,
            from_me=bool(message.from_me),
            push_name=message.push_name or None,
            timestamp=received_at if received_at is not None else int(time.time() * 1000),
            text=extract_text(message.content),
            message_type=message_type(message.content),
            content=message.content,
            raw=message.raw,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "remoteJid": self.remote_jid,
            "fromMe": self.from_me,
            "pushName": self.push_name,
            "timestamp": self.timestamp,
            "text": self.text,
            "messageType": self.message_type,
            "message": self.content,
        }
