"""Shared test fixtures for wagate."""

from __future__ import annotations

from typing import Any

import pytest

from wagate.transport import (
    ConnectionClosed,
    ConnectionOpened,
    InboundMessages,
    PairingPayloadChanged,
    TransportContext,
    TransportEvent,
    TransportMessage,
)
from wagate.types import Identity, InboundMessageRecord

OWN_JID = "15550001111@s.whatsapp.net"

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures, importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides: Any):
    """Create a Settings object with sensible defaults for testing.

    Bypasses environment and .env so the host machine can't leak in.

    Usage::

        s = make_settings(history_capacity=5)
        s = make_settings(webhook_url="http://127.0.0.1:9/hook")
    """
    from wagate.config import Settings

    defaults: dict[str, Any] = {
        "host": "127.0.0.1",
        "port": 3000,
        "webhook_url": "",
        "history_capacity": 200,
        "log_level": "INFO",
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def make_record(message_id: str | None, text: str = "hello", **overrides: Any):
    fields: dict[str, Any] = {
        "id": message_id,
        "remote_jid": "15551234567@s.whatsapp.net",
        "from_me": False,
        "push_name": "Alice",
        "timestamp": 1_700_000_000_000,
        "text": text,
        "message_type": "conversation",
        "content": {"conversation": text},
        "raw": {"id": message_id},
    }
    fields.update(overrides)
    return InboundMessageRecord(**fields)


def make_message(message_id: str | None, text: str = "hello", **overrides: Any):
    fields: dict[str, Any] = {
        "id": message_id,
        "remote_jid": "15551234567@s.whatsapp.net",
        "from_me": False,
        "push_name": "Alice",
        "content": {"conversation": text},
        "raw": {"key": {"id": message_id}},
    }
    fields.update(overrides)
    return TransportMessage(**fields)


class FakeTransport:
    """Scripted transport: tests push events through it by hand."""

    def __init__(self, context: TransportContext, *, fail_start: bool = False) -> None:
        self.context = context
        self.fail_start = fail_start
        self.started = False
        self.closed = False
        self.sent: list[tuple[str, str]] = []
        self.send_error: Exception | None = None
        self.send_result: str | None = "3EB0C0FFEE"

    async def start(self) -> None:
        if self.fail_start:
            raise ConnectionError("transport refused to start")
        self.started = True

    async def send_text(self, jid: str, body: str) -> str | None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((jid, body))
        return self.send_result

    async def close(self) -> None:
        self.closed = True

    # --- scripting helpers ---

    def emit(self, event: TransportEvent) -> None:
        self.context.emit(event)

    def pair(self, payload: str = "2@pairing-payload") -> None:
        self.emit(PairingPayloadChanged(payload=payload))

    def open(self, jid: str = OWN_JID, name: str | None = "Gateway") -> None:
        self.emit(ConnectionOpened(identity=Identity(id=jid, name=name)))

    def close_with(self, reason: int | None) -> None:
        self.emit(ConnectionClosed(reason=reason))

    def deliver(self, *messages: TransportMessage, kind: str = "notify") -> None:
        self.emit(InboundMessages(kind=kind, messages=tuple(messages)))


class TransportRecorder:
    """Transport factory that remembers every transport it built.

    ``fail_on`` lists 1-based build numbers whose ``start()`` raises.
    """

    def __init__(self, fail_on: tuple[int, ...] = ()) -> None:
        self.fail_on = set(fail_on)
        self.transports: list[FakeTransport] = []

    def __call__(self, context: TransportContext) -> FakeTransport:
        number = len(self.transports) + 1
        transport = FakeTransport(context, fail_start=number in self.fail_on)
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


class MemoryCredentialStore:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.data = dict(initial) if initial else None
        self.saves: list[dict[str, Any]] = []

    def load(self) -> dict[str, Any] | None:
        return dict(self.data) if self.data is not None else None

    def save(self, update: dict[str, Any]) -> None:
        self.saves.append(update)
        self.data = {**(self.data or {}), **update}


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Never let one test's cached Settings leak into the next."""
    from wagate.config import reset_settings

    reset_settings()
    yield
    reset_settings()
