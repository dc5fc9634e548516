"""Connection lifecycle state machine.

SessionManager is the single writer of connection state. Transports report
what happens through ``emit``; each event is tagged with the generation of
the transport that produced it and queued, and one consumer task applies
them in arrival order. That keeps every transition atomic with respect to
its side effects (history append, broadcast, webhook dispatch, group cache
write) and drops anything a superseded transport still says.

States::

    Initializing ──pairing──▶ AwaitingPairing ──open──▶ Open
         │                          │                    │
         └───────────close──────────┴───────close────────┴──▶ Closed
                                                                │
    Initializing ◀──────── automatic retry (unless logged out) ─┘
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from wagate.errors import NotReady, TransportSendFailure
from wagate.group_cache import GroupMetadataCache
from wagate.logger import logger
from wagate.message_store import MessageStore
from wagate.subscribers import SubscriberRegistry
from wagate.transport import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsChanged,
    GroupMetadata,
    GroupMetadataPushed,
    InboundMessages,
    PairingPayloadChanged,
    Transport,
    TransportContext,
    TransportEvent,
    TransportFactory,
    TransportHooks,
    TransportMessage,
)
from wagate.types import (
    ConnectionState,
    Identity,
    InboundMessageRecord,
    SessionSnapshot,
    SessionStatus,
    describe_reason,
    should_reconnect,
)
from wagate.utils import create_background_task, preview
from wagate.webhook import WebhookNotifier

_PAIRABLE = (ConnectionState.INITIALIZING, ConnectionState.AWAITING_PAIRING)


@dataclass(frozen=True)
class ReconnectPolicy:
    """How the automatic retry after a dropped connection is paced.

    The defaults retry immediately and without limit. Setting
    ``initial_delay`` enables exponential backoff capped at ``max_delay``;
    ``max_attempts`` bounds consecutive retries (reset on every open).
    """

    initial_delay: float = 0.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    max_attempts: int | None = None

    def delay_for(self, attempt: int) -> float:
        if self.initial_delay <= 0:
            return 0.0
        return min(self.max_delay, self.initial_delay * self.multiplier ** (attempt - 1))

    def allows(self, attempt: int) -> bool:
        return self.max_attempts is None or attempt <= self.max_attempts


class CredentialStore(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def save(self, update: dict[str, Any]) -> None: ...


class SessionManager:
    def __init__(
        self,
        transport_factory: TransportFactory,
        *,
        store: MessageStore,
        subscribers: SubscriberRegistry,
        groups: GroupMetadataCache,
        webhook: WebhookNotifier,
        credentials: CredentialStore,
        reconnect: ReconnectPolicy | None = None,
    ) -> None:
        self._transport_factory = transport_factory
        self._store = store
        self._subscribers = subscribers
        self._groups = groups
        self._webhook = webhook
        self._credentials = credentials
        self._policy = reconnect or ReconnectPolicy()

        self._snapshot = SessionSnapshot()
        self._transport: Transport | None = None
        self._generation = 0
        self._reconnect_attempts = 0
        self._events: asyncio.Queue[tuple[int, TransportEvent]] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._hooks = TransportHooks(
            resolve_message=self.get_message_for_rehydration,
            resolve_group_metadata=self.get_group_metadata,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the event consumer and the first session.

        Raises whatever the first session start raises; callers treat that
        as fatal.
        """
        if self._consumer is not None:
            raise RuntimeError("session manager already started")
        self._loop = asyncio.get_running_loop()
        self._consumer = asyncio.create_task(self._consume(), name="session-events")
        try:
            await self._start_session()
        except Exception:
            await self.stop()
            raise

    async def stop(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
            self._consumer = None
        transport, self._transport = self._transport, None
        if transport is not None:
            with contextlib.suppress(Exception):
                await transport.close()

    async def drain(self) -> None:
        """Wait until every event queued so far has been applied."""
        await self._events.join()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    def current_status(self) -> SessionStatus:
        snapshot = self._snapshot
        return SessionStatus(
            connected=snapshot.connected,
            identity=snapshot.identity,
            has_pending_pairing=snapshot.has_pending_pairing,
        )

    def pairing_payload(self) -> str | None:
        snapshot = self._snapshot
        return snapshot.pairing_payload if snapshot.has_pending_pairing else None

    def get_message_for_rehydration(self, message_id: str) -> Any | None:
        """Raw payload of a stored message; None (not an error) when absent."""
        record = self._store.lookup_by_id(message_id) if message_id else None
        return record.raw if record is not None else None

    def get_group_metadata(self, group_id: str) -> Any | None:
        return self._groups.get(group_id)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_text(self, jid: str, body: str) -> str | None:
        transport = self._transport
        if transport is None or not self._snapshot.connected:
            raise NotReady("no open session")
        logger.info("Sending message", to=jid, text=preview(body))
        try:
            message_id = await transport.send_text(jid, body)
        except Exception as exc:
            logger.error("Send failed", to=jid, err=str(exc))
            raise TransportSendFailure(str(exc)) from exc
        logger.info("Message sent", id=message_id)
        return message_id

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def _emitter(self, generation: int) -> Callable[[TransportEvent], None]:
        def emit(event: TransportEvent) -> None:
            self._enqueue(generation, event)

        return emit

    def _enqueue(self, generation: int, event: TransportEvent) -> None:
        loop = self._loop
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is None or running is loop:
            self._events.put_nowait((generation, event))
        else:
            loop.call_soon_threadsafe(self._events.put_nowait, (generation, event))

    async def _consume(self) -> None:
        while True:
            generation, event = await self._events.get()
            try:
                if generation != self._generation:
                    logger.debug(
                        "Dropping event from superseded transport",
                        event=type(event).__name__,
                        generation=generation,
                    )
                    continue
                await self._dispatch(event)
            except Exception:
                logger.exception("Transport event handler failed", event=type(event).__name__)
            finally:
                self._events.task_done()

    async def _dispatch(self, event: TransportEvent) -> None:
        match event:
            case PairingPayloadChanged(payload=payload):
                self._on_pairing(payload)
            case ConnectionOpened(identity=identity):
                self._on_open(identity)
            case ConnectionClosed(reason=reason):
                await self._on_close(reason)
            case InboundMessages(kind=kind, messages=messages):
                self._on_inbound(kind, messages)
            case GroupMetadataPushed(groups=groups):
                self._on_groups(groups)
            case CredentialsChanged(update=update):
                await self._on_credentials(update)
            case _:
                logger.warning("Unknown transport event", event=type(event).__name__)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _on_pairing(self, payload: str) -> None:
        state = self._snapshot.state
        if state not in _PAIRABLE:
            logger.warning("Ignoring pairing payload", state=state.value)
            return
        self._snapshot = SessionSnapshot(
            state=ConnectionState.AWAITING_PAIRING, pairing_payload=payload
        )
        logger.info("Pairing code generated - awaiting authentication")
        self._subscribers.broadcast("qr")

    def _on_open(self, identity: Identity | None) -> None:
        state = self._snapshot.state
        if state not in _PAIRABLE:
            logger.warning("Ignoring connection open", state=state.value)
            return
        self._snapshot = SessionSnapshot(state=ConnectionState.OPEN, identity=identity)
        self._reconnect_attempts = 0
        logger.info(
            "Connected",
            id=identity.id if identity else None,
            name=identity.name if identity else None,
        )
        me = identity.to_dict() if identity else None
        self._subscribers.broadcast("status", {"connected": True, "me": me})

    async def _on_close(self, reason: int | None) -> None:
        if self._snapshot.state is ConnectionState.CLOSED:
            logger.debug("Ignoring close for an already closed session", code=reason)
            return
        self._enter_closed(reason)
        reconnect = should_reconnect(reason)
        logger.info(
            "Connection closed",
            reason=describe_reason(reason),
            code=reason,
            should_reconnect=reconnect,
        )
        self._subscribers.broadcast("status", {"connected": False, "reason": reason})
        if not reconnect:
            logger.warning(
                "Not reconnecting - authentication required (delete ./auth to start fresh)"
            )
            return
        await self._reconnect(reason)

    def _enter_closed(self, reason: int | None) -> None:
        self._snapshot = SessionSnapshot(state=ConnectionState.CLOSED, disconnect_reason=reason)

    async def _reconnect(self, reason: int | None) -> None:
        self._reconnect_attempts += 1
        attempt = self._reconnect_attempts
        if not self._policy.allows(attempt):
            logger.error("Reconnect attempts exhausted", attempts=attempt - 1)
            return
        delay = self._policy.delay_for(attempt)
        logger.info("Attempting to reconnect", attempt=attempt, delay=delay)
        if delay:
            await asyncio.sleep(delay)
        try:
            await self._start_session()
        except Exception:
            # No further automatic retry is scheduled for this failure.
            logger.exception("Reconnect failed", attempt=attempt)
            self._enter_closed(reason)

    async def _start_session(self) -> None:
        self._generation += 1
        generation = self._generation
        self._snapshot = SessionSnapshot()
        logger.info("Initializing session", generation=generation)

        credentials = await asyncio.to_thread(self._credentials.load)
        if credentials and credentials.get("id"):
            logger.info("Found existing authentication credentials", id=credentials["id"])
        else:
            logger.info("No authentication found - pairing code will be generated")

        context = TransportContext(
            emit=self._emitter(generation),
            hooks=self._hooks,
            credentials=credentials,
        )
        previous = self._transport
        transport = self._transport_factory(context)
        self._transport = transport  # last writer wins
        if previous is not None:
            create_background_task(previous.close(), name="close-superseded-transport")
        try:
            await transport.start()
        except Exception:
            if self._transport is transport:
                self._transport = None
            create_background_task(transport.close(), name="close-failed-transport")
            raise

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _on_inbound(self, kind: str, messages: tuple[TransportMessage, ...]) -> None:
        logger.info("Inbound message batch", kind=kind, count=len(messages))
        if kind != "notify":
            return
        for message in messages:
            try:
                self._record_inbound(message)
            except Exception:
                logger.exception("Failed to record inbound message", message_id=message.id)

    def _record_inbound(self, message: TransportMessage) -> None:
        record = InboundMessageRecord.from_transport(message)
        logger.info(
            "Message received",
            remote_jid=record.remote_jid,
            push_name=record.push_name,
            from_me=record.from_me,
            type=record.message_type,
            text=preview(record.text),
        )
        if record.text is None and record.content:
            logger.debug("Message has no text field", keys=sorted(record.content))
        self._store.append(record)
        self._subscribers.broadcast("message", record.to_dict())
        self._webhook.notify(record)

    def _on_groups(self, groups: tuple[GroupMetadata, ...]) -> None:
        logger.info("Group metadata received", count=len(groups))
        for group in groups:
            self._groups.set(group.id, group.metadata)

    async def _on_credentials(self, update: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._credentials.save, update)
        except Exception:
            logger.exception("Failed to persist credentials")
