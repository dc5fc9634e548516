"""WhatsApp transport using neonize (whatsmeow Python bindings).

Translates neonize client callbacks into the typed transport events the
session layer consumes. Credentials live in neonize's own SQLite store under
the auth directory.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

from google.protobuf.json_format import MessageToDict
from neonize.aioze import client as neonize_client
from neonize.aioze import events as neonize_events
from neonize.aioze.client import NewAClient
from neonize.events import (
    ConnectedEv,
    ConnectFailureEv,
    DisconnectedEv,
    JoinedGroupEv,
    LoggedOutEv,
    MessageEv,
    PairStatusEv,
)
from neonize.proto.Neonize_pb2 import JID
from neonize.utils.jid import Jid2String, build_jid

from wagate.config import AUTH_DIR
from wagate.jid import is_group_jid
from wagate.logger import logger
from wagate.transport import (
    ConnectionClosed,
    ConnectionOpened,
    CredentialsChanged,
    GroupMetadata,
    GroupMetadataPushed,
    InboundMessages,
    PairingPayloadChanged,
    TransportContext,
    TransportMessage,
)
from wagate.types import DisconnectReason, Identity
from wagate.utils import create_background_task

STATUS_BROADCAST_JID = "status@broadcast"


class WhatsAppTransport:
    """Transport implemented via neonize (whatsmeow Go bindings)."""

    def __init__(self, context: TransportContext, *, auth_dir: Path = AUTH_DIR) -> None:
        self._emit = context.emit
        self._hooks = context.hooks
        self._idle_task: asyncio.Task[None] | None = None

        # Neonize keeps module-level loop references; patch both modules so
        # events and internal tasks bind to this running loop.
        loop = asyncio.get_running_loop()
        neonize_events.event_global_loop = loop
        neonize_client.event_global_loop = loop

        auth_dir.mkdir(parents=True, exist_ok=True)
        self._client = NewAClient(str(auth_dir / "neonize.db"))
        self._register_events()

    def _register_events(self) -> None:
        @self._client.event.qr
        async def on_qr(_client: NewAClient, qr_data: bytes) -> None:
            payload = qr_data.decode() if isinstance(qr_data, bytes) else str(qr_data)
            self._emit(PairingPayloadChanged(payload=payload))

        @self._client.event(ConnectedEv)
        async def on_connected(_client: NewAClient, _ev: ConnectedEv) -> None:
            self._emit(ConnectionOpened(identity=self._own_identity()))
            create_background_task(self._push_joined_groups(), name="joined-groups")

        @self._client.event(PairStatusEv)
        async def on_pair_status(_client: NewAClient, ev: PairStatusEv) -> None:
            self._emit(CredentialsChanged(update={"id": Jid2String(ev.ID)}))

        @self._client.event(LoggedOutEv)
        async def on_logged_out(_client: NewAClient, _ev: LoggedOutEv) -> None:
            self._emit(ConnectionClosed(reason=DisconnectReason.LOGGED_OUT))

        @self._client.event(DisconnectedEv)
        async def on_disconnected(_client: NewAClient, _ev: DisconnectedEv) -> None:
            self._emit(ConnectionClosed(reason=DisconnectReason.CONNECTION_LOST))

        @self._client.event(ConnectFailureEv)
        async def on_connect_failure(_client: NewAClient, ev: ConnectFailureEv) -> None:
            self._emit(ConnectionClosed(reason=int(ev.Reason)))

        @self._client.event(MessageEv)
        async def on_message(_client: NewAClient, message: MessageEv) -> None:
            try:
                self._handle_message(message)
            except Exception:
                logger.exception(
                    "Unhandled error in message handler",
                    message_id=getattr(getattr(message, "Info", None), "ID", "unknown"),
                )

        @self._client.event(JoinedGroupEv)
        async def on_joined_group(_client: NewAClient, ev: JoinedGroupEv) -> None:
            info = ev.GroupInfo
            group = GroupMetadata(id=Jid2String(info.JID), metadata=info)
            self._emit(GroupMetadataPushed(groups=(group,)))

    async def start(self) -> None:
        await self._client.connect()
        self._idle_task = asyncio.ensure_future(self._client.idle())

    async def send_text(self, jid: str, body: str) -> str | None:
        target = self._parse_jid(jid)
        if is_group_jid(jid) and self._hooks.resolve_group_metadata(jid) is None:
            await self._fetch_group(target, jid)
        response = await self._client.send_message(target, body)
        return getattr(response, "ID", None) or None

    async def close(self) -> None:
        if self._idle_task:
            self._idle_task.cancel()
        with contextlib.suppress(Exception):
            await self._client.disconnect()

    def _own_identity(self) -> Identity | None:
        device = self._client.me
        jid = getattr(device, "JID", None) if device else None
        if jid is None:
            return None
        return Identity(id=Jid2String(jid), name=getattr(device, "PushName", None) or None)

    def _handle_message(self, message: MessageEv) -> None:
        info = message.Info
        source = info.MessageSource
        chat_jid = Jid2String(source.Chat)
        if not chat_jid or chat_jid == STATUS_BROADCAST_JID:
            return
        item = TransportMessage(
            id=info.ID or None,
            remote_jid=chat_jid,
            from_me=bool(source.IsFromMe),
            push_name=info.Pushname or None,
            content=MessageToDict(message.Message),
            raw=message,
        )
        # whatsmeow redelivers after reconnects; anything already stored is a replay.
        known = item.id is not None and self._hooks.resolve_message(item.id) is not None
        self._emit(InboundMessages(kind="append" if known else "notify", messages=(item,)))

    async def _push_joined_groups(self) -> None:
        try:
            groups = await self._client.get_joined_groups()
        except Exception as err:
            logger.error("Failed to list joined groups", error=str(err))
            return
        batch = tuple(GroupMetadata(id=Jid2String(g.JID), metadata=g) for g in groups)
        if batch:
            self._emit(GroupMetadataPushed(groups=batch))

    async def _fetch_group(self, target: JID, jid: str) -> None:
        try:
            info = await self._client.get_group_info(target)
        except Exception as err:
            logger.debug("Failed to fetch group info", jid=jid, error=str(err))
            return
        self._emit(GroupMetadataPushed(groups=(GroupMetadata(id=jid, metadata=info),)))

    @staticmethod
    def _parse_jid(jid_str: str) -> JID:
        if "@" not in jid_str:
            return build_jid(jid_str)
        user, server = jid_str.split("@", 1)
        return build_jid(user, server)
