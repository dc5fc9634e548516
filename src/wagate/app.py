"""Composition root: builds the components, orders startup, handles signals.

The session is started before the HTTP listener is bound, so a failure of
the very first session start aborts the process without ever accepting
traffic.
"""

from __future__ import annotations

import asyncio
import signal

from aiohttp import web

from wagate.config import AUTH_DIR, Settings, get_settings
from wagate.credentials import FileCredentialStore
from wagate.group_cache import GroupMetadataCache
from wagate.http_server import start_http_server
from wagate.logger import logger, set_level
from wagate.message_store import MessageStore
from wagate.session import CredentialStore, ReconnectPolicy, SessionManager
from wagate.subscribers import EventChannel, SubscriberRegistry, Subscription
from wagate.transport import Transport, TransportContext, TransportFactory
from wagate.types import InboundMessageRecord, SessionStatus
from wagate.utils import create_background_task
from wagate.webhook import WebhookNotifier


def _whatsapp_transport(context: TransportContext) -> Transport:
    from wagate.transport.whatsapp import WhatsAppTransport

    return WhatsAppTransport(context)


class WagateApp:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport_factory: TransportFactory | None = None,
        reconnect: ReconnectPolicy | None = None,
        credentials: CredentialStore | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = MessageStore(self.settings.history_capacity)
        self.subscribers = SubscriberRegistry()
        self.groups = GroupMetadataCache()
        self.webhook = WebhookNotifier(self.settings.webhook_url)
        self.credentials = credentials or FileCredentialStore(AUTH_DIR / "session.json")
        self.session = SessionManager(
            transport_factory or _whatsapp_transport,
            store=self.store,
            subscribers=self.subscribers,
            groups=self.groups,
            webhook=self.webhook,
            credentials=self.credentials,
            reconnect=reconnect,
        )
        self._http_runner: web.AppRunner | None = None
        self._stopped = asyncio.Event()
        self._shutting_down = False

    # --- HttpDeps ---

    def current_status(self) -> SessionStatus:
        return self.session.current_status()

    def pairing_payload(self) -> str | None:
        return self.session.pairing_payload()

    def recent_messages(self, limit: object) -> list[InboundMessageRecord]:
        return self.store.get_recent(limit)

    async def send_text(self, jid: str, body: str) -> str | None:
        return await self.session.send_text(jid, body)

    def register_subscriber(self, channel: EventChannel) -> Subscription:
        return self.subscribers.register(channel)

    def unregister_subscriber(self, subscription: Subscription) -> bool:
        return self.subscribers.unregister(subscription)

    def subscriber_count(self) -> int:
        return len(self.subscribers)

    # --- Lifecycle ---

    async def run(self) -> None:
        """Start the session, then serve HTTP until a shutdown signal."""
        set_level(self.settings.log_level)
        if self.webhook.enabled:
            logger.info("Webhook forwarding enabled", url=self.settings.webhook_url)

        try:
            await self.session.start()
        except Exception:
            logger.critical("Fatal error starting session")
            await self.webhook.close()
            raise

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(
                sig,
                lambda s=sig: create_background_task(self.shutdown(s.name), name="shutdown"),
            )

        self._http_runner = await start_http_server(
            self, self.settings.host, self.settings.port
        )
        await self._stopped.wait()

    async def shutdown(self, sig_name: str = "manual") -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info("Shutdown requested", signal=sig_name)
        try:
            closed = self.subscribers.close_all()
            if closed:
                logger.info("Closed event streams", count=closed)
            if self._http_runner:
                await self._http_runner.cleanup()
            await self.session.stop()
            await self.webhook.close()
        finally:
            self._stopped.set()
