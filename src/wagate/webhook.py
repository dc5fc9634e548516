"""Best-effort forwarding of inbound messages to one external URL.

Each delivery is a single POST scheduled as a background task: no retry, no
timeout beyond aiohttp's default, and nothing propagates back into the
inbound-message path.
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp

from wagate.errors import WebhookDeliveryFailure
from wagate.logger import logger
from wagate.types import InboundMessageRecord
from wagate.utils import create_background_task


class WebhookNotifier:
    def __init__(self, url: str | None) -> None:
        self._url = url or None
        self._session: aiohttp.ClientSession | None = None

    @property
    def enabled(self) -> bool:
        return self._url is not None

    def notify(self, record: InboundMessageRecord) -> asyncio.Task[None] | None:
        """Schedule delivery of *record*. Returns the task, or None when disabled."""
        if self._url is None:
            logger.debug("Webhook forwarding skipped: WEBHOOK_URL not configured")
            return None
        return create_background_task(self._deliver(record.to_dict()), name="webhook-forward")

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _deliver(self, payload: dict[str, Any]) -> None:
        url = self._url
        logger.debug("Attempting webhook forward", url=url)
        try:
            session = self._get_session()
            async with session.post(url, json=payload) as resp:
                if resp.status >= 400:
                    raise WebhookDeliveryFailure(f"endpoint answered HTTP {resp.status}")
            logger.info("Webhook forwarded", url=url, status=resp.status)
        except Exception as exc:
            logger.error("Webhook forward failed", url=url, err=str(exc))

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session
