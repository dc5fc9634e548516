"""HTTP API: status, pairing image, live event stream, history and sends.

Handlers only translate between HTTP and the session layer. Every
handler-level error is answered here; none escapes to crash the process.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from aiohttp import web

from wagate.errors import InvalidRecipient, NotReady, RenderFailure, TransportSendFailure
from wagate.jid import normalize_jid
from wagate.logger import logger
from wagate.pairing import render_pairing_png
from wagate.subscribers import EventChannel, QueueChannel, Subscription
from wagate.types import InboundMessageRecord, SessionStatus


class HttpDeps(Protocol):
    """Dependencies injected by app.py."""

    def current_status(self) -> SessionStatus: ...

    def pairing_payload(self) -> str | None: ...

    def recent_messages(self, limit: object) -> list[InboundMessageRecord]: ...

    async def send_text(self, jid: str, body: str) -> str | None: ...

    def register_subscriber(self, channel: EventChannel) -> Subscription: ...

    def unregister_subscriber(self, subscription: Subscription) -> bool: ...

    def subscriber_count(self) -> int: ...


deps_key: web.AppKey[HttpDeps] = web.AppKey("deps", t=HttpDeps)

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,HEAD,PUT,PATCH,POST,DELETE",
    "Access-Control-Allow-Headers": "Content-Type",
}

type Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


# ------------------------------------------------------------------
# Middleware
# ------------------------------------------------------------------


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=_CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        # 404/405 and friends from the router
        exc.headers.update(_CORS_HEADERS)
        raise
    if not response.prepared:
        response.headers.update(_CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error in request handler", path=request.path)
        return web.json_response({"error": "internal_error"}, status=500)


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


async def _handle_status(request: web.Request) -> web.Response:
    deps = request.app[deps_key]
    return web.json_response(deps.current_status().to_dict())


async def _handle_qr(request: web.Request) -> web.Response:
    """Pairing code as PNG; 204 once there is nothing left to scan."""
    deps = request.app[deps_key]
    payload = deps.pairing_payload()
    if payload is None:
        return web.Response(status=204)
    try:
        png = await asyncio.to_thread(render_pairing_png, payload)
    except RenderFailure as exc:
        logger.error("Failed to render pairing code", err=str(exc))
        return web.json_response({"error": exc.code}, status=500)
    return web.Response(body=png, content_type="image/png")


async def _handle_events(request: web.Request) -> web.StreamResponse:
    """SSE stream of live events (hello, qr, status, message)."""
    deps = request.app[deps_key]

    response = web.StreamResponse(
        status=200,
        reason="OK",
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            **_CORS_HEADERS,
        },
    )
    await response.prepare(request)

    channel = QueueChannel()
    subscription = deps.register_subscriber(channel)
    logger.info("SSE client connected", total=deps.subscriber_count())

    try:
        async for frame in channel:
            await response.write(frame.encode())
    except (asyncio.CancelledError, ConnectionResetError):
        pass
    finally:
        deps.unregister_subscriber(subscription)
        logger.info("SSE client disconnected", total=deps.subscriber_count())

    return response


async def _handle_messages(request: web.Request) -> web.Response:
    """Recent inbound messages, newest last."""
    deps = request.app[deps_key]
    records = deps.recent_messages(request.query.get("limit"))
    return web.json_response([record.to_dict() for record in records])


async def _handle_send(request: web.Request) -> web.Response:
    deps = request.app[deps_key]
    body = await _read_json(request)
    to = body.get("to")
    message = body.get("message")
    if not to or not message:
        return web.json_response({"error": "to_and_message_required"}, status=400)
    if not deps.current_status().connected:
        return web.json_response({"error": NotReady.code}, status=503)

    try:
        jid = normalize_jid(to)
        message_id = await deps.send_text(jid, str(message))
    except NotReady as exc:
        return web.json_response({"error": exc.code}, status=503)
    except InvalidRecipient as exc:
        return web.json_response({"error": exc.code}, status=400)
    except TransportSendFailure as exc:
        return web.json_response({"ok": False, "error": exc.code}, status=500)
    return web.json_response({"ok": True, "id": message_id, "to": jid})


async def _read_json(request: web.Request) -> dict[str, Any]:
    """Request body as a dict; anything unparseable counts as empty."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


# ------------------------------------------------------------------
# Server setup
# ------------------------------------------------------------------


def create_app(deps: HttpDeps) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[deps_key] = deps
    app.router.add_get("/status", _handle_status)
    app.router.add_get("/qr.png", _handle_qr)
    app.router.add_get("/events", _handle_events)
    app.router.add_get("/messages", _handle_messages)
    app.router.add_post("/send", _handle_send)
    return app


async def start_http_server(deps: HttpDeps, host: str, port: int) -> web.AppRunner:
    """Create, start, and return the HTTP server runner."""
    runner = web.AppRunner(create_app(deps))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("HTTP server listening", host=host, port=port)
    return runner
