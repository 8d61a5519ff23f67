"""Webhook listener — POST bodies become agent events."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from aiohttp import web

from bridgeline.constants import PushSink
from bridgeline.errors import BridgeError

logger = logging.getLogger(__name__)

#: Largest request body accepted (bytes).
MAX_BODY_BYTES = 1_048_576


def format_event(source: str, payload: object, now: datetime | None = None) -> str:
    """Event text: a ``[event:<source> @ <iso>]`` header, then the payload."""
    stamp = (now or datetime.now(tz=UTC)).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z")
    if isinstance(payload, str):
        body = payload
    else:
        body = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return f"[event:{source} @ {stamp}]\n{body}"


class WebhookServer:
    """aiohttp app with ``GET /health`` and ``POST <path>``.

    Everything else falls through to aiohttp's 404.
    """

    def __init__(
        self,
        sink: PushSink,
        host: str = "127.0.0.1",
        port: int = 8787,
        path: str = "/hook",
    ) -> None:
        self._sink = sink
        self.host = host
        self.port = port
        self.path = path
        self.received = 0
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application(client_max_size=MAX_BODY_BYTES)
        app.router.add_get("/health", self._handle_health)
        app.router.add_post(self.path, self._handle_hook)
        return app

    async def start(self) -> None:
        app = self.build_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Webhook listening on http://%s:%d%s", self.host, self.port, self.path)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def _handle_hook(self, request: web.Request) -> web.Response:
        payload: object
        if "application/json" in request.headers.get("Content-Type", ""):
            try:
                payload = await request.json()
            except ValueError:
                # Covers undecodable bytes as well as malformed JSON.
                return web.Response(status=400, text="invalid json")
        else:
            try:
                payload = await request.text()
            except UnicodeDecodeError:
                return web.Response(status=400, text="invalid text")

        try:
            await self._sink(format_event("webhook", payload))
        except BridgeError as exc:
            logger.warning("Webhook event not delivered: %s", exc)
            return web.Response(status=503, text="agent unavailable")

        self.received += 1
        return web.Response(status=202, text="accepted")
