"""Built-in ``http_get`` tool and the blocking fetch it shares with uptime probes."""

from __future__ import annotations

import asyncio
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

#: Network timeout (seconds) for a single request.
DEFAULT_HTTP_TIMEOUT = 10.0

#: Max characters of body returned to the agent.
_BODY_SNIPPET_CHARS = 2000

_USER_AGENT = "Mozilla/5.0 (compatible; bridgeline/0.1)"


@dataclass
class FetchResult:
    """Outcome of a single GET request."""

    ok: bool
    status: int
    content_type: str
    body: str


def fetch(url: str, timeout: float = DEFAULT_HTTP_TIMEOUT) -> FetchResult:
    """Blocking GET; HTTP error statuses are returned, network errors raise."""
    if not url.startswith(("http://", "https://")):
        msg = f"Unsupported URL: {url!r}"
        raise ValueError(msg)

    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw: bytes = resp.read()
            status = int(resp.status)
            content_type = resp.headers.get("content-type", "")
    except urllib.error.HTTPError as exc:
        raw = exc.read() if exc.fp is not None else b""
        status = exc.code
        content_type = exc.headers.get("content-type", "") if exc.headers else ""

    return FetchResult(
        ok=200 <= status < 300,
        status=status,
        content_type=content_type,
        body=raw.decode("utf-8", errors="replace"),
    )


async def fetch_async(url: str, timeout: float = DEFAULT_HTTP_TIMEOUT) -> FetchResult:
    """Run :func:`fetch` in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, fetch, url, timeout)


async def handle_http_get(arguments: dict[str, Any]) -> dict[str, Any]:
    """Tool handler: GET ``arguments["url"]``.

    Network failures propagate so the adapter turns them into an error
    payload.
    """
    url = str(arguments.get("url", ""))
    result = await fetch_async(url)
    logger.debug("http_get %s -> %d", url, result.status)
    return {
        "ok": result.ok,
        "status": result.status,
        "content_type": result.content_type,
        "body_snippet": result.body[:_BODY_SNIPPET_CHARS],
    }
