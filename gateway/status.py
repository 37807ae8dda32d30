"""Status server — read-only HTTP introspection for a running agent."""

from __future__ import annotations

import logging
from typing import Callable

from aiohttp import web

log = logging.getLogger("status")

STATUS_PROVIDER_KEY = web.AppKey("status_provider", Callable[[], dict])


# ── HTTP routes ───────────────────────────────────────────────

async def handle_status(request: web.Request) -> web.Response:
    """Current session state, conversation count and auto-reply flag."""
    return web.json_response(request.app[STATUS_PROVIDER_KEY]())


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response({"ok": True})


# ── App setup ─────────────────────────────────────────────────

def create_app(status_provider: Callable[[], dict]) -> web.Application:
    app = web.Application()
    app[STATUS_PROVIDER_KEY] = status_provider
    app.router.add_get("/status", handle_status)
    app.router.add_get("/health", handle_health)
    return app


async def start_status_server(
    status_provider: Callable[[], dict], host: str = "127.0.0.1", port: int = 8080
) -> web.AppRunner:
    """Serve the status app in the running loop. Call runner.cleanup() to stop."""
    runner = web.AppRunner(create_app(status_provider))
    await runner.setup()
    site = web.TCPSite(runner, host=host, port=port)
    await site.start()
    log.info("Status endpoint on http://%s:%d/status", host, port)
    return runner
