"""HTTP status page.

Serves a small HTML page with the feature switches and a JSON health check.
The page stays up after a logout halts the connection loop.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime
from typing import Callable, Optional

from aiohttp import web

from core.config import FeatureToggles
from core.lifecycle import ConnectionLifecycleManager

LOGGER = logging.getLogger(__name__)

MANAGER_KEY = web.AppKey("manager", ConnectionLifecycleManager)
FEATURES_KEY = web.AppKey("features", FeatureToggles)
TARGET_COUNT_KEY = web.AppKey("target_count", int)
CLOCK_KEY = web.AppKey("clock", Callable)

_PAGE = """<!DOCTYPE html>
<html>
<head><title>Warden</title></head>
<body>
<h1>Warden</h1>
<p class="status">{status}</p>
<h3>Features</h3>
<ul>
{features}
</ul>
<p>{now}</p>
</body>
</html>
"""


def _session_state(manager: ConnectionLifecycleManager) -> dict:
    handle = manager.current
    return {
        "status": handle.status.value if handle else "idle",
        "identity": handle.identity if handle else None,
        "generation": handle.generation if handle else 0,
        "halted": manager.halted,
    }


def _feature_rows(features: FeatureToggles, target_count: int) -> list[tuple[str, bool]]:
    return [
        (f"Membership check ({target_count} targets)", True),
        ("Anti-delete message recovery", features.anti_delete),
        ("Auto-view status", features.auto_view_status),
        ("Auto-like status", features.auto_like_status),
        ("Auto-react to messages", features.auto_react),
        ("Auto-reply to seen statuses", features.auto_status_seen and features.auto_status_reply),
        ("Connect message", features.send_connect_message),
    ]


async def handle_index(request: web.Request) -> web.Response:
    app = request.app
    state = _session_state(app[MANAGER_KEY])
    if state["halted"]:
        status = "Logged out. Pair the account again to resume."
    else:
        status = f"Session {state['status']}"
        if state["identity"]:
            status += f" as {state['identity']}"
    rows = "\n".join(
        f"<li>{'[on]' if enabled else '[off]'} {html.escape(label)}</li>"
        for label, enabled in _feature_rows(app[FEATURES_KEY], app[TARGET_COUNT_KEY])
    )
    body = _PAGE.format(
        status=html.escape(status),
        features=rows,
        now=html.escape(app[CLOCK_KEY]().strftime("%Y-%m-%d %H:%M:%S")),
    )
    return web.Response(text=body, content_type="text/html")


async def handle_health(request: web.Request) -> web.Response:
    return web.json_response(_session_state(request.app[MANAGER_KEY]))


def create_app(
    manager: ConnectionLifecycleManager,
    features: FeatureToggles,
    target_count: int,
    clock: Optional[Callable[[], datetime]] = None,
) -> web.Application:
    app = web.Application()
    app[MANAGER_KEY] = manager
    app[FEATURES_KEY] = features
    app[TARGET_COUNT_KEY] = target_count
    app[CLOCK_KEY] = clock or datetime.now
    app.router.add_get("/", handle_index)
    app.router.add_get("/healthz", handle_health)
    return app


async def start_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    LOGGER.info("Status page listening on http://%s:%s", host, port)
    return runner
