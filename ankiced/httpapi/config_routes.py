"""HTTP handlers for health, configuration and application exit."""

from __future__ import annotations

import json
import threading
from typing import Any, Optional

from ankiced.errors import has_error
from ankiced.httpapi.context import HandlerContext, Request, Response
from ankiced.httpapi.helpers import app_config_path


def handle_health(ctx: HandlerContext, request: Request) -> Response:
    """Report that the server is up."""
    return ctx.json_response(200, {"status": "ok"})


def handle_config(ctx: HandlerContext, request: Request) -> Response:
    """Return the current configuration."""
    if request.method != "GET":
        return ctx.method_not_allowed("get_config")
    cid = ctx.correlation_id()
    ctx.log("info", "get_config", cid, "request started", None)
    response = ctx.json_response(200, {"config": ctx.config_snapshot().to_dict()})
    ctx.log("info", "get_config", cid, "request finished", None)
    return response


def _requested_db_path(request: Request) -> Optional[str]:
    """Return the ``db_path`` of a well-formed body, or ``None`` otherwise."""
    try:
        body: dict[str, Any] = request.json()
    except ValueError:
        return None
    if set(body) - {"db_path"}:
        return None
    path = body.get("db_path")
    if not isinstance(path, str) or not path:
        return None
    return path


def _reconnect(ctx: HandlerContext, path: str) -> Optional[BaseException]:
    """Switch the database connection; return a fatal error, if any."""
    tx = getattr(ctx.services, "tx", None)
    reconnect = getattr(tx, "reconnect", None)
    if not callable(reconnect):
        return None
    try:
        reconnect(path)
    except Exception as err:
        # A resource warning means the new connection is live but the old
        # one did not close cleanly; the new path still stands.
        if has_error(err, ResourceWarning):
            if ctx.logger is not None:
                ctx.logger.warning(
                    "reconnect succeeded but old connection close failed: %s", err
                )
            return None
        if ctx.logger is not None:
            ctx.logger.error("failed to reconnect to database: %s", err)
        return err
    return None


def handle_config_save(ctx: HandlerContext, request: Request) -> Response:
    """Optionally switch the database path, then save the config next to the program."""
    if request.method != "POST":
        return ctx.method_not_allowed("save_config")
    cid = ctx.correlation_id()
    ctx.log("info", "save_config", cid, "request started", None)
    try:
        path = app_config_path(ctx.executable)
    except OSError as err:
        return ctx.error_response(500, err, "save_config", cid)

    db_path = _requested_db_path(request)
    if db_path is not None and db_path != ctx.current_config().db_path:
        failure = _reconnect(ctx, db_path)
        if failure is not None:
            return ctx.error_response(500, failure, "save_config", cid)
        ctx.set_db_path(db_path)

    snapshot = ctx.config_snapshot().to_dict()
    data = json.dumps(snapshot, indent=2, ensure_ascii=False) + "\n"
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(data)
    except OSError as err:
        return ctx.error_response(500, err, "save_config", cid)
    response = ctx.json_response(200, {"ok": True, "path": path, "config": snapshot})
    ctx.log("info", "save_config", cid, "request finished", {"path": path})
    return response


def handle_app_exit(ctx: HandlerContext, request: Request) -> Response:
    """Acknowledge and then run the configured exit callback in the background."""
    if request.method != "POST":
        return ctx.method_not_allowed("app_exit")
    if ctx.on_exit is None:
        cid = ctx.correlation_id()
        return ctx.message_error(
            501,
            "exit action is not enabled",
            "APP_EXIT_DISABLED",
            "app exit action is not wired",
            "app_exit",
            cid,
        )
    response = ctx.json_response(200, {"ok": True})
    threading.Thread(target=ctx.on_exit, daemon=True).start()
    return response