"""WSGI application routing the HTTP API, and a server that runs it."""

from __future__ import annotations

import functools
import html
import http
import json
import logging
import string
import threading
import time
from dataclasses import dataclass, field
from socketserver import ThreadingMixIn
from typing import Any, Callable, Iterable, Iterator, Optional
from urllib.parse import parse_qs, urlencode
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from ankiced.httpapi.cleaner_routes import (
    handle_cleaner_preview,
    handle_cleaner_run,
    handle_operation_by_id,
)
from ankiced.httpapi.config_routes import (
    handle_app_exit,
    handle_config,
    handle_config_save,
    handle_health,
)
from ankiced.httpapi.context import JSON_CONTENT_TYPE, HandlerContext, Request, Response
from ankiced.httpapi.deck_routes import handle_deck_by_id, handle_deck_search, handle_decks
from ankiced.httpapi.helpers import MAX_REQUEST_BODY_BYTES, parse_int_default
from ankiced.httpapi.note_routes import handle_note_by_id, handle_notes
from ankiced.models import LogEvent, Settings, to_json_dict

DEFAULT_ADDR = "127.0.0.1:8080"

# Interval between keep-alive comments on the log stream, in seconds.
PING_INTERVAL = 15.0

# How often an idle log stream checks for shutdown, in seconds.
_STREAM_POLL_INTERVAL = 0.25

Handler = Callable[[HandlerContext, Request], Response]

_INDEX_TEMPLATE = string.Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Ankiced</title>
</head>
<body>
<h1>Ankiced</h1>
<section id="settings">
<h2>Connection &amp; Settings</h2>
<p>Current Anki DB: <code id="dbPath">$db_path</code></p>
<p>Page size: <span id="pageSize">$page_size</span></p>
</section>
<section id="decksPanel">
<h2>Decks</h2>
<ul id="decks"></ul>
</section>
<script>
let decksLimit = $page_size;
let notesLimit = $page_size;
fetch("/api/v1/decks?limit=" + decksLimit)
  .then(function (resp) { return resp.json(); })
  .then(function (data) {
    var list = document.getElementById("decks");
    (data.items || []).forEach(function (deck) {
      var item = document.createElement("li");
      item.textContent = deck.id + ": " + deck.name + " (" + deck.card_count + " cards)";
      list.appendChild(item);
    });
  });
</script>
</body>
</html>
"""
)


def render_index(db_path: str, page_size: int) -> str:
    """Render the web UI start page with the database path escaped."""
    return _INDEX_TEMPLATE.substitute(db_path=html.escape(db_path), page_size=int(page_size))


def _event_bytes(event: LogEvent) -> bytes:
    data = json.dumps(to_json_dict(event), ensure_ascii=False, separators=(",", ":"))
    return f"id: {event.id}\nevent: log\ndata: {data}\n\n".encode("utf-8")


class _EventStream:
    """Server-sent log events; closing it releases the subscription."""

    def __init__(self, ctx: HandlerContext, since: int) -> None:
        self._ctx = ctx
        self._sub = ctx.logs.subscribe()
        self._since = since
        self._gen = self._events()

    def _events(self) -> Iterator[bytes]:
        yield b": connected\n\n"
        # Replay what a reconnecting client missed.
        if self._since > 0:
            for event in self._ctx.logs.since(self._since):
                yield _event_bytes(event)
        next_ping = time.monotonic() + PING_INTERVAL
        while not self._ctx.stop.is_set():
            now = time.monotonic()
            if now >= next_ping:
                yield b": ping\n\n"
                next_ping = now + PING_INTERVAL
            event = self._sub.get(timeout=min(_STREAM_POLL_INTERVAL, max(next_ping - now, 0.0)))
            if event is not None:
                yield _event_bytes(event)
            elif self._sub.closed:
                return

    def __iter__(self) -> Iterator[bytes]:
        return self._gen

    def close(self) -> None:
        self._gen.close()
        self._sub.close()


def _handle_log_stream(ctx: HandlerContext, request: Request) -> Response:
    if request.method != "GET":
        return ctx.method_not_allowed("logs_stream")
    since = parse_int_default(request.headers.get("last-event-id"), 0)
    if since == 0:
        since = parse_int_default(request.query.get("since_id"), 0)
    since = max(since, 0)
    return Response(
        status=200,
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
        stream=_EventStream(ctx, since),
    )


def _handle_logs(ctx: HandlerContext, request: Request) -> Response:
    if request.method != "GET":
        return ctx.method_not_allowed("logs_list")
    since_id = max(parse_int_default(request.query.get("since_id"), 0), 0)
    return ctx.json_response(200, {"items": ctx.logs.since(since_id)})


def _handle_index(ctx: HandlerContext, request: Request) -> Response:
    if request.path != "/":
        if request.path.startswith("/api/"):
            cid = ctx.correlation_id()
            return ctx.message_error(
                404, "endpoint not found", "NOT_FOUND", "api endpoint was not found", "not_found", cid
            )
        return Response(
            status=404,
            body=b"404 page not found\n",
            headers={
                "Content-Type": "text/plain; charset=utf-8",
                "X-Content-Type-Options": "nosniff",
            },
        )
    settings = ctx.current_config()
    page_size = settings.default_page_size if settings.default_page_size > 0 else 10
    return Response(
        status=200,
        body=render_index(settings.db_path, page_size).encode("utf-8"),
        headers={"Content-Type": "text/html; charset=utf-8"},
    )


def _request_from_environ(environ: dict[str, Any]) -> Request:
    raw_path = environ.get("PATH_INFO") or "/"
    path = raw_path.encode("latin-1", "replace").decode("utf-8", "replace")
    parsed = parse_qs(environ.get("QUERY_STRING", ""), keep_blank_values=True)
    query = {key: values[0] for key, values in parsed.items()}
    headers: dict[str, str] = {}
    for key, value in environ.items():
        if key.startswith("HTTP_"):
            headers[key[5:].replace("_", "-")] = value
    for key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
        if environ.get(key):
            headers[key.replace("_", "-")] = environ[key]
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    body = b""
    stream = environ.get("wsgi.input")
    if length > 0 and stream is not None:
        # One byte past the limit is enough to detect an oversized body.
        body = stream.read(min(length, MAX_REQUEST_BODY_BYTES + 1))
    return Request(
        method=environ.get("REQUEST_METHOD", "GET").upper(),
        path=path,
        query=query,
        headers=headers,
        body=body,
    )


class ApiHandler:
    """WSGI application serving the JSON API, the log stream and the web UI."""

    def __init__(self, ctx: HandlerContext) -> None:
        self.ctx = ctx
        self._exact: dict[str, Handler] = {
            "/healthz": handle_health,
            "/api/v1/logs/stream": _handle_log_stream,
            "/api/v1/logs": _handle_logs,
            "/api/v1/config": handle_config,
            "/api/v1/config/save": handle_config_save,
            "/api/v1/decks": handle_decks,
            "/api/v1/decks/search": handle_deck_search,
            "/api/v1/notes": handle_notes,
            "/api/v1/cleaner/preview": handle_cleaner_preview,
            "/api/v1/cleaner/dry-run": functools.partial(handle_cleaner_run, dry_run=True),
            "/api/v1/cleaner/apply": functools.partial(handle_cleaner_run, dry_run=False),
            "/api/v1/app/exit": handle_app_exit,
        }
        self._subtrees: tuple[tuple[str, Handler], ...] = (
            ("/api/v1/operations/", handle_operation_by_id),
            ("/api/v1/decks/", handle_deck_by_id),
            ("/api/v1/notes/", handle_note_by_id),
        )

    def _route(self, request: Request) -> Response:
        path = request.path
        handler = self._exact.get(path)
        if handler is not None:
            return handler(self.ctx, request)
        for prefix, subtree_handler in self._subtrees:
            if path == prefix[:-1]:
                location = prefix
                if request.query:
                    location += "?" + urlencode(request.query)
                return Response(
                    status=301,
                    body=f'<a href="{html.escape(location)}">Moved Permanently</a>.\n\n'.encode(),
                    headers={"Location": location, "Content-Type": "text/html; charset=utf-8"},
                )
            if path.startswith(prefix):
                return subtree_handler(self.ctx, request)
        return _handle_index(self.ctx, request)

    def dispatch(self, request: Request) -> Response:
        """Route ``request`` to its handler and return the response."""
        response = self._route(request)
        if request.path.startswith("/api/"):
            response.headers.setdefault("Content-Type", JSON_CONTENT_TYPE)
        return response

    def __call__(
        self, environ: dict[str, Any], start_response: Callable[..., Any]
    ) -> Iterable[bytes]:
        response = self.dispatch(_request_from_environ(environ))
        headers = dict(response.headers)
        if response.stream is None:
            headers.setdefault("Content-Length", str(len(response.body)))
        try:
            phrase = http.HTTPStatus(response.status).phrase
        except ValueError:
            phrase = ""
        start_response(f"{response.status} {phrase}".rstrip(), list(headers.items()))
        if response.stream is not None:
            return response.stream
        return [response.body]


def make_handler(
    services: Any,
    settings: Settings,
    logger: Optional[logging.Logger] = None,
    on_exit: Optional[Callable[[], None]] = None,
    executable: Optional[str] = None,
) -> ApiHandler:
    """Build the API application over ``services`` and ``settings``."""
    return ApiHandler(HandlerContext(services, settings, logger, on_exit, executable))


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietRequestHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logging.getLogger("ankiced.http").debug(format, *args)


def _split_addr(addr: str) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    host = host.strip("[]")
    try:
        return host, int(port)
    except ValueError as exc:
        raise ValueError(f"invalid listen address: {addr!r}") from exc


@dataclass
class Server:
    """Serves the API on the configured address until stopped."""

    services: Any
    settings: Settings = field(default_factory=Settings)
    logger: Optional[logging.Logger] = None
    on_exit: Optional[Callable[[], None]] = None
    executable: Optional[str] = None

    def run(self, stop: Optional[threading.Event] = None) -> None:
        """Serve requests until ``stop`` is set (or interrupted when not given)."""
        logger = self.logger if self.logger is not None else logging.getLogger("ankiced")
        stop = stop if stop is not None else threading.Event()
        addr = self.settings.http_addr if self.settings.http_addr.strip() else DEFAULT_ADDR
        host, port = _split_addr(addr)
        ctx = HandlerContext(
            self.services, self.settings, logger, self.on_exit, self.executable, stop=stop
        )
        httpd = make_server(
            host,
            port,
            ApiHandler(ctx),
            server_class=_ThreadingWSGIServer,
            handler_class=_QuietRequestHandler,
        )
        serving = threading.Thread(
            target=httpd.serve_forever, kwargs={"poll_interval": 0.2}, daemon=True
        )
        logger.info("http api listening addr=%s", addr)
        serving.start()
        try:
            while not stop.wait(0.5):
                if not serving.is_alive():
                    break
        except KeyboardInterrupt:
            pass
        finally:
            stop.set()
            httpd.shutdown()
            httpd.server_close()
            serving.join(timeout=5)