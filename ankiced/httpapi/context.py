"""Request and response records and the shared state of the API handlers."""

from __future__ import annotations

import dataclasses
import itertools
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from ankiced.httpapi.errors import build_error_payload, map_error_code
from ankiced.httpapi.helpers import MAX_REQUEST_BODY_BYTES, ConfigSnapshot
from ankiced.httpapi.logs import LogHub
from ankiced.httpapi.operations import OperationStore
from ankiced.models import LogEvent, Settings, to_json_dict
from ankiced.presentation import format_debug_error, format_error

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

# Characters escaped in JSON output so responses are safe to embed in HTML.
_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


class _BodyTooLargeError(ValueError):
    """Raised when a request body exceeds the allowed size."""


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    text = now.strftime("%Y-%m-%dT%H:%M:%S")
    if now.microsecond:
        text += f".{now.microsecond:06d}".rstrip("0")
    return text + "Z"


def _encode_json(payload: Any) -> bytes:
    text = json.dumps(to_json_dict(payload), ensure_ascii=False, separators=(",", ":"))
    for char, escaped in _HTML_ESCAPES.items():
        text = text.replace(char, escaped)
    return (text + "\n").encode("utf-8")


@dataclass
class Request:
    """An incoming HTTP request; header names are lower-cased."""

    method: str = "GET"
    path: str = "/"
    query: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        self.headers = {name.lower(): value for name, value in self.headers.items()}

    def json(self) -> dict[str, Any]:
        """Decode the body as one JSON object, enforcing the size limit."""
        if len(self.body) > MAX_REQUEST_BODY_BYTES:
            raise _BodyTooLargeError("http: request body too large")
        text = self.body.decode("utf-8").lstrip()
        if not text:
            raise ValueError("EOF")
        value, _end = json.JSONDecoder().raw_decode(text)
        if not isinstance(value, dict):
            raise ValueError(
                f"json: cannot unmarshal {type(value).__name__} into an object"
            )
        return value


@dataclass
class Response:
    """An outgoing HTTP response; ``stream`` replaces ``body`` when set."""

    status: int = 200
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    stream: Optional[Iterable[bytes]] = None


class HandlerContext:
    """State shared by the API handlers: services, settings, logs and operations."""

    def __init__(
        self,
        services: Any,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
        on_exit: Optional[Callable[[], None]] = None,
        executable: Optional[str] = None,
        stop: Optional[threading.Event] = None,
    ) -> None:
        self.services = services
        self.logger = logger
        self.on_exit = on_exit
        self.executable = executable
        self.stop = stop if stop is not None else threading.Event()
        self.logs = LogHub()
        self.ops = OperationStore()
        self._settings = dataclasses.replace(settings)
        self._cfg_lock = threading.RLock()
        self._seq_lock = threading.Lock()
        self._seq = itertools.count(1)
        self._log_seq = itertools.count(1)
        # Let the services read live settings rather than a stale snapshot.
        if services is not None and hasattr(services, "cfg_provider"):
            services.cfg_provider = self.current_config

    def correlation_id(self) -> str:
        """Return a new request id of the form ``req-<unix ms>-<n>``."""
        with self._seq_lock:
            number = next(self._seq)
        return f"req-{int(time.time() * 1000)}-{number}"

    def log(
        self,
        level: str,
        operation: str,
        cid: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Publish a log event to subscribers and the configured logger."""
        with self._seq_lock:
            event_id = next(self._log_seq)
            event = LogEvent(
                id=event_id,
                timestamp=_utc_timestamp(),
                level=level,
                operation=operation,
                message=message,
                details=details,
                correlation_id=cid,
            )
            self.logs.publish(event)
        if self.logger is None:
            return
        log_level = {
            "error": logging.ERROR,
            "warn": logging.WARNING,
            "warning": logging.WARNING,
            "debug": logging.DEBUG,
        }.get(level.lower(), logging.INFO)
        self.logger.log(
            log_level,
            "%s operation=%s correlation_id=%s details=%s",
            message,
            operation,
            cid,
            details,
        )

    def current_config(self) -> Settings:
        """Return a copy of the current settings."""
        with self._cfg_lock:
            return dataclasses.replace(self._settings)

    def set_db_path(self, path: str) -> None:
        with self._cfg_lock:
            self._settings.db_path = path

    def config_snapshot(self) -> ConfigSnapshot:
        return ConfigSnapshot.from_settings(self.current_config())

    def json_response(self, status: int, payload: Any) -> Response:
        """Encode ``payload`` as compact, HTML-safe JSON."""
        return Response(
            status=status,
            body=_encode_json(payload),
            headers={"Content-Type": JSON_CONTENT_TYPE},
        )

    def error_response(
        self, status: int, err: BaseException, operation: str, cid: str
    ) -> Response:
        """Build the error contract response for an application error."""
        details = format_debug_error(err)
        self.log("error", operation, cid, "request failed", {"error": details})
        payload = build_error_payload(format_error(err), map_error_code(err), details, cid)
        return self.json_response(status, payload.to_dict())

    def message_error(
        self,
        status: int,
        message: str,
        code: str,
        details: str,
        operation: str,
        cid: str,
    ) -> Response:
        """Build the error contract response from explicit parts."""
        self.log("error", operation, cid, "request failed", {"error": details})
        payload = build_error_payload(message, code, details, cid)
        return self.json_response(status, payload.to_dict())

    def decode_error(self, err: BaseException, operation: str) -> Response:
        """Report a request body that could not be decoded."""
        cid = self.correlation_id()
        if isinstance(err, _BodyTooLargeError):
            return self.message_error(
                413, "request body too large", "REQUEST_BODY_TOO_LARGE", str(err), operation, cid
            )
        return self.message_error(400, "invalid json body", "INVALID_JSON", str(err), operation, cid)

    def method_not_allowed(self, operation: str) -> Response:
        cid = self.correlation_id()
        return self.message_error(
            405,
            "method not allowed",
            "METHOD_NOT_ALLOWED",
            "request method is not supported for this endpoint",
            operation,
            cid,
        )