"""HTTP handlers for the cleaner: preview, asynchronous runs and their status."""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass
from typing import Any

from ankiced.errors import (
    ModelNotFoundError,
    NoteNotFoundError,
    TemplateNotFoundError,
    has_error,
)
from ankiced.httpapi.context import HandlerContext, Request, Response
from ankiced.models import CleanerProgress, Settings
from ankiced.presentation import format_debug_error

OPERATIONS_PATH_PREFIX = "/api/v1/operations/"

# Progress stages worth a log entry; intermediate ticks are not logged.
_LOGGED_STAGES = frozenset({"started", "writing", "finished", "failed"})


def _reject_unknown(body: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(body) - allowed)
    if unknown:
        raise ValueError(f'json: unknown field "{unknown[0]}"')


def _int_member(body: dict[str, Any], key: str) -> int:
    value = body.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(
            f"json: cannot unmarshal {type(value).__name__} into field {key} of type int"
        )
    return value


def _bool_member(body: dict[str, Any], key: str) -> bool:
    value = body.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(
            f"json: cannot unmarshal {type(value).__name__} into field {key} of type bool"
        )
    return value


def _string_member(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(
            f"json: cannot unmarshal {type(value).__name__} into field {key} of type string"
        )
    return value


@dataclass
class _RunRequest:
    deck_id: int = 0
    full_diff: bool = False
    confirm: bool = False
    workers: int = 0
    report_file: str = ""
    template_id: str = ""


def _decode_run(request: Request) -> _RunRequest:
    body = request.json()
    _reject_unknown(
        body, {"deck_id", "full_diff", "confirm", "workers", "report_file", "template_id"}
    )
    return _RunRequest(
        deck_id=_int_member(body, "deck_id"),
        full_diff=_bool_member(body, "full_diff"),
        confirm=_bool_member(body, "confirm"),
        workers=_int_member(body, "workers"),
        report_file=_string_member(body, "report_file"),
        template_id=_string_member(body, "template_id"),
    )


def handle_cleaner_preview(ctx: HandlerContext, request: Request) -> Response:
    """Show what the cleaner would change in one note."""
    if request.method != "POST":
        return ctx.method_not_allowed("cleaner_preview")
    try:
        body = request.json()
        _reject_unknown(body, {"note_id", "template_id"})
        note_id = _int_member(body, "note_id")
        template_id = _string_member(body, "template_id")
    except ValueError as err:
        return ctx.decode_error(err, "cleaner_preview")
    cid = ctx.correlation_id()
    ctx.log("info", "cleaner_preview", cid, "request started", {"note_id": note_id})
    try:
        records = list(ctx.services.preview_cleaner(note_id, template_id))
    except Exception as err:
        status = 500
        if has_error(err, (NoteNotFoundError, ModelNotFoundError)):
            status = 404
        elif has_error(err, TemplateNotFoundError):
            status = 400
        return ctx.error_response(status, err, "cleaner_preview", cid)
    response = ctx.json_response(200, {"records": records})
    ctx.log(
        "info", "cleaner_preview", cid, "request finished", {"changed_fields": len(records)}
    )
    return response


def _run_operation(
    ctx: HandlerContext,
    op_name: str,
    cid: str,
    settings: Settings,
    req: _RunRequest,
    dry_run: bool,
) -> None:
    def on_progress(progress: CleanerProgress) -> None:
        ctx.ops.progress(cid, progress)
        if progress.stage in _LOGGED_STAGES:
            ctx.log(
                "info",
                op_name,
                cid,
                "operation progress",
                {
                    "stage": progress.stage,
                    "processed": progress.processed,
                    "total": progress.total,
                    "changed": progress.changed,
                    "skipped": progress.skipped,
                    "errors": progress.errors,
                },
            )

    ctx.log(
        "info", op_name, cid, "operation started", {"deck_id": req.deck_id, "dry_run": dry_run}
    )
    try:
        output, summary = ctx.services.run_cleaner(
            settings, req.deck_id, dry_run, req.template_id, on_progress
        )
    except Exception as err:
        # Any failure, expected or not, is reported through the operation
        # store so pollers see a real error instead of a stuck operation.
        ctx.ops.fail(cid, err)
        ctx.log("error", op_name, cid, "operation failed", {"error": format_debug_error(err)})
        return
    ctx.ops.succeed(cid, output, summary)
    ctx.log(
        "info",
        op_name,
        cid,
        "operation finished",
        {"changed": summary.changed, "errors": summary.errors},
    )


def handle_cleaner_run(ctx: HandlerContext, request: Request, dry_run: bool) -> Response:
    """Start a dry run or an apply of the cleaner over a deck in the background."""
    op_name = "cleaner_dry_run" if dry_run else "cleaner_apply"
    if request.method != "POST":
        return ctx.method_not_allowed(op_name)
    try:
        req = _decode_run(request)
    except ValueError as err:
        return ctx.decode_error(err, op_name)
    if req.deck_id <= 0:
        cid = ctx.correlation_id()
        return ctx.message_error(
            400,
            "deck_id must be positive",
            "DECK_ID_INVALID",
            "deck_id must be greater than zero",
            op_name,
            cid,
        )
    if not dry_run and not req.confirm:
        cid = ctx.correlation_id()
        return ctx.message_error(
            400,
            "confirm=true is required for apply",
            "CONFIRM_REQUIRED",
            "apply requires explicit confirmation",
            op_name,
            cid,
        )

    cid = ctx.correlation_id()
    ctx.log("info", op_name, cid, "request started", {"deck_id": req.deck_id, "dry_run": dry_run})
    current = ctx.current_config()
    settings = dataclasses.replace(
        current,
        full_diff=req.full_diff,
        force_apply=req.confirm,
        workers=req.workers if req.workers > 0 else current.workers,
        report_file=req.report_file or current.report_file,
    )
    operation = ctx.ops.create(cid, op_name)
    threading.Thread(
        target=_run_operation,
        args=(ctx, op_name, cid, settings, req, dry_run),
        daemon=True,
    ).start()
    response = ctx.json_response(
        202,
        {
            "operation_id": cid,
            "status": operation.status.value,
            "dry_run": dry_run,
            "status_url": OPERATIONS_PATH_PREFIX + cid,
        },
    )
    ctx.log("info", op_name, cid, "request accepted", {"operation_id": cid})
    return response


def handle_operation_by_id(ctx: HandlerContext, request: Request) -> Response:
    """Return the state of the operation whose id ends the path."""
    if request.method != "GET":
        return ctx.method_not_allowed("get_operation")
    op_id = request.path.removeprefix(OPERATIONS_PATH_PREFIX)
    if not op_id or "/" in op_id:
        cid = ctx.correlation_id()
        return ctx.message_error(
            400,
            "invalid operation id",
            "OPERATION_ID_INVALID",
            "operation id path segment is invalid",
            "get_operation",
            cid,
        )
    operation = ctx.ops.get(op_id)
    if operation is None:
        cid = ctx.correlation_id()
        return ctx.message_error(
            404,
            "operation not found",
            "OPERATION_NOT_FOUND",
            "operation id was not found",
            "get_operation",
            cid,
        )
    return ctx.json_response(200, operation.to_dict())