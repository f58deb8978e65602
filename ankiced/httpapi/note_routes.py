"""HTTP handlers for listing, reading and updating notes."""

from __future__ import annotations

from typing import Any

from ankiced.errors import (
    FieldCountInvalidError,
    InvalidNoteIdError,
    InvalidNoteListFiltersError,
    ModelNotFoundError,
    NoteNotFoundError,
    has_error,
)
from ankiced.httpapi.context import HandlerContext, Request, Response
from ankiced.httpapi.helpers import clamp_pagination, parse_int_default, parse_path_id
from ankiced.models import FilterSet, NoteField
from ankiced.presentation import format_debug_error

NOTE_PATH_PREFIX = "/api/v1/notes/"


def _string_member(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(
            f"json: cannot unmarshal {type(value).__name__} into field {key} of type string"
        )
    return value


def _reject_unknown(obj: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(obj) - allowed)
    if unknown:
        raise ValueError(f'json: unknown field "{unknown[0]}"')


def _decode_fields(request: Request) -> list[NoteField]:
    """Decode a note update body into its list of fields."""
    body = request.json()
    _reject_unknown(body, {"fields"})
    raw = body.get("fields")
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError("json: cannot unmarshal into field fields of type array")
    fields: list[NoteField] = []
    for item in raw:
        if item is None:
            fields.append(NoteField())
            continue
        if not isinstance(item, dict):
            raise ValueError("json: cannot unmarshal into a note field object")
        _reject_unknown(item, {"name", "value"})
        fields.append(NoteField(name=_string_member(item, "name"), value=_string_member(item, "value")))
    return fields


def handle_notes(ctx: HandlerContext, request: Request) -> Response:
    """List notes matching the query-string filters, one page at a time."""
    if request.method != "GET":
        return ctx.method_not_allowed("list_notes")
    query = request.query
    filters = FilterSet(
        deck_id=parse_int_default(query.get("deck_id"), 0),
        note_id=parse_int_default(query.get("note_id"), 0),
        search_text=(query.get("search_text") or "").strip(),
        mod_from_unix=parse_int_default(query.get("mod_from"), 0),
        mod_to_unix=parse_int_default(query.get("mod_to"), 0),
    )
    default_size = ctx.current_config().default_page_size
    page = clamp_pagination(
        parse_int_default(query.get("limit"), default_size),
        parse_int_default(query.get("offset"), 0),
        default_size,
    )
    cid = ctx.correlation_id()
    ctx.log(
        "info",
        "list_notes",
        cid,
        "request started",
        {"deck_id": filters.deck_id, "note_id": filters.note_id, "search_text": filters.search_text},
    )
    try:
        notes = list(ctx.services.list_notes(filters, page))
    except Exception as err:
        bad = has_error(err, (InvalidNoteListFiltersError, InvalidNoteIdError))
        return ctx.error_response(400 if bad else 500, err, "list_notes", cid)
    # A failed count is not fatal: the page is still returned.
    try:
        total = ctx.services.count_notes(filters)
    except Exception as err:
        ctx.log("warn", "list_notes", cid, "count failed", {"error": format_debug_error(err)})
        total = len(notes)
    response = ctx.json_response(
        200, {"items": notes, "total": total, "limit": page.limit, "offset": page.offset}
    )
    ctx.log("info", "list_notes", cid, "request finished", {"count": len(notes), "total": total})
    return response


def handle_note_by_id(ctx: HandlerContext, request: Request) -> Response:
    """Read (GET) or update (PATCH) the note whose id ends the path."""
    try:
        note_id = parse_path_id(request.path, NOTE_PATH_PREFIX)
    except ValueError as err:
        cid = ctx.correlation_id()
        return ctx.message_error(
            400, "invalid note id", "NOTE_ID_INVALID", str(err), "note_by_id", cid
        )
    if request.method == "GET":
        return _get_note(ctx, note_id)
    if request.method == "PATCH":
        return _patch_note(ctx, request, note_id)
    return ctx.method_not_allowed("note_by_id")


def _get_note(ctx: HandlerContext, note_id: int) -> Response:
    cid = ctx.correlation_id()
    ctx.log("info", "get_note", cid, "request started", {"note_id": note_id})
    try:
        note = ctx.services.get_note(note_id)
    except Exception as err:
        missing = has_error(err, (NoteNotFoundError, ModelNotFoundError))
        return ctx.error_response(404 if missing else 500, err, "get_note", cid)
    response = ctx.json_response(200, note)
    ctx.log("info", "get_note", cid, "request finished", None)
    return response


def _patch_note(ctx: HandlerContext, request: Request, note_id: int) -> Response:
    try:
        fields = _decode_fields(request)
    except ValueError as err:
        return ctx.decode_error(err, "update_note")
    cid = ctx.correlation_id()
    ctx.log("info", "update_note", cid, "request started", {"note_id": note_id})
    try:
        ctx.services.update_note(note_id, fields)
    except Exception as err:
        status = 500
        if has_error(err, FieldCountInvalidError):
            status = 400
        elif has_error(err, (NoteNotFoundError, ModelNotFoundError)):
            status = 404
        return ctx.error_response(status, err, "update_note", cid)
    response = ctx.json_response(200, {"ok": True})
    ctx.log("info", "update_note", cid, "request finished", None)
    return response