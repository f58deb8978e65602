"""HTTP handlers for listing, searching and renaming decks."""

from __future__ import annotations

from typing import Any

from ankiced.errors import (
    DeckNameConflictError,
    DeckNameInvalidError,
    DeckNameTooLongError,
    DeckNotFoundError,
    DeckSearchEmptyError,
    EmptyDeckNameError,
    has_error,
)
from ankiced.httpapi.context import HandlerContext, Request, Response
from ankiced.httpapi.helpers import clamp_pagination, parse_int_default, parse_path_id

DECK_PATH_PREFIX = "/api/v1/decks/"

_RENAME_BAD_REQUEST = (
    EmptyDeckNameError,
    DeckNameInvalidError,
    DeckNameTooLongError,
    DeckNameConflictError,
)


def _decode_rename(request: Request) -> str:
    """Decode a rename body, rejecting unknown members and wrong types."""
    body: dict[str, Any] = request.json()
    unknown = sorted(set(body) - {"name"})
    if unknown:
        raise ValueError(f'json: unknown field "{unknown[0]}"')
    name = body.get("name")
    if name is None:
        return ""
    if not isinstance(name, str):
        raise ValueError(
            f"json: cannot unmarshal {type(name).__name__} into field name of type string"
        )
    return name


def handle_decks(ctx: HandlerContext, request: Request) -> Response:
    """List decks; ``limit`` and ``offset`` page through the full list."""
    if request.method != "GET":
        return ctx.method_not_allowed("list_decks")
    cid = ctx.correlation_id()
    ctx.log("info", "list_decks", cid, "request started", None)
    try:
        decks = list(ctx.services.list_decks())
    except Exception as err:
        return ctx.error_response(500, err, "list_decks", cid)
    total = len(decks)
    raw_limit = parse_int_default(request.query.get("limit"), 0)
    page = clamp_pagination(raw_limit, parse_int_default(request.query.get("offset"), 0), 0)
    offset = min(page.offset, total)
    items = decks[offset:]
    # Without an explicit positive limit everything from the offset is returned.
    if raw_limit > 0:
        limit = page.limit
        items = items[:limit]
    else:
        limit = 0
    response = ctx.json_response(
        200, {"items": items, "total": total, "limit": limit, "offset": offset}
    )
    ctx.log("info", "list_decks", cid, "request finished", {"count": len(items), "total": total})
    return response


def handle_deck_search(ctx: HandlerContext, request: Request) -> Response:
    """Search decks by the text in the ``q`` query parameter."""
    if request.method != "GET":
        return ctx.method_not_allowed("search_decks")
    cid = ctx.correlation_id()
    query = request.query.get("q", "")
    ctx.log("info", "search_decks", cid, "request started", {"q": query})
    try:
        decks = list(ctx.services.search_decks(query))
    except Exception as err:
        status = 400 if has_error(err, DeckSearchEmptyError) else 500
        return ctx.error_response(status, err, "search_decks", cid)
    response = ctx.json_response(200, {"items": decks})
    ctx.log("info", "search_decks", cid, "request finished", {"count": len(decks)})
    return response


def handle_deck_by_id(ctx: HandlerContext, request: Request) -> Response:
    """Rename the deck whose id ends the path."""
    if request.method != "PATCH":
        return ctx.method_not_allowed("rename_deck")
    try:
        deck_id = parse_path_id(request.path, DECK_PATH_PREFIX)
    except ValueError as err:
        cid = ctx.correlation_id()
        return ctx.message_error(
            400, "invalid deck id", "DECK_ID_INVALID", str(err), "rename_deck", cid
        )
    try:
        name = _decode_rename(request)
    except ValueError as err:
        return ctx.decode_error(err, "rename_deck")
    cid = ctx.correlation_id()
    ctx.log("info", "rename_deck", cid, "request started", {"deck_id": deck_id})
    try:
        ctx.services.rename_deck(deck_id, name)
    except Exception as err:
        status = 500
        if has_error(err, _RENAME_BAD_REQUEST):
            status = 400
        elif has_error(err, DeckNotFoundError):
            status = 404
        return ctx.error_response(status, err, "rename_deck", cid)
    response = ctx.json_response(200, {"ok": True})
    ctx.log("info", "rename_deck", cid, "request finished", None)
    return response