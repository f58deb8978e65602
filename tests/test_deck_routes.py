import json

import pytest

from ankiced.errors import DeckNameInvalidError, DeckNotFoundError, DeckSearchEmptyError
from ankiced.httpapi.context import HandlerContext, Request
from ankiced.httpapi.deck_routes import handle_deck_by_id, handle_deck_search, handle_decks
from ankiced.httpapi.helpers import MAX_REQUEST_BODY_BYTES
from ankiced.models import Deck, Settings


class StubDecks:
    def __init__(self, decks=None, rename_error=None, list_error=None):
        self.decks = decks if decks is not None else [Deck(id=1, name="Default", card_count=2)]
        self.rename_error = rename_error
        self.list_error = list_error
        self.renamed = None

    def list_decks(self):
        if self.list_error is not None:
            raise self.list_error
        return self.decks

    def search_decks(self, search):
        if not search.strip():
            raise DeckSearchEmptyError()
        return [Deck(id=2, name="Filtered", card_count=3)]

    def rename_deck(self, deck_id, name):
        if self.rename_error is not None:
            raise self.rename_error
        self.renamed = (deck_id, name)


def make_ctx(services):
    return HandlerContext(services, Settings(default_page_size=10))


def body_of(response):
    return json.loads(response.body)


def test_list_decks_returns_all_without_limit():
    ctx = make_ctx(StubDecks())
    response = handle_decks(ctx, Request(method="GET", path="/api/v1/decks"))
    assert response.status == 200
    assert b'"Default"' in response.body
    payload = body_of(response)
    assert payload["total"] == 1
    assert payload["limit"] == 0
    assert payload["offset"] == 0
    assert [item["id"] for item in payload["items"]] == [1]


def test_list_decks_honors_limit_and_offset():
    decks = [Deck(id=i, name=f"Deck {i}", card_count=i) for i in range(1, 6)]
    ctx = make_ctx(StubDecks(decks=decks))
    request = Request(method="GET", path="/api/v1/decks", query={"limit": "2", "offset": "1"})
    payload = body_of(handle_decks(ctx, request))
    assert payload["total"] == 5
    assert payload["limit"] == 2
    assert payload["offset"] == 1
    assert [item["id"] for item in payload["items"]] == [2, 3]


def test_list_decks_offset_clamped_to_total():
    decks = [Deck(id=i, name=f"Deck {i}") for i in range(1, 4)]
    ctx = make_ctx(StubDecks(decks=decks))
    request = Request(method="GET", path="/api/v1/decks", query={"offset": "50"})
    payload = body_of(handle_decks(ctx, request))
    assert payload["offset"] == len(decks)
    assert payload["items"] == []


def test_list_decks_logs_start_and_finish():
    ctx = make_ctx(StubDecks())
    handle_decks(ctx, Request(method="GET", path="/api/v1/decks"))
    messages = [(e.operation, e.message) for e in ctx.logs.since(0)]
    assert ("list_decks", "request started") in messages
    assert ("list_decks", "request finished") in messages


def test_list_decks_wrong_method():
    ctx = make_ctx(StubDecks())
    response = handle_decks(ctx, Request(method="POST", path="/api/v1/decks"))
    assert response.status == 405
    payload = body_of(response)
    assert payload["code"] == "METHOD_NOT_ALLOWED"
    assert payload["recommended_action"] == "Use the HTTP method documented for this endpoint."


def test_list_decks_service_failure_is_internal_error():
    ctx = make_ctx(StubDecks(list_error=RuntimeError("db down")))
    response = handle_decks(ctx, Request(method="GET", path="/api/v1/decks"))
    assert response.status == 500
    payload = body_of(response)
    assert payload["code"] == "INTERNAL_ERROR"
    assert payload["message"] == "db down"


def test_deck_search_empty_is_bad_request():
    ctx = make_ctx(StubDecks())
    response = handle_deck_search(ctx, Request(method="GET", path="/api/v1/decks/search", query={"q": ""}))
    assert response.status == 400
    payload = body_of(response)
    assert payload["code"] == "DECK_SEARCH_EMPTY"
    assert payload["recommended_action"] == "Enter search text before running deck search."


def test_deck_search_returns_items():
    ctx = make_ctx(StubDecks())
    response = handle_deck_search(
        ctx, Request(method="GET", path="/api/v1/decks/search", query={"q": "Filt"})
    )
    assert response.status == 200
    assert body_of(response)["items"][0]["name"] == "Filtered"


def test_rename_deck_calls_service():
    stub = StubDecks()
    ctx = make_ctx(stub)
    request = Request(method="PATCH", path="/api/v1/decks/1", body=b'{"name":"Renamed"}')
    response = handle_deck_by_id(ctx, request)
    assert response.status == 200
    assert body_of(response) == {"ok": True}
    assert stub.renamed == (1, "Renamed")


def test_rename_missing_deck_is_not_found():
    stub = StubDecks(rename_error=DeckNotFoundError())
    ctx = make_ctx(stub)
    request = Request(method="PATCH", path="/api/v1/decks/404", body=b'{"name":"Renamed"}')
    response = handle_deck_by_id(ctx, request)
    assert response.status == 404
    assert body_of(response)["code"] == "DECK_NOT_FOUND"
    assert stub.renamed is None


def test_rename_invalid_name_is_bad_request():
    ctx = make_ctx(StubDecks(rename_error=DeckNameInvalidError()))
    request = Request(method="PATCH", path="/api/v1/decks/1", body=b'{"name":"bad\\tname"}')
    response = handle_deck_by_id(ctx, request)
    assert response.status == 400
    payload = body_of(response)
    assert payload["code"] == "DECK_NAME_INVALID"
    assert payload["message"] == "deck name contains control characters"


@pytest.mark.parametrize("path", ["/api/v1/decks/abc", "/api/v1/decks/1/x", "/api/v1/decks/"])
def test_rename_invalid_id(path):
    ctx = make_ctx(StubDecks())
    response = handle_deck_by_id(ctx, Request(method="PATCH", path=path, body=b'{"name":"x"}'))
    assert response.status == 400
    payload = body_of(response)
    assert payload["code"] == "DECK_ID_INVALID"
    assert payload["message"] == "invalid deck id"


@pytest.mark.parametrize("body", [b"{not json", b'{"name":"x","extra":1}', b'{"name":5}', b""])
def test_rename_bad_body_is_invalid_json(body):
    stub = StubDecks()
    ctx = make_ctx(stub)
    response = handle_deck_by_id(ctx, Request(method="PATCH", path="/api/v1/decks/1", body=body))
    assert response.status == 400
    assert body_of(response)["code"] == "INVALID_JSON"
    assert stub.renamed is None


def test_rename_body_too_large():
    ctx = make_ctx(StubDecks())
    body = b'{"name":"' + b"a" * MAX_REQUEST_BODY_BYTES + b'"}'
    response = handle_deck_by_id(ctx, Request(method="PATCH", path="/api/v1/decks/1", body=body))
    assert response.status == 413
    assert body_of(response)["code"] == "REQUEST_BODY_TOO_LARGE"


def test_deck_by_id_wrong_method():
    ctx = make_ctx(StubDecks())
    response = handle_deck_by_id(ctx, Request(method="GET", path="/api/v1/decks/1"))
    assert response.status == 405
    assert body_of(response)["code"] == "METHOD_NOT_ALLOWED"