"""Error contract of the HTTP API."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Optional

from ankiced.errors import (
    DeckNameConflictError,
    DeckNameInvalidError,
    DeckNameTooLongError,
    DeckNotFoundError,
    DeckSearchEmptyError,
    EmptyDeckNameError,
    FieldCountInvalidError,
    InvalidNoteIdError,
    InvalidNoteListFiltersError,
    ModelNotFoundError,
    NoteNotFoundError,
    TemplateNotFoundError,
    has_error,
)


@dataclass(frozen=True)
class ErrorPayload:
    message: str
    recommended_action: str
    code: str
    details: str
    correlation_id: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


_ERROR_CODES: tuple[tuple[type, str], ...] = (
    (EmptyDeckNameError, "DECK_NAME_EMPTY"),
    (DeckNameConflictError, "DECK_NAME_CONFLICT"),
    (DeckNameTooLongError, "DECK_NAME_TOO_LONG"),
    (DeckNameInvalidError, "DECK_NAME_INVALID"),
    (DeckNotFoundError, "DECK_NOT_FOUND"),
    (NoteNotFoundError, "NOTE_NOT_FOUND"),
    (ModelNotFoundError, "MODEL_NOT_FOUND"),
    (DeckSearchEmptyError, "DECK_SEARCH_EMPTY"),
    (InvalidNoteListFiltersError, "NOTE_LIST_FILTERS_INVALID"),
    (InvalidNoteIdError, "NOTE_ID_INVALID"),
    (FieldCountInvalidError, "NOTE_FIELD_COUNT_INVALID"),
    (TemplateNotFoundError, "TEMPLATE_NOT_FOUND"),
)

_DECK_NAME_HINT = (
    "Use a non-empty deck name without control characters and keep it reasonably short."
)
_OPERATION_HINT = "Check the operation id returned by the cleaner request."

RECOMMENDED_ACTIONS: dict[str, str] = {
    "DECK_NAME_EMPTY": _DECK_NAME_HINT,
    "DECK_NAME_INVALID": _DECK_NAME_HINT,
    "DECK_NAME_TOO_LONG": _DECK_NAME_HINT,
    "DECK_NAME_CONFLICT": "Choose a deck name that is not already used by another deck.",
    "DECK_NOT_FOUND": "Refresh the deck list and choose an existing deck.",
    "NOTE_NOT_FOUND": "Refresh the note list and select an existing note id.",
    "MODEL_NOT_FOUND": "Verify the note model still exists in the Anki collection.",
    "DECK_SEARCH_EMPTY": "Enter search text before running deck search.",
    "NOTE_LIST_FILTERS_INVALID": "Select a deck, enter a note id, or provide global search text.",
    "NOTE_ID_INVALID": "Enter a positive numeric note id.",
    "NOTE_FIELD_COUNT_INVALID": "Reload the note and save all fields returned by the editor.",
    "TEMPLATE_NOT_FOUND": (
        "Use an available action template or omit template_id to use the default cleaner."
    ),
    "INVALID_JSON": "Check the request body format and use valid JSON.",
    "DECK_ID_INVALID": "Enter a positive numeric deck id.",
    "CONFIRM_REQUIRED": "Review the dry run result and explicitly confirm apply.",
    "OPERATION_ID_INVALID": _OPERATION_HINT,
    "OPERATION_NOT_FOUND": _OPERATION_HINT,
    "METHOD_NOT_ALLOWED": "Use the HTTP method documented for this endpoint.",
    "NOT_FOUND": "Check the API path and version.",
    "APP_EXIT_DISABLED": "Run ankiced-web through the normal application entrypoint to enable exit.",
    "STREAMING_UNSUPPORTED": (
        "Use a client that supports HTTP/1.1 streaming or fall back to the polling logs "
        "endpoint (?since=)."
    ),
    "REQUEST_BODY_TOO_LARGE": "Reduce the size of the request body or split it into smaller chunks.",
}

DEFAULT_RECOMMENDED_ACTION = "Check the technical details and retry the operation."


def map_error_code(err: Optional[BaseException]) -> str:
    """Map an error to its API error code."""
    for kind, code in _ERROR_CODES:
        if has_error(err, kind):
            return code
    return "INTERNAL_ERROR"


def recommended_action(code: str) -> str:
    """Return the remediation hint for an API error code."""
    return RECOMMENDED_ACTIONS.get(code, DEFAULT_RECOMMENDED_ACTION)


def build_error_payload(
    message: str, code: str, details: str, correlation_id: str
) -> ErrorPayload:
    """Build an error payload with the hint matching ``code``."""
    return ErrorPayload(
        message=message,
        recommended_action=recommended_action(code),
        code=code,
        details=details,
        correlation_id=correlation_id,
    )