"""User-facing rendering of internal errors."""

from __future__ import annotations

from typing import Optional

from ankiced.errors import (
    DeckNameConflictError,
    DeckNameInvalidError,
    DeckNameTooLongError,
    DeckNotFoundError,
    DeckSearchEmptyError,
    EmptyDeckNameError,
    ErrorCode,
    FieldCountInvalidError,
    InvalidNoteIdError,
    InvalidNoteListFiltersError,
    ModelNotFoundError,
    NoteNotFoundError,
    OperationCancelledError,
    ReportWriteFailedError,
    TemplateNotFoundError,
    error_chain,
    has_code,
    has_error,
)

# Checked in order: the first matching rule decides the message.
_RULES: tuple[tuple[Optional[type], Optional[ErrorCode], str], ...] = (
    (EOFError, None, "input stream closed"),
    (OperationCancelledError, ErrorCode.OPERATION_CANCELLED, "operation cancelled by user"),
    (EmptyDeckNameError, None, "deck name cannot be empty"),
    (DeckNameConflictError, None, "deck name is already used"),
    (DeckNameTooLongError, None, "deck name is too long"),
    (DeckNameInvalidError, None, "deck name contains control characters"),
    (DeckSearchEmptyError, None, "deck search text cannot be empty"),
    (
        InvalidNoteListFiltersError,
        None,
        "invalid note list query: need a deck id, a note id, or search text for all-decks search",
    ),
    (InvalidNoteIdError, None, "note id must be a positive integer"),
    (FieldCountInvalidError, None, "note fields do not match model"),
    (None, ErrorCode.INVALID_ESCAPE, "invalid escape sequence in multiline input"),
    (None, ErrorCode.DATABASE_PATH_EMPTY, "database path is empty"),
    (DeckNotFoundError, ErrorCode.DECK_NOT_FOUND, "deck not found"),
    (NoteNotFoundError, ErrorCode.NOTE_NOT_FOUND, "note not found"),
    (ModelNotFoundError, ErrorCode.MODEL_NOT_FOUND, "model not found"),
    (TemplateNotFoundError, ErrorCode.TEMPLATE_NOT_FOUND, "action template not found"),
    (ReportWriteFailedError, ErrorCode.REPORT_WRITE_FAILED, "failed to write report"),
)


def format_error(err: Optional[BaseException]) -> str:
    """Return a user-facing message for ``err``; empty for ``None``."""
    if err is None:
        return ""
    for kind, code, message in _RULES:
        if kind is not None and has_error(err, kind):
            return message
        if code is not None and has_code(err, code):
            return message
    return str(err)


def format_debug_error(err: Optional[BaseException]) -> str:
    """Return the user-facing message followed by the cause chain."""
    if err is None:
        return ""
    base = format_error(err)
    causes = [str(item) for item in error_chain(err)[1:]]
    if not causes:
        return base
    return f"{base} | cause: {' -> '.join(causes)}"