import pytest

from ankiced.errors import (
    AppError,
    DeckNameConflictError,
    DeckNameInvalidError,
    DeckNameTooLongError,
    DeckNotFoundError,
    DeckSearchEmptyError,
    EmptyDeckNameError,
    ErrorCode,
    FieldCountInvalidError,
    InputClosedError,
    InvalidEscapeSequenceError,
    InvalidNoteIdError,
    InvalidNoteListFiltersError,
    ModelNotFoundError,
    NoteNotFoundError,
    OperationCancelledError,
    ReportWriteFailedError,
    TemplateNotFoundError,
)
from ankiced.presentation import format_debug_error, format_error


def _wrap(message, cause):
    err = RuntimeError(message)
    err.__cause__ = cause
    return err


@pytest.mark.parametrize(
    "err, want",
    [
        (InputClosedError(), "input stream closed"),
        (EOFError(), "input stream closed"),
        (OperationCancelledError(), "operation cancelled by user"),
        (AppError("", code=ErrorCode.OPERATION_CANCELLED), "operation cancelled by user"),
        (EmptyDeckNameError(), "deck name cannot be empty"),
        (DeckNameConflictError(), "deck name is already used"),
        (DeckNameTooLongError(), "deck name is too long"),
        (DeckNameInvalidError(), "deck name contains control characters"),
        (DeckSearchEmptyError(), "deck search text cannot be empty"),
        (
            InvalidNoteListFiltersError(),
            "invalid note list query: need a deck id, a note id, or search text for all-decks search",
        ),
        (InvalidNoteIdError(), "note id must be a positive integer"),
        (FieldCountInvalidError(), "note fields do not match model"),
        (AppError("", code=ErrorCode.INVALID_ESCAPE), "invalid escape sequence in multiline input"),
        (AppError("", code=ErrorCode.DATABASE_PATH_EMPTY), "database path is empty"),
        (DeckNotFoundError(), "deck not found"),
        (NoteNotFoundError(), "note not found"),
        (ModelNotFoundError(), "model not found"),
        (TemplateNotFoundError(), "action template not found"),
        (ReportWriteFailedError(), "failed to write report"),
        (RuntimeError("raw error"), "raw error"),
    ],
)
def test_format_error_cases(err, want):
    assert format_error(err) == want


def test_format_debug_error_without_cause_equals_format_error():
    err = EmptyDeckNameError()
    assert format_debug_error(err) == format_error(err)


def test_format_debug_error_includes_cause_chain():
    inner = _wrap("disk full: short write", OSError("short write"))
    wrapped = ReportWriteFailedError("failed to write report", cause=inner)
    got = format_debug_error(wrapped)
    assert "failed to write report" in got
    assert "disk full" in got
    assert "cause:" in got


def test_nil_returns_empty():
    assert format_error(None) == ""
    assert format_debug_error(None) == ""


def test_invalid_note_list_filters_is_friendly():
    err = InvalidNoteListFiltersError()
    got = format_error(err)
    assert got != ""
    assert got != str(err)


def test_invalid_note_id_message():
    assert format_error(InvalidNoteIdError()) == "note id must be a positive integer"


def test_format_error_from_app_error_code():
    err = _wrap("runtime: deck not found", AppError("deck not found", code=ErrorCode.DECK_NOT_FOUND))
    assert format_error(err) == "deck not found"


def test_format_debug_error_wrapped_escape():
    escape = InvalidEscapeSequenceError(cause=ValueError("invalid syntax"))
    err = _wrap("runtime: invalid escape sequence", escape)
    got = format_debug_error(err)
    assert "invalid escape sequence in multiline input" in got
    assert "cause:" in got
    assert got.endswith("invalid syntax")