"""Error types shared by the command line and HTTP front ends."""

from __future__ import annotations

import enum
from typing import Optional, Union


class ErrorCode(str, enum.Enum):
    """Machine-readable codes attached to application errors."""

    OPERATION_CANCELLED = "OPERATION_CANCELLED"
    INVALID_ESCAPE = "INVALID_ESCAPE"
    DATABASE_PATH_EMPTY = "DATABASE_PATH_EMPTY"
    DECK_NOT_FOUND = "DECK_NOT_FOUND"
    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    REPORT_WRITE_FAILED = "REPORT_WRITE_FAILED"


class AppError(Exception):
    """Base application error carrying an optional code and cause."""

    default_message = "application error"
    default_code: Optional[ErrorCode] = None

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[ErrorCode] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.message = self.default_message if message is None else message
        self.code = code if code is not None else self.default_code
        super().__init__(self.message)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message


class InputClosedError(AppError, EOFError):
    default_message = "EOF"


class OperationCancelledError(AppError):
    default_message = "operation cancelled"
    default_code = ErrorCode.OPERATION_CANCELLED


class EmptyDeckNameError(AppError):
    default_message = "empty deck name"


class DeckNameConflictError(AppError):
    default_message = "deck name conflict"


class DeckNameTooLongError(AppError):
    default_message = "deck name too long"


class DeckNameInvalidError(AppError):
    default_message = "invalid deck name"


class DeckSearchEmptyError(AppError):
    default_message = "empty deck search"


class InvalidNoteListFiltersError(AppError):
    default_message = "invalid note list filters"


class InvalidNoteIdError(AppError):
    default_message = "invalid note id"


class FieldCountInvalidError(AppError):
    default_message = "invalid field count"


class InvalidEscapeSequenceError(AppError):
    default_message = "invalid escape sequence"
    default_code = ErrorCode.INVALID_ESCAPE


class DatabasePathEmptyError(AppError):
    default_message = "database path is empty"
    default_code = ErrorCode.DATABASE_PATH_EMPTY


class DeckNotFoundError(AppError):
    default_message = "deck not found"
    default_code = ErrorCode.DECK_NOT_FOUND


class NoteNotFoundError(AppError):
    default_message = "note not found"
    default_code = ErrorCode.NOTE_NOT_FOUND


class ModelNotFoundError(AppError):
    default_message = "model not found"
    default_code = ErrorCode.MODEL_NOT_FOUND


class TemplateNotFoundError(AppError):
    default_message = "template not found"
    default_code = ErrorCode.TEMPLATE_NOT_FOUND


class ReportWriteFailedError(AppError):
    default_message = "report write failed"
    default_code = ErrorCode.REPORT_WRITE_FAILED


ErrorKind = Union[type, tuple]


def error_chain(err: Optional[BaseException]) -> list[BaseException]:
    """Return ``err`` followed by its explicit causes, outermost first."""
    chain: list[BaseException] = []
    seen: set[int] = set()
    current = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        chain.append(current)
        current = current.__cause__
    return chain


def has_error(err: Optional[BaseException], kind: ErrorKind) -> bool:
    """Tell whether any error in the cause chain is an instance of ``kind``."""
    return any(isinstance(item, kind) for item in error_chain(err))


def has_code(err: Optional[BaseException], code: ErrorCode) -> bool:
    """Tell whether any application error in the cause chain carries ``code``."""
    return any(
        isinstance(item, AppError) and item.code == code for item in error_chain(err)
    )