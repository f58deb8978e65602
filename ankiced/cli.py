"""Interactive menu-driven command line front end."""

from __future__ import annotations

import re
import sys
import threading
from concurrent.futures import CancelledError
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, TextIO

from ankiced.errors import (
    InputClosedError,
    InvalidEscapeSequenceError,
    InvalidNoteIdError,
    InvalidNoteListFiltersError,
    has_error,
)
from ankiced.models import (
    DEFAULT_ACTION_TEMPLATE_ID,
    FIELD_SEPARATOR,
    Deck,
    DiffRecord,
    DryRunSummary,
    FilterSet,
    Note,
    NoteField,
    Pagination,
    Settings,
)
from ankiced.presentation import format_debug_error, format_error

MENU_TITLE = "== Ankiced =="
MENU_LINES = (
    MENU_TITLE,
    "1) List decks",
    "2) Rename deck",
    "10) Search decks by text",
    "3) List notes",
    "4) Edit note",
    "5) Preview cleaner",
    "6) Dry run cleaner",
    "7) Apply cleaner",
    "8) Find note by id",
    "9) Search notes (all decks)",
    "0) Exit",
)
MENU_UNKNOWN_OPTION = "Unknown option"
PROMPT_CURSOR = "> "
MULTILINE_TERMINATOR = ".end"

# On-screen length cap of a note preview, counted in code points.
PREVIEW_MAX_CHARS = 80

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_TAG_PATTERN = re.compile(r"<[^>]*>")

_SIMPLE_ESCAPES = {
    "a": 0x07,
    "b": 0x08,
    "f": 0x0C,
    "n": 0x0A,
    "r": 0x0D,
    "t": 0x09,
    "v": 0x0B,
    "\\": 0x5C,
    '"': 0x22,
}
_HEX_WIDTHS = {"x": 2, "u": 4, "U": 8}
_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_OCT_DIGITS = frozenset("01234567")


class _Services(Protocol):
    def list_decks(self) -> list[Deck]: ...

    def rename_deck(self, deck_id: int, name: str) -> None: ...

    def search_decks(self, search: str) -> list[Deck]: ...

    def list_notes(self, filters: FilterSet, page: Pagination) -> list[Note]: ...

    def get_note(self, note_id: int) -> Note: ...

    def update_note(self, note_id: int, fields: list[NoteField]) -> None: ...

    def preview_cleaner(self, note_id: int, template_id: str) -> list[DiffRecord]: ...

    def run_cleaner(
        self,
        settings: Settings,
        deck_id: int,
        dry_run: bool,
        template_id: str,
        progress: Optional[Callable[[Any], None]],
    ) -> tuple[str, DryRunSummary]: ...


def _read_line(stream: TextIO) -> str:
    """Read one newline-terminated line; a missing newline means the input closed."""
    line = stream.readline()
    if not line.endswith("\n"):
        raise InputClosedError()
    return line


def _parse_int64(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f'parsing "{text}": invalid syntax')
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f'parsing "{text}": value out of range')
    return value


def read_int(stream: TextIO) -> int:
    """Read a line holding an integer; an empty line reads as zero."""
    line = _read_line(stream).strip()
    if not line:
        return 0
    return _parse_int64(line)


def _unquote(text: str) -> str:
    out = bytearray()
    pos = 0
    size = len(text)
    while pos < size:
        char = text[pos]
        if char in ('"', "\n"):
            raise ValueError("invalid syntax")
        if char != "\\":
            out += char.encode("utf-8", "surrogatepass")
            pos += 1
            continue
        if pos + 1 >= size:
            raise ValueError("invalid syntax")
        escape = text[pos + 1]
        pos += 2
        if escape in _SIMPLE_ESCAPES:
            out.append(_SIMPLE_ESCAPES[escape])
        elif escape in _HEX_WIDTHS:
            width = _HEX_WIDTHS[escape]
            digits = text[pos : pos + width]
            if len(digits) < width or not set(digits) <= _HEX_DIGITS:
                raise ValueError("invalid syntax")
            pos += width
            code = int(digits, 16)
            if escape == "x":
                out.append(code)
            else:
                if code > 0x10FFFF or 0xD800 <= code <= 0xDFFF:
                    raise ValueError("invalid syntax")
                out += chr(code).encode("utf-8")
        elif escape in _OCT_DIGITS:
            digits = text[pos - 1 : pos + 2]
            if len(digits) < 3 or not set(digits) <= _OCT_DIGITS:
                raise ValueError("invalid syntax")
            code = int(digits, 8)
            if code > 0xFF:
                raise ValueError("invalid syntax")
            out.append(code)
            pos += 2
        else:
            raise ValueError("invalid syntax")
    return out.decode("utf-8", errors="replace")


def decode_escapes(value: str) -> str:
    """Decode backslash escapes such as ``\\n`` and ``\\t`` in one input line."""
    try:
        return _unquote(value.replace('"', '\\"'))
    except ValueError as exc:
        raise InvalidEscapeSequenceError(f"invalid escape sequence: {exc}") from exc


def read_multiline(stream: TextIO) -> str:
    """Read escaped lines up to the terminator line and join them."""
    lines: list[str] = []
    while True:
        line = _read_line(stream).rstrip("\r\n")
        if line == MULTILINE_TERMINATOR:
            return "\n".join(lines)
        lines.append(decode_escapes(line))


def strip_tags(value: str) -> str:
    """Remove every HTML tag from ``value``."""
    return _TAG_PATTERN.sub("", value)


def preview_text(raw: str) -> str:
    """Render raw note fields as one tag-free line, truncated for display."""
    value = " | ".join(strip_tags(part) for part in raw.split(FIELD_SEPARATOR))
    if len(value) > PREVIEW_MAX_CHARS:
        return value[:PREVIEW_MAX_CHARS] + "..."
    return value


@dataclass
class Prompter:
    """Asks yes/no questions on a text stream."""

    reader: TextIO = field(default_factory=lambda: sys.stdin)
    writer: TextIO = field(default_factory=lambda: sys.stdout)

    def confirm(self, prompt: str) -> bool:
        self.writer.write(f"{prompt} [y/N]: ")
        self.writer.flush()
        line = self.reader.readline()
        if not line:
            return False
        return line.strip().lower() in ("y", "yes")


@dataclass
class App:
    """The interactive menu loop."""

    services: _Services
    settings: Settings = field(default_factory=Settings)
    reader: TextIO = field(default_factory=lambda: sys.stdin)
    writer: TextIO = field(default_factory=lambda: sys.stdout)

    def run(self, stop: Optional[threading.Event] = None) -> None:
        """Serve menu choices until the user exits or ``stop`` is set."""
        actions: dict[str, Callable[[], None]] = {
            "1": self._list_decks,
            "2": self._rename_deck,
            "10": self._search_decks,
            "3": self._list_notes,
            "4": self._edit_note,
            "5": self._preview_cleaner,
            "6": lambda: self._run_cleaner(dry_run=True),
            "7": lambda: self._run_cleaner(dry_run=False),
            "8": self._find_note_by_id,
            "9": self._search_notes_all_decks,
        }
        while True:
            if stop is not None and stop.is_set():
                raise CancelledError()
            for line in MENU_LINES:
                self._writeln(line)
            self._write(PROMPT_CURSOR)
            choice = _read_line(self.reader).strip()
            if choice == "0":
                return
            action = actions.get(choice)
            if action is None:
                self._writeln(MENU_UNKNOWN_OPTION)
                continue
            try:
                action()
            except Exception as err:
                if has_error(err, EOFError):
                    raise
                formatter = format_debug_error if self.settings.verbose else format_error
                self._write(f"error: {formatter(err)}\n")

    def _write_decks(self, decks: list[Deck]) -> None:
        for deck in decks:
            self._write(f"id={deck.id} name={deck.name} cards={deck.card_count}\n")

    def _list_decks(self) -> None:
        self._write_decks(self.services.list_decks())

    def _rename_deck(self) -> None:
        self._write("deck id: ")
        deck_id = read_int(self.reader)
        self._write("new name: ")
        name = _read_line(self.reader)
        self.services.rename_deck(deck_id, name.strip())

    def _search_decks(self) -> None:
        self._write("search text: ")
        search = _read_line(self.reader)
        self._write_decks(self.services.search_decks(search))

    def _read_pagination_and_search(
        self, search_prompt: str
    ) -> tuple[Pagination, int, int, str]:
        default_limit = self.settings.default_page_size
        if default_limit <= 0:
            default_limit = 10
        self._write(f"limit (default {default_limit}): ")
        limit = read_int(self.reader)
        if limit <= 0:
            limit = default_limit
        self._write("offset (default 0): ")
        offset = read_int(self.reader)
        self._write("mod from unix (optional): ")
        mod_from = read_int(self.reader)
        self._write("mod to unix (optional): ")
        mod_to = read_int(self.reader)
        self._write(search_prompt)
        search = _read_line(self.reader).strip()
        return Pagination(limit=limit, offset=offset), mod_from, mod_to, search

    def _list_notes(self) -> None:
        self._write("deck id: ")
        deck_id = read_int(self.reader)
        page, mod_from, mod_to, search = self._read_pagination_and_search(
            "search text (optional): "
        )
        filters = FilterSet(
            deck_id=deck_id,
            search_text=search,
            mod_from_unix=mod_from,
            mod_to_unix=mod_to,
        )
        self._write_note_lines(self.services.list_notes(filters, page))

    def _find_note_by_id(self) -> None:
        self._write("note id: ")
        note_id = read_int(self.reader)
        if note_id <= 0:
            raise InvalidNoteIdError()
        notes = self.services.list_notes(FilterSet(note_id=note_id), Pagination(limit=1, offset=0))
        self._write_note_lines(notes)

    def _search_notes_all_decks(self) -> None:
        page, mod_from, mod_to, search = self._read_pagination_and_search(
            "search text (required): "
        )
        if not search.strip():
            raise InvalidNoteListFiltersError()
        filters = FilterSet(
            deck_id=0,
            search_text=search.strip(),
            mod_from_unix=mod_from,
            mod_to_unix=mod_to,
        )
        self._write_note_lines(self.services.list_notes(filters, page))

    def _write_note_lines(self, notes: list[Note]) -> None:
        for note in notes:
            self._write(f"note={note.id} mod={note.mod} preview={preview_text(note.raw_flds)}\n")

    def _edit_note(self) -> None:
        self._write("note id: ")
        note_id = read_int(self.reader)
        note = self.services.get_note(note_id)
        updated: list[NoteField] = []
        for note_field in note.fields:
            self._write(f"{note_field.name} current:\n{note_field.value}\n")
            self._write(
                f"new value for {note_field.name} "
                f"(finish with single line {MULTILINE_TERMINATOR}):\n"
            )
            updated.append(NoteField(name=note_field.name, value=read_multiline(self.reader)))
        self.services.update_note(note_id, updated)

    def _preview_cleaner(self) -> None:
        self._write("note id: ")
        note_id = read_int(self.reader)
        records = self.services.preview_cleaner(note_id, DEFAULT_ACTION_TEMPLATE_ID)
        for record in records:
            self._write(f"field={record.field_name}\n- {record.before}\n+ {record.after}\n")

    def _run_cleaner(self, dry_run: bool) -> None:
        self._write("deck id: ")
        deck_id = read_int(self.reader)
        output, _summary = self.services.run_cleaner(
            self.settings, deck_id, dry_run, DEFAULT_ACTION_TEMPLATE_ID, None
        )
        self._writeln(output)

    def _write(self, text: str) -> None:
        self.writer.write(text)
        self.writer.flush()

    def _writeln(self, text: str) -> None:
        self._write(text + "\n")