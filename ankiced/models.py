"""Plain data records exchanged between the front ends and the services."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from typing import Any, Optional

FIELD_SEPARATOR = "\x1f"
DEFAULT_ACTION_TEMPLATE_ID = ""


@dataclass
class Deck:
    id: int = 0
    name: str = ""
    card_count: int = 0


@dataclass
class NoteField:
    name: str = ""
    value: str = ""


@dataclass
class Note:
    id: int = 0
    model_id: int = 0
    mod: int = 0
    raw_flds: str = ""
    fields: list[NoteField] = field(default_factory=list)


@dataclass
class FilterSet:
    deck_id: int = 0
    note_id: int = 0
    search_text: str = ""
    mod_from_unix: int = 0
    mod_to_unix: int = 0


@dataclass
class Pagination:
    limit: int = 0
    offset: int = 0


@dataclass
class DiffRecord:
    note_id: int = 0
    field_name: str = ""
    before: str = ""
    after: str = ""


@dataclass
class DryRunSummary:
    processed: int = 0
    changed: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass
class CleanerProgress:
    total: int = 0
    processed: int = 0
    changed: int = 0
    skipped: int = 0
    errors: int = 0
    stage: str = ""
    summary: DryRunSummary = field(default_factory=DryRunSummary)


@dataclass
class LogEvent:
    id: int = 0
    timestamp: str = ""
    level: str = ""
    operation: str = ""
    message: str = ""
    details: Optional[dict[str, Any]] = None
    correlation_id: str = ""


@dataclass
class Settings:
    db_path: str = ""
    anki_account: str = ""
    http_addr: str = ""
    backup_keep_last_n: int = 0
    workers: int = 0
    force_apply: bool = False
    verbose: bool = False
    full_diff: bool = False
    report_file: str = ""
    default_page_size: int = 0
    pragma_busy_timeout: int = 0
    pragma_journal_mode: str = ""
    pragma_synchronous: str = ""
    config_path: str = ""


def to_json_dict(obj: Any) -> Any:
    """Convert records, enums and containers into JSON-ready values."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_json_dict(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, enum.Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(key): to_json_dict(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_json_dict(item) for item in obj]
    return obj