"""Small helpers shared by the HTTP API handlers."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import asdict, dataclass
from typing import Any, Optional

from ankiced.models import Pagination, Settings

# Upper bound of a JSON request body.
MAX_REQUEST_BODY_BYTES = 1 << 20

# Upper bound of the page size returned by list endpoints.
MAX_PAGE_LIMIT = 1000

CONFIG_FILE_NAME = "ankiced.config.json"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")


def _parse_int64(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f'parsing "{text}": invalid syntax')
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f'parsing "{text}": value out of range')
    return value


@dataclass
class ConfigSnapshot:
    """The configuration values exposed and saved by the API."""

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

    @classmethod
    def from_settings(cls, settings: Settings) -> "ConfigSnapshot":
        return cls(
            db_path=settings.db_path,
            anki_account=settings.anki_account,
            http_addr=settings.http_addr,
            backup_keep_last_n=settings.backup_keep_last_n,
            workers=settings.workers,
            force_apply=settings.force_apply,
            verbose=settings.verbose,
            full_diff=settings.full_diff,
            report_file=settings.report_file,
            default_page_size=settings.default_page_size,
            pragma_busy_timeout=settings.pragma_busy_timeout,
            pragma_journal_mode=settings.pragma_journal_mode,
            pragma_synchronous=settings.pragma_synchronous,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def clamp_pagination(raw_limit: int, raw_offset: int, default_limit: int) -> Pagination:
    """Normalise query-string paging into a limit in [1, MAX_PAGE_LIMIT] and offset >= 0."""
    limit = raw_limit
    if limit <= 0:
        limit = default_limit
    if limit <= 0:
        limit = 10
    limit = min(limit, MAX_PAGE_LIMIT)
    offset = max(raw_offset, 0)
    return Pagination(limit=limit, offset=offset)


def parse_path_id(path: str, prefix: str) -> int:
    """Parse the numeric id that follows ``prefix`` in a URL path."""
    if not path.startswith(prefix):
        raise ValueError("invalid prefix")
    id_part = path[len(prefix) :]
    if "/" in id_part:
        raise ValueError("invalid nested path")
    return _parse_int64(id_part)


def parse_int_default(value: Optional[str], fallback: int) -> int:
    """Parse an integer query value, returning ``fallback`` when absent or malformed."""
    text = (value or "").strip()
    if not text:
        return fallback
    try:
        return _parse_int64(text)
    except ValueError:
        return fallback


def app_config_path(executable: Optional[str] = None) -> str:
    """Return the path of the config file kept next to the running program."""
    exe = executable if executable is not None else os.path.abspath(sys.argv[0])
    directory = os.path.dirname(exe)
    if not directory.strip() or directory == ".":
        raise OSError("executable directory is not available")
    return os.path.join(directory, CONFIG_FILE_NAME)