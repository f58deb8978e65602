import os

import pytest

from ankiced.httpapi.helpers import (
    MAX_PAGE_LIMIT,
    ConfigSnapshot,
    app_config_path,
    clamp_pagination,
    parse_int_default,
    parse_path_id,
)
from ankiced.models import Pagination, Settings


def test_config_snapshot_copies_settings():
    settings = Settings(
        db_path="/tmp/collection.anki2",
        http_addr="127.0.0.1:9999",
        workers=3,
        verbose=True,
        pragma_journal_mode="wal",
        config_path="ignored.yaml",
    )
    snapshot = ConfigSnapshot.from_settings(settings)
    assert snapshot.db_path == settings.db_path
    assert snapshot.http_addr == settings.http_addr
    assert snapshot.workers == settings.workers
    assert snapshot.verbose is True
    assert snapshot.pragma_journal_mode == "wal"


def test_config_snapshot_dict_keys_follow_wire_names():
    data = ConfigSnapshot.from_settings(Settings(db_path="x")).to_dict()
    assert list(data) == [
        "db_path",
        "anki_account",
        "http_addr",
        "backup_keep_last_n",
        "workers",
        "force_apply",
        "verbose",
        "full_diff",
        "report_file",
        "default_page_size",
        "pragma_busy_timeout",
        "pragma_journal_mode",
        "pragma_synchronous",
    ]
    assert data["db_path"] == "x"
    assert ConfigSnapshot(**data) == ConfigSnapshot.from_settings(Settings(db_path="x"))


def test_clamp_pagination_keeps_valid_values():
    assert clamp_pagination(5, 7, 20) == Pagination(limit=5, offset=7)


def test_clamp_pagination_uses_default_limit():
    assert clamp_pagination(0, 0, 20).limit == 20
    assert clamp_pagination(-3, 0, 20).limit == 20


def test_clamp_pagination_falls_back_to_ten():
    assert clamp_pagination(0, 0, 0).limit == 10


def test_clamp_pagination_caps_limit_and_offset():
    page = clamp_pagination(MAX_PAGE_LIMIT + 50, -4, 10)
    assert page.limit == MAX_PAGE_LIMIT
    assert page.offset == 0
    assert MAX_PAGE_LIMIT == 1000


def test_parse_path_id():
    assert parse_path_id("/api/v1/decks/42", "/api/v1/decks/") == 42


@pytest.mark.parametrize(
    ("path", "message"),
    [
        ("/api/v1/notes/1", "invalid prefix"),
        ("/api/v1/decks/1/2", "invalid nested path"),
    ],
)
def test_parse_path_id_structure_errors(path, message):
    with pytest.raises(ValueError, match=message):
        parse_path_id(path, "/api/v1/decks/")


@pytest.mark.parametrize("suffix", ["", "abc", "1.5", "99999999999999999999"])
def test_parse_path_id_rejects_non_integers(suffix):
    with pytest.raises(ValueError):
        parse_path_id("/api/v1/decks/" + suffix, "/api/v1/decks/")


def test_parse_int_default():
    assert parse_int_default(" 12 ", 5) == 12
    assert parse_int_default("-3", 5) == -3
    assert parse_int_default("", 5) == 5
    assert parse_int_default(None, 5) == 5
    assert parse_int_default("nope", 5) == 5


def test_app_config_path_next_to_executable(tmp_path):
    exe = str(tmp_path / "ankiced-web-test")
    assert app_config_path(exe) == os.path.join(str(tmp_path), "ankiced.config.json")


def test_app_config_path_requires_directory():
    with pytest.raises(OSError):
        app_config_path("ankiced-web")