# ankiced

`ankiced` provides two front ends for working with the decks and notes of an
Anki collection, sharing one set of error types and data records:

* an interactive terminal menu, `ankiced.cli.App`;
* a local JSON HTTP API with a small web page, built as a WSGI application by
  `ankiced.httpapi.server.make_handler` and served by
  `ankiced.httpapi.server.Server`.

## What the package does not do

`ankiced` does not read or write Anki collection files itself, and it does not
contain the note cleaner. Both front ends work over a *services* object that
you supply. It must provide:

* `list_decks()`, `search_decks(search)`, `rename_deck(deck_id, name)`
* `list_notes(filters, page)`, `get_note(note_id)`,
  `update_note(note_id, fields)`
* `preview_cleaner(note_id, template_id)` and
  `run_cleaner(settings, deck_id, dry_run, template_id, progress)`, which
  returns `(output, summary)`

The HTTP API also calls `count_notes(filters)`. If the services object has a
`cfg_provider` attribute, it is set to a function that returns the live
settings. If it has a `tx` object with a `reconnect(path)` method, that
method is used when the database path changes.

The records these methods exchange (`Deck`, `Note`, `NoteField`, `FilterSet`,
`Pagination`, `DiffRecord`, `DryRunSummary`, `CleanerProgress`, `Settings`)
are in `ankiced.models`. Failures should be raised as the exceptions in
`ankiced.errors`, for example `DeckNotFoundError` or `EmptyDeckNameError`.

The package installs no command. You start the menu or the server from your
own code.

## Terminal menu

```python
from ankiced.cli import App
from ankiced.models import Settings

App(services=my_services, settings=Settings(default_page_size=25)).run()
```

`App.run(stop=None)` prints this menu and reads one choice per line from
`reader` (standard input by default):

```
== Ankiced ==
1) List decks
2) Rename deck
10) Search decks by text
3) List notes
4) Edit note
5) Preview cleaner
6) Dry run cleaner
7) Apply cleaner
8) Find note by id
9) Search notes (all decks)
0) Exit
>
```

* Choosing `0` returns.
* If the input closes, `InputClosedError` (an `EOFError`) is raised.
* If `stop` is set, `concurrent.futures.CancelledError` is raised before the
  next menu.
* Any other error is printed as `error: <message>` and the menu continues.
  With `Settings.verbose` on, the message also shows the chain of causes.

Numeric prompts treat an empty line as `0`. When listing notes, a limit of
`0` or less falls back to `default_page_size`, or to 10 if that is not set.

When you edit a note, each field takes multiline input. A line holding only
`.end` finishes the field. Escape sequences such as `\n`, `\t`, `\x41` and
`\u00e9` are decoded by `decode_escapes`. An invalid escape is reported as
`error: invalid escape sequence in multiline input`.

`preview_text` strips HTML tags, joins the fields with ` | ` and cuts the
text at 80 characters, adding `...`:

```python
from ankiced.cli import preview_text

assert preview_text("<b>hello</b>\x1f<div>world</div>") == "hello | world"
```

`Prompter(reader, writer).confirm(prompt)` asks a `[y/N]` question and
returns `True` only for `y` or `yes`.

## HTTP API

```python
import threading
from ankiced.httpapi.server import Server
from ankiced.models import Settings

stop = threading.Event()
Server(services=my_services, settings=Settings(http_addr="127.0.0.1:8080")).run(stop)
```

`Server.run` listens on `settings.http_addr`, or on `127.0.0.1:8080` if that
is empty, and serves until `stop` is set or the process is interrupted.
`make_handler(services, settings, logger, on_exit, executable)` returns the
`ApiHandler` WSGI application, so you can mount it in any WSGI server.
`ApiHandler.dispatch(Request(...))` routes a request without a server.

| Method | Path | Purpose |
| --- | --- | --- |
| GET | `/` | web page showing the database path and decks |
| GET | `/healthz` | `{"status": "ok"}` |
| GET | `/api/v1/decks?limit=&offset=` | list decks; without a limit, all decks from the offset |
| GET | `/api/v1/decks/search?q=` | search decks |
| PATCH | `/api/v1/decks/{id}` | rename a deck: `{"name": ...}` |
| GET | `/api/v1/notes?deck_id=&note_id=&search_text=&mod_from=&mod_to=&limit=&offset=` | list notes with `total` |
| GET / PATCH | `/api/v1/notes/{id}` | read a note, or update it: `{"fields": [{"name":..., "value":...}]}` |
| POST | `/api/v1/cleaner/preview` | `{"note_id":..., "template_id":...}` |
| POST | `/api/v1/cleaner/dry-run`, `/api/v1/cleaner/apply` | start a background run; apply needs `"confirm": true`; replies 202 with `operation_id` and `status_url` |
| GET | `/api/v1/operations/{id}` | status, progress, summary and output of a run |
| GET | `/api/v1/logs?since_id=` | recent log events (the last 1000 are kept) |
| GET | `/api/v1/logs/stream` | server-sent log events; `Last-Event-ID` or `since_id` replays missed ones |
| GET | `/api/v1/config` | current configuration |
| POST | `/api/v1/config/save` | optionally switch to `{"db_path": ...}`, then write `ankiced.config.json` next to the program |
| POST | `/api/v1/app/exit` | run the `on_exit` callback; 501 if none is set |

Request bodies are limited to 1 MiB, and unknown JSON members are rejected.
Page sizes are limited to the range 1 to 1000, and negative offsets become 0:

```python
from ankiced.httpapi.helpers import clamp_pagination

page = clamp_pagination(5000, -3, 10)
assert (page.limit, page.offset) == (1000, 0)
```

Every error response has the same members: `message`, `recommended_action`,
`code` (for example `DECK_NOT_FOUND`, `INVALID_JSON` or `METHOD_NOT_ALLOWED`),
`details` and `correlation_id`. The mapping is defined in
`ankiced.httpapi.errors`.

## Error messages

`ankiced.presentation.format_error` turns the package's exceptions into short
messages for users, such as `deck name cannot be empty`. If it does not
recognise an exception, it returns the exception's own text.
`format_debug_error` appends ` | cause: ` followed by the chain of causes.

## Tests

```
pip install -e ".[test]"
pytest
```