"""Terminal menu and local HTTP API for browsing, editing and cleaning Anki decks and notes."""

__version__ = "0.1.0"