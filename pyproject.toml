[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ankiced"
version = "0.1.0"
description = "Terminal menu and local JSON HTTP API for browsing, renaming, editing and cleaning Anki decks and notes over a supplied service layer."
requires-python = ">=3.10"
dependencies = []
keywords = ["anki", "flashcards", "notes", "decks", "cleaner", "wsgi", "cli"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Education",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ankiced"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
