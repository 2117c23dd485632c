"""Identifier normalization shared by every entry point."""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_UNDERSCORES = re.compile(r"_+")

# Database ids are used as file names
MAX_DATABASE_ID_LENGTH = 30


def normalize_name(name: str) -> str:
    """Normalize a user-supplied column, table or tag name.

    Trims surrounding whitespace, lower-cases, and collapses each internal
    whitespace run into a single underscore. Idempotent.
    """
    return _WHITESPACE.sub("_", name.strip().lower())


def sanitize_database_name(name: str) -> str:
    """Reduce a display name to a file-system safe database id prefix."""
    safe = _NON_ALNUM.sub("_", name.lower())
    safe = _UNDERSCORES.sub("_", safe)
    return safe[:MAX_DATABASE_ID_LENGTH]
