"""Path helpers shared by the parsers.

Pure functions — no filesystem access.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

# A bare relative path with an extension: ``src/App.tsx``, ``index.html``,
# ``.env.local``.  No whitespace, no URL scheme.
_PATH_LIKE_RE = re.compile(r"^(?:\./)?[\w@.\-]+(?:/[\w@.\-\[\]]+)*\.[A-Za-z0-9]+$")


def normalise_path(path: str) -> str:
    r"""Normalise a file path: backslash → forward slash, strip ``./``.

    >>> normalise_path(r".\\src\\App.tsx")
    'src/App.tsx'
    """
    norm = path.strip().replace("\\", "/")
    while norm.startswith("./"):
        norm = norm[2:]
    return norm


def is_ignored_path(path: str, ignored: Iterable[str]) -> bool:
    """True when any segment of *path* is an ignored name (``node_modules``...)."""
    segments = normalise_path(path).split("/")
    ignored_set = set(ignored)
    return any(seg in ignored_set for seg in segments)


def looks_like_path(text: str) -> bool:
    """True when *text* is a plausible relative file path."""
    candidate = text.strip()
    if not candidate or len(candidate) > 260:
        return False
    if "://" in candidate:
        return False
    return bool(_PATH_LIKE_RE.match(candidate))


def is_path_key(key: str) -> bool:
    """JSON envelope keys that name files contain a ``.`` or a ``/``."""
    return "." in key or "/" in key
