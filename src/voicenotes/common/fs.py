"""Filesystem helpers for Voice Notes.

Utilities for generating non-clobbering file paths and export filenames,
e.g. setup-guide.md -> setup-guide (1).md
"""

from __future__ import annotations

import os
import re
import tempfile
import time
from pathlib import Path


def unique_path(path: str | Path) -> Path:
    """Return a unique path by appending " (n)" before the suffix if needed.

    Examples:
    - "/tmp/note.md" -> if exists, returns "/tmp/note (1).md", then (2), etc.
    - "/tmp/note" (no suffix) -> "/tmp/note (1)"
    """
    p = Path(path)
    if not p.exists():
        return p

    stem = p.stem
    suffix = p.suffix  # includes the leading dot, or empty if none
    parent = p.parent

    n = 1
    while True:
        candidate = parent / f"{stem} ({n}){suffix}"
        if not candidate.exists():
            return candidate
        n += 1


def slugify(title: str) -> str:
    """Lowercase, dash-separated, word characters only.

    "Setup Guide: v2" -> "setup-guide-v2"
    """
    s = title.lower()
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"[^\w-]+", "", s)
    s = re.sub(r"--+", "-", s)
    return s.strip("-")


def timestamped_note_name(ts: float) -> str:
    """Fallback export stem for untitled notes: note-YYYY-MM-DD-HHMM (UTC)."""
    return "note-" + time.strftime("%Y-%m-%d-%H%M", time.gmtime(ts))


def atomic_write_text(path: str | Path, text: str) -> None:
    """Write `text` to a sibling temp file, then replace `path` in one step."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, p)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
