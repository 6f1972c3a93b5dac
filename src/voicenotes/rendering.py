"""Markdown rendering, plain-text flattening and export for notes."""

from __future__ import annotations

import re
import time
from html.parser import HTMLParser
from pathlib import Path
from typing import Literal, Optional

from markdown_it import MarkdownIt
from mdit_py_plugins.tasklists import tasklists_plugin

from .common.fs import slugify, timestamped_note_name, unique_path
from .notes import PLACEHOLDER_TITLE, Note


ExportFormat = Literal["default", "txt"]

_md = (
    MarkdownIt("commonmark", {"breaks": True, "html": True})
    .enable(["table", "strikethrough"])
    .use(tasklists_plugin)
)

_DISABLED_ATTR = re.compile(r'\sdisabled(="[^"]*")?')
_CHECKBOX_INPUT = re.compile(r"<input\b[^>]*>")


def render_markdown(text: str) -> str:
    """GFM-style Markdown to HTML with interactive (enabled) task checkboxes."""
    html = _md.render(text)
    return _CHECKBOX_INPUT.sub(lambda m: _DISABLED_ATTR.sub("", m.group(0)), html)


def render_note_body(body: str) -> str:
    """Markup is passed through; anything else is rendered as Markdown."""
    if body.strip().startswith("<"):
        return body
    return render_markdown(body)


class _TextFlattener(HTMLParser):
    BLOCKS = {"p", "h1", "h2", "h3", "h4", "h5", "h6", "li", "pre", "blockquote", "div"}

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: list[str] = []

    def handle_starttag(self, tag: str, attrs) -> None:  # noqa: ANN001
        if tag == "li":
            self.parts.append("* ")
        elif tag == "br":
            self.parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in self.BLOCKS:
            self.parts.append("\n")

    def handle_data(self, data: str) -> None:
        self.parts.append(data)


def html_to_text(html: str) -> str:
    """Plain text: block elements end a line, list items get a '* ' marker."""
    parser = _TextFlattener()
    parser.feed(html)
    parser.close()
    text = "".join(parser.parts)
    return re.sub(r"(\n\s*){3,}", "\n\n", text).strip()


def export_filename_stem(note: Note, now: Optional[float] = None) -> str:
    title = (note.title or "").strip()
    if not title or title == PLACEHOLDER_TITLE:
        title = timestamped_note_name(time.time() if now is None else now)
    return slugify(title) or "note"


def export_note(
    note: Note,
    directory: str | Path,
    fmt: ExportFormat = "default",
    *,
    now: Optional[float] = None,
) -> Optional[Path]:
    """Write the note body to `directory`; returns the path, or None if empty."""
    body = note.polished_note
    if not body or not body.strip():
        return None

    stem = export_filename_stem(note, now)
    if fmt == "txt":
        content = html_to_text(render_note_body(body))
        ext = ".txt"
    else:
        content = body
        ext = ".html" if note.is_markup() else ".md"

    out_dir = Path(directory).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)
    target = unique_path(out_dir / f"{stem}{ext}")
    target.write_text(content, encoding="utf-8")
    return target
