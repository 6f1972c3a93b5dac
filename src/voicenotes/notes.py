"""Notes collection, active note and autosave for Voice Notes.

The active note is always a value copy of its stored entry. Every write path
looks the stored entry up by id and copies fields across; nothing is shared by
reference.
"""

from __future__ import annotations

import json
import os
import re
import secrets
import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from .common.errors import PersistenceCorrupt
from .common.scheduling import Scheduler, Ticker
from .common.storage import DurablePersistence


def _dbg(msg: str) -> None:
    if os.environ.get("VOICENOTES_DEBUG") == "1":
        ts = time.strftime("%H:%M:%S")
        print(f"[notes {ts}] {msg}", flush=True)


STORAGE_KEY = "voice-notes-app-data"
PLACEHOLDER_TITLE = "Note Title"
LIVE_TITLE_FALLBACK = "New Recording"

_CHECKBOX_MARKER = re.compile(r"- \[[ x]\]")


def now_ms() -> int:
    return int(time.time() * 1000)


def new_note_id(ts: int) -> str:
    return f"note_{ts}_{secrets.token_hex(3)}"


@dataclass
class Note:
    id: str
    title: str = PLACEHOLDER_TITLE
    raw_transcription: str = ""
    polished_note: str = ""
    timestamp: int = 0

    def is_markup(self) -> bool:
        """Pre-rendered markup rather than Markdown source."""
        return self.polished_note.strip().startswith("<")

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Note":
        """Build from stored data; wrong-typed fields fall back to defaults."""
        defaults = asdict(cls(id=""))
        data: dict[str, Any] = {}
        for k, v in defaults.items():
            value = raw.get(k)
            if type(value) is type(v):  # noqa: E721 - strict type match
                data[k] = value
            else:
                data[k] = v
        return cls(**data)


def parse_collection(blob: Optional[str]) -> list[Note]:
    """Decode the stored collection. Raises PersistenceCorrupt for garbage."""
    if blob is None:
        return []
    try:
        raw = json.loads(blob)
    except ValueError as e:
        raise PersistenceCorrupt(f"notes blob is not JSON: {e}") from e
    if not isinstance(raw, list):
        raise PersistenceCorrupt("notes blob is not a list")
    notes: list[Note] = []
    seen: set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            continue
        note_id = item.get("id")
        if not isinstance(note_id, str) or not note_id or note_id in seen:
            continue
        seen.add(note_id)
        notes.append(Note.from_dict(item))
    return notes


def live_title(note: Optional[Note]) -> str:
    """Heading shown while recording; untitled notes read as a new recording."""
    if note is None:
        return LIVE_TITLE_FALLBACK
    title = (note.title or "").strip()
    if not title or title == PLACEHOLDER_TITLE:
        return LIVE_TITLE_FALLBACK
    return title


def toggle_checkbox_marker(markdown: str, index: int, checked: bool) -> str:
    """Rewrite the `index`-th ``- [ ]`` / ``- [x]`` marker; others untouched."""
    count = -1

    def repl(m: re.Match[str]) -> str:
        nonlocal count
        count += 1
        if count == index:
            return "- [x]" if checked else "- [ ]"
        return m.group(0)

    return _CHECKBOX_MARKER.sub(repl, markdown)


def checkbox_items(markdown: str) -> list[tuple[bool, str]]:
    """(checked, label) for each task marker, in source order."""
    items: list[tuple[bool, str]] = []
    for line in markdown.splitlines():
        for m in _CHECKBOX_MARKER.finditer(line):
            label = line[m.end():].strip()
            items.append((m.group(0) == "- [x]", label))
    return items


# ---------- Editing surface model ----------
class FieldState(Enum):
    EMPTY = "empty"  # focused, nothing typed yet
    PLACEHOLDER = "placeholder"  # showing hint text
    CONTENT = "content"


@dataclass
class EditorField:
    empty_value: str = ""
    strip: bool = False
    state: FieldState = FieldState.PLACEHOLDER
    text: str = ""

    def set(self, text: str) -> None:
        if text and text.strip() and text.strip() != self.empty_value:
            self.state = FieldState.CONTENT
            self.text = text
        else:
            self.clear()

    def clear(self) -> None:
        self.state = FieldState.PLACEHOLDER
        self.text = ""

    def edit(self, text: str) -> None:
        """Live typing while focused; empty input stays EMPTY until blur."""
        self.text = text
        self.state = FieldState.CONTENT if text.strip() else FieldState.EMPTY

    def focus(self) -> None:
        if self.state is FieldState.PLACEHOLDER:
            self.state = FieldState.EMPTY

    def blur(self) -> None:
        if self.state is not FieldState.CONTENT or not self.text.strip():
            self.clear()

    @property
    def is_placeholder(self) -> bool:
        return self.state is not FieldState.CONTENT

    def logical_value(self) -> str:
        if self.state is not FieldState.CONTENT:
            return self.empty_value
        value = self.text.strip() if self.strip else self.text
        return value or self.empty_value


@dataclass
class EditorState:
    title: EditorField = field(
        default_factory=lambda: EditorField(empty_value=PLACEHOLDER_TITLE, strip=True)
    )
    raw: EditorField = field(default_factory=EditorField)
    polished: EditorField = field(default_factory=EditorField)

    def show(self, note: Note) -> None:
        self.title.set(note.title)
        self.raw.set(note.raw_transcription)
        self.polished.set(note.polished_note)

    def values(self) -> tuple[str, str, str]:
        return (
            self.title.logical_value(),
            self.raw.logical_value(),
            self.polished.logical_value(),
        )


class FieldView(Protocol):
    def read(self) -> str: ...

    def show(self, text: str, placeholder: bool) -> None: ...

    def has_focus(self) -> bool: ...


class EditorBinding:
    """Keep the editor widgets and the active note's fields in step.

    A widget's typing and commit-on-blur only reach the note that was active
    when the widget gained focus. Switching the active note re-binds every
    widget, focused or not.
    """

    def __init__(
        self,
        store: "NoteStore",
        views: dict[str, FieldView],
        hints: dict[str, str],
    ) -> None:
        self._store = store
        self._views = views
        self._hints = hints
        self._owner: dict[str, str] = {}
        self._shown_id: Optional[str] = None

    def _field(self, name: str) -> EditorField:
        return getattr(self._store.editor, name)

    def _current_id(self) -> Optional[str]:
        cur = self._store.current
        return cur.id if cur is not None else None

    def owns(self, name: str) -> bool:
        owner = self._owner.get(name)
        return owner is not None and owner == self._current_id()

    def focus(self, name: str) -> None:
        note_id = self._current_id()
        if note_id is None:
            return
        self._owner[name] = note_id
        fld = self._field(name)
        if fld.is_placeholder:
            fld.focus()
            self._views[name].show("", False)

    def edit(self, name: str) -> bool:
        """Copy live widget text into the field; False if the widget is stale."""
        if not self.owns(name):
            return False
        self._field(name).edit(self._views[name].read())
        return True

    def blur(self, name: str) -> bool:
        owned = self.owns(name)
        self._owner.pop(name, None)
        if not owned:
            _dbg(f"blur of {name} ignored; bound to another note")
            return False
        if name == "title":
            self._store.rename(self._views[name].read())
        self._field(name).blur()
        self.refresh(name)
        return True

    def refresh(self, name: str) -> None:
        fld = self._field(name)
        if fld.is_placeholder:
            self._views[name].show(self._hints[name], True)
        else:
            self._views[name].show(fld.text, False)

    def sync(self) -> bool:
        """Redraw views from the editor. Returns True if the active note changed."""
        current = self._current_id()
        switched = current != self._shown_id
        self._shown_id = current
        for name, view in self._views.items():
            if not view.has_focus():
                self.refresh(name)
                continue
            if not switched:
                continue
            # Focused widget now edits the newly active note
            self._owner.pop(name, None)
            if current is None:
                continue
            self._owner[name] = current
            fld = self._field(name)
            if fld.is_placeholder:
                fld.focus()
            view.show(fld.text, False)
        return switched


# ---------- Store ----------
class NoteStore:
    """Ordered notes collection mirrored into a durable key-value store."""

    def __init__(
        self,
        persistence: DurablePersistence,
        *,
        clock: Callable[[], int] = now_ms,
        on_change: Optional[Callable[[], None]] = None,
        on_saved: Optional[Callable[[], None]] = None,
    ) -> None:
        self._persistence = persistence
        self._clock = clock
        self.on_change = on_change
        self.on_saved = on_saved
        self.notes: list[Note] = []
        self.current: Optional[Note] = None
        self.editor = EditorState()
        self._autosave: Optional[Ticker] = None

    # ---- Collection ----
    def load(self) -> Note:
        """Read the stored collection and activate the most recent note."""
        try:
            self.notes = parse_collection(self._persistence.get(STORAGE_KEY))
        except PersistenceCorrupt as e:
            print(f"Could not parse saved notes: {e}", flush=True)
            self.notes = []
        self._sort()
        if self.notes:
            return self.load_note(self.notes[0].id)
        return self.create_note()

    def save(self) -> None:
        """Re-sort and persist the whole collection in one write."""
        self._sort()
        blob = json.dumps([asdict(n) for n in self.notes])
        self._persistence.set(STORAGE_KEY, blob)
        if self.on_change is not None:
            self.on_change()

    def find(self, note_id: str) -> Optional[Note]:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None

    def sidebar_entries(self) -> list[tuple[str, str, str, bool]]:
        current_id = self.current.id if self.current else None
        entries = []
        for note in self.notes:
            when = time.strftime(
                "%b %d, %Y, %H:%M", time.localtime(note.timestamp / 1000.0)
            )
            entries.append(
                (note.id, note.title or PLACEHOLDER_TITLE, when, note.id == current_id)
            )
        return entries

    # ---- Active note ----
    def create_note(self) -> Note:
        ts = self._clock()
        note = Note(id=new_note_id(ts), timestamp=ts)
        while self.find(note.id) is not None:
            note.id = new_note_id(ts)
        self.notes.insert(0, note)
        self._activate(note)
        _dbg(f"created {note.id}")
        self.save()
        return self.current  # type: ignore[return-value]

    def load_note(self, note_id: str) -> Note:
        stored = self.find(note_id)
        if stored is None:
            _dbg(f"note {note_id} not found")
            if not self.notes:
                return self.create_note()
            stored = self.notes[0]
        self._activate(stored)
        if self.on_change is not None:
            self.on_change()
        return self.current  # type: ignore[return-value]

    def delete_note(self, note_id: str) -> None:
        self.notes = [n for n in self.notes if n.id != note_id]
        self.save()
        if self.current is not None and self.current.id == note_id:
            if self.notes:
                self.load_note(self.notes[0].id)
            else:
                self.create_note()

    def rename(self, title: str) -> bool:
        """Explicit title edit; persisted at once when it changed."""
        if self.current is None:
            return False
        self.editor.title.set(title)
        new_title = self.editor.title.logical_value()
        if new_title == self.current.title:
            return False
        self.current.title = new_title
        stored = self.find(self.current.id)
        if stored is not None:
            stored.title = new_title
            self._stamp(stored)
            self.save()
        return True

    # ---- Autosave ----
    def autosave(self) -> bool:
        """Copy editor changes into the stored entry. Returns True if written."""
        cur = self.current
        if cur is None:
            return False
        title, raw, polished = self.editor.values()
        if (title, raw, polished) == (cur.title, cur.raw_transcription, cur.polished_note):
            return False

        cur.title = title
        cur.raw_transcription = raw
        cur.polished_note = polished
        stored = self.find(cur.id)
        if stored is None:
            _dbg(f"autosave abandoned; {cur.id} no longer stored")
            return False
        stored.title = title
        stored.raw_transcription = raw
        stored.polished_note = polished
        cur.timestamp = self._stamp(stored)
        self.save()
        if self.on_saved is not None:
            self.on_saved()
        return True

    def start_autosave(self, scheduler: Scheduler, interval_ms: int = 2_000) -> None:
        self.stop_autosave()
        self._autosave = Ticker(scheduler, interval_ms, self.autosave)
        self._autosave.start()

    def stop_autosave(self) -> None:
        if self._autosave is not None:
            self._autosave.stop()
            self._autosave = None

    def toggle_checkbox(self, index: int, checked: bool) -> bool:
        """Flip the `index`-th task marker of the body and save immediately."""
        cur = self.current
        if cur is None or index < 0:
            return False
        source = self.editor.polished.logical_value()
        if not source or source.strip().startswith("<"):
            return False
        updated = toggle_checkbox_marker(source, index, checked)
        if updated == source:
            return False
        self.editor.polished.set(updated)
        return self.autosave()

    # ---- Pipeline results ----
    def apply_transcription(self, note_id: str, text: str) -> bool:
        """Store a raw transcript for `note_id`; dropped if the note is gone."""
        if self.current is not None and self.current.id == note_id:
            self.current.raw_transcription = text
            self.editor.raw.set(text)
        stored = self.find(note_id)
        if stored is None:
            return False
        stored.raw_transcription = text
        self._stamp(stored)
        self.save()
        return True

    def apply_polished(self, note_id: str, polished: str, title: Optional[str]) -> bool:
        """Store polished body and derived title (placeholder when None)."""
        if self.current is not None and self.current.id == note_id:
            if title:
                self.current.title = title
                self.editor.title.set(title)
            elif self.editor.title.is_placeholder:
                self.current.title = PLACEHOLDER_TITLE
            self.current.polished_note = polished
            self.editor.polished.set(polished)
            new_title = self.current.title
        else:
            new_title = title
        stored = self.find(note_id)
        if stored is None:
            return False
        stored.polished_note = polished
        if new_title:
            stored.title = new_title
        self._stamp(stored)
        self.save()
        return True

    def reset_field(self, note_id: str, which: str) -> None:
        """Show the placeholder again for a field whose stage failed."""
        if self.current is None or self.current.id != note_id:
            return
        if which == "raw":
            self.editor.raw.clear()
        elif which == "polished":
            self.editor.polished.clear()

    # ---- Internals ----
    def _activate(self, stored: Note) -> None:
        self.current = replace(stored)
        self.editor.show(self.current)

    def _stamp(self, note: Note) -> int:
        note.timestamp = max(self._clock(), note.timestamp)
        return note.timestamp

    def _sort(self) -> None:
        self.notes.sort(key=lambda n: n.timestamp, reverse=True)
