"""Tkinter GUI for Voice Notes.

Features:
- Record/Stop toggle with live timer and waveform
- Raw transcript and polished note (Markdown source) side by side
- Checklist panel for the note's task items
- Notes list with new/delete, autosave and export
"""

from __future__ import annotations

import os
import time
import tkinter as tk
from tkinter import ttk, messagebox
from typing import Optional, Sequence

from .capture import AudioCaptureDevice
from .common.encoding import human_readable_bytes
from .common.errors import AcquisitionError, NoAudioCaptured
from .common.scheduling import TkScheduler
from .common.settings import (
    Settings,
    get_notes_path,
    load_settings,
    resolve_api_key,
    save_settings,
)
from .common.storage import JsonFileStore
from .notes import (
    PLACEHOLDER_TITLE,
    EditorBinding,
    NoteStore,
    checkbox_items,
    live_title,
)
from .pipeline import PipelineResult, TranscriptionPipeline
from .rendering import ExportFormat, export_note
from .session import CaptureConstraints, RecordingSession, SessionState
from .speech import GeminiSpeechService
from .visualizer import Bar, LevelVisualizer


RAW_HINT = "Raw transcription will appear here..."
POLISHED_HINT = "Your polished notes will appear here..."
HINT_FG = "#8e8e93"
TEXT_FG = "#1c1c1e"


def _dbg(msg: str) -> None:
    if os.environ.get("VOICENOTES_DEBUG") == "1":
        ts = time.strftime("%H:%M:%S")
        print(f"[gui {ts}] {msg}", flush=True)


class TkCanvasSurface:
    """DrawSurface over a tk.Canvas; bar geometry arrives in logical units."""

    def __init__(self, canvas: tk.Canvas, color: str = "#ff3b30") -> None:
        self._canvas = canvas
        self._color = color
        self.pixel_size: tuple[int, int] = (0, 0)

    def pixel_ratio(self) -> float:
        try:
            return max(1.0, float(self._canvas.winfo_fpixels("1i")) / 96.0)
        except tk.TclError:
            return 1.0

    def logical_size(self) -> tuple[float, float]:
        ratio = self.pixel_ratio()
        return (
            self._canvas.winfo_width() / ratio,
            self._canvas.winfo_height() / ratio,
        )

    def set_pixel_size(self, width: int, height: int) -> None:
        self.pixel_size = (width, height)

    def clear(self) -> None:
        self._canvas.delete("bars")

    def draw_bars(self, bars: Sequence[Bar]) -> None:
        ratio = self.pixel_ratio()
        for b in bars:
            self._canvas.create_rectangle(
                b.x * ratio,
                b.y * ratio,
                (b.x + b.width) * ratio,
                (b.y + b.height) * ratio,
                fill=self._color,
                outline="",
                tags="bars",
            )


def _has_focus(widget: tk.Widget) -> bool:
    try:
        return widget.focus_get() is widget
    except (KeyError, tk.TclError):
        return False


class TkTextView:
    """FieldView over a tk.Text; hint text is drawn greyed."""

    def __init__(self, widget: tk.Text) -> None:
        self._widget = widget

    def read(self) -> str:
        return self._widget.get("1.0", "end-1c")

    def show(self, text: str, placeholder: bool) -> None:
        if self.read() != text:
            self._widget.delete("1.0", tk.END)
            self._widget.insert("1.0", text)
        self._widget.configure(foreground=HINT_FG if placeholder else TEXT_FG)

    def has_focus(self) -> bool:
        return _has_focus(self._widget)


class TkEntryView:
    def __init__(self, entry: tk.Entry, var: tk.StringVar) -> None:
        self._entry = entry
        self._var = var

    def read(self) -> str:
        return self._var.get()

    def show(self, text: str, placeholder: bool) -> None:
        if self._var.get() != text:
            self._var.set(text)
        self._entry.configure(foreground=HINT_FG if placeholder else TEXT_FG)

    def has_focus(self) -> bool:
        return _has_focus(self._entry)


class VoiceNotesApp(tk.Tk):
    def __init__(self) -> None:
        super().__init__()
        self.title("Voice Notes")
        self.resizable(True, True)

        self._settings: Settings = load_settings()
        self._scheduler = TkScheduler(self)
        self._recording_note_id: Optional[str] = None
        self._saved_job: Optional[str] = None

        self.store = NoteStore(
            JsonFileStore(get_notes_path(self._settings)),
            on_change=self._on_store_change,
            on_saved=self._on_saved,
        )

        self._build_ui(self)

        self.device = AudioCaptureDevice(capture_format=self._settings.capture_format)
        self.visualizer = LevelVisualizer(
            TkCanvasSurface(self.wave_canvas),
            self._scheduler,
            frame_interval_ms=self._settings.frame_interval_ms,
        )
        self.session = RecordingSession(
            self.device,
            self._scheduler,
            visualizer=self.visualizer,
            constraints=CaptureConstraints(sample_rate=self._settings.sample_rate),
            timer_interval_ms=self._settings.timer_interval_ms,
            on_tick=self.timer_var.set,
            on_state=self._on_session_state,
        )
        api_key = resolve_api_key(self._settings)
        self.pipeline = TranscriptionPipeline(
            GeminiSpeechService(api_key, debug=_dbg),
            self.store,
            model=self._settings.model_name,
            dispatch=self._scheduler.dispatch,
            on_status=self.status_var.set,
            on_finished=self._on_pipeline_finished,
            debug=_dbg,
        )

        self.store.load()
        self.store.start_autosave(self._scheduler, self._settings.autosave_interval_ms)
        self._restore_window_geometry()

        if not api_key:
            self.status_var.set(
                "No Gemini API key found. Set GEMINI_API_KEY to enable transcription."
            )
        self.protocol("WM_DELETE_WINDOW", self._on_close)

    # ---------- UI construction ----------
    def _build_ui(self, parent: tk.Misc) -> None:
        pad = {"padx": 8, "pady": 6}

        style = ttk.Style(self)
        style.configure("Record.TButton", font=("Helvetica", 14), padding=8)

        paned = ttk.Panedwindow(parent, orient="horizontal")
        paned.pack(fill="both", expand=True)

        # Sidebar
        sidebar = ttk.Frame(paned)
        sidebar.columnconfigure(0, weight=1)
        sidebar.rowconfigure(1, weight=1)
        ttk.Label(sidebar, text="Notes").grid(row=0, column=0, sticky="w", **pad)
        self.notes_list = tk.Listbox(sidebar, exportselection=False, width=28)
        self.notes_list.grid(row=1, column=0, sticky="nsew", padx=8)
        self.notes_list.bind("<<ListboxSelect>>", lambda _e: self._on_note_selected())
        self._list_ids: list[str] = []
        side_btns = ttk.Frame(sidebar)
        side_btns.grid(row=2, column=0, sticky="we", **pad)
        ttk.Button(side_btns, text="New Note", command=self._new_note).pack(side="left")
        ttk.Button(side_btns, text="Delete", command=self._delete_note).pack(
            side="left", padx=(6, 0)
        )
        paned.add(sidebar, weight=1)

        # Editor
        main = ttk.Frame(paned)
        main.columnconfigure(0, weight=1)
        main.columnconfigure(1, weight=1)
        main.rowconfigure(3, weight=1)
        paned.add(main, weight=3)

        title_row = ttk.Frame(main)
        title_row.grid(row=0, column=0, columnspan=2, sticky="we", **pad)
        title_row.columnconfigure(0, weight=1)
        self.title_var = tk.StringVar(value="")
        self.title_entry = tk.Entry(
            title_row, textvariable=self.title_var, font=("Helvetica", 18)
        )
        self.title_entry.grid(row=0, column=0, sticky="we")
        self.title_entry.bind("<Return>", lambda _e: self._commit_title())
        self.save_var = tk.StringVar(value="")
        ttk.Label(title_row, textvariable=self.save_var, width=10).grid(
            row=0, column=1, sticky="e", padx=(8, 0)
        )

        ttk.Label(main, text="Raw Transcription").grid(
            row=2, column=0, sticky="w", padx=8
        )
        ttk.Label(main, text="Polished Note").grid(row=2, column=1, sticky="w", padx=8)
        self.raw_text = tk.Text(main, wrap="word", height=12, undo=True)
        self.raw_text.grid(row=3, column=0, sticky="nsew", padx=(8, 4))
        self.polished_text = tk.Text(main, wrap="word", height=12, undo=True)
        self.polished_text.grid(row=3, column=1, sticky="nsew", padx=(4, 8))
        self.binding = EditorBinding(
            self.store,
            {
                "title": TkEntryView(self.title_entry, self.title_var),
                "raw": TkTextView(self.raw_text),
                "polished": TkTextView(self.polished_text),
            },
            {"title": PLACEHOLDER_TITLE, "raw": RAW_HINT, "polished": POLISHED_HINT},
        )
        for name, widget in (
            ("title", self.title_entry),
            ("raw", self.raw_text),
            ("polished", self.polished_text),
        ):
            self._bind_field(widget, name)

        self.checklist_frame = ttk.LabelFrame(main, text="Checklist")
        self.checklist_frame.grid(row=4, column=0, columnspan=2, sticky="we", **pad)
        self._checklist_vars: list[tk.BooleanVar] = []

        export_row = ttk.Frame(main)
        export_row.grid(row=5, column=0, columnspan=2, sticky="we", padx=8)
        ttk.Button(
            export_row, text="Export", command=lambda: self._export("default")
        ).pack(side="left")
        ttk.Button(
            export_row, text="Export as Text", command=lambda: self._export("txt")
        ).pack(side="left", padx=(6, 0))

        # Recording controls
        rec_frame = ttk.LabelFrame(main, text="Recording")
        rec_frame.grid(row=6, column=0, columnspan=2, sticky="we", **pad)
        rec_frame.columnconfigure(1, weight=1)
        self.btn_record = ttk.Button(
            rec_frame,
            text="Start Recording",
            style="Record.TButton",
            command=self._toggle_recording,
        )
        self.btn_record.grid(row=0, column=0, rowspan=2, sticky="w", padx=8, pady=8)
        self.live_title_var = tk.StringVar(value="")
        ttk.Label(
            rec_frame, textvariable=self.live_title_var, font=("Helvetica", 12, "bold")
        ).grid(row=0, column=1, sticky="w")
        self.timer_var = tk.StringVar(value="00:00.00")
        ttk.Label(rec_frame, textvariable=self.timer_var, font=("Menlo", 14)).grid(
            row=0, column=2, sticky="e", padx=8
        )
        self.wave_canvas = tk.Canvas(
            rec_frame, height=60, background="#1c1c1e", highlightthickness=0
        )
        self.wave_canvas.grid(row=1, column=1, columnspan=2, sticky="we", padx=8, pady=(0, 8))
        self.wave_canvas.bind("<Configure>", lambda _e: self._on_canvas_resize())

        self.status_var = tk.StringVar(value="Ready to record")
        ttk.Label(main, textvariable=self.status_var).grid(
            row=7, column=0, columnspan=2, sticky="w", padx=8, pady=(0, 8)
        )

    def _bind_field(self, widget: tk.Widget, name: str) -> None:
        widget.bind("<FocusIn>", lambda _e: self.binding.focus(name))
        widget.bind("<KeyRelease>", lambda _e: self._on_field_edit(name))
        widget.bind("<FocusOut>", lambda _e: self._on_field_blur(name))

    # ---------- Editor field <-> widget ----------
    def _on_field_edit(self, name: str) -> None:
        if not self.binding.edit(name):
            return
        self.save_var.set("Saving...")
        if name == "polished":
            self._render_checklist()

    def _on_field_blur(self, name: str) -> None:
        if self.binding.blur(name) and name == "title":
            self._refresh_live_title()

    def _commit_title(self) -> None:
        # Return commits the title but keeps editing it
        if self.binding.blur("title"):
            self.binding.focus("title")
            self._refresh_live_title()

    def _refresh_live_title(self) -> None:
        if self.session.is_capturing():
            self.live_title_var.set(live_title(self.store.current))

    def _sync_editor(self) -> None:
        self.binding.sync()
        self._render_checklist()

    def _render_checklist(self) -> None:
        for child in self.checklist_frame.winfo_children():
            child.destroy()
        self._checklist_vars = []
        body = self.store.editor.polished.logical_value()
        items = [] if body.strip().startswith("<") else checkbox_items(body)
        if not items:
            ttk.Label(self.checklist_frame, text="No task items").pack(
                anchor="w", padx=8, pady=4
            )
            return
        for index, (checked, label) in enumerate(items):
            var = tk.BooleanVar(value=checked)
            self._checklist_vars.append(var)
            ttk.Checkbutton(
                self.checklist_frame,
                text=label or "(untitled task)",
                variable=var,
                command=lambda i=index, v=var: self._on_checkbox(i, v.get()),
            ).pack(anchor="w", padx=8)

    def _on_checkbox(self, index: int, checked: bool) -> None:
        if self.store.toggle_checkbox(index, checked):
            _dbg(f"checkbox {index} -> {checked}")
        self.binding.refresh("polished")

    # ---------- Notes list ----------
    def _on_store_change(self) -> None:
        self._render_sidebar()
        self._sync_editor()

    def _render_sidebar(self) -> None:
        self.notes_list.delete(0, tk.END)
        self._list_ids = []
        for note_id, title, when, active in self.store.sidebar_entries():
            self.notes_list.insert(tk.END, f"{title}  ·  {when}")
            self._list_ids.append(note_id)
            if active:
                self.notes_list.selection_set(tk.END)

    def _on_note_selected(self) -> None:
        sel = self.notes_list.curselection()
        if not sel or sel[0] >= len(self._list_ids):
            return
        note_id = self._list_ids[sel[0]]
        if self.store.current is not None and self.store.current.id == note_id:
            return
        if self.session.is_capturing():
            self._stop_recording()
        self.store.autosave()
        self.store.load_note(note_id)

    def _new_note(self) -> None:
        if self.session.is_capturing():
            self._stop_recording()
        self.store.autosave()
        self.store.create_note()
        self.status_var.set("Ready to record")

    def _delete_note(self) -> None:
        cur = self.store.current
        if cur is None:
            return
        if not messagebox.askyesno(
            "Delete note", f"Delete \"{cur.title or PLACEHOLDER_TITLE}\"?"
        ):
            return
        if self.session.is_capturing():
            self._stop_recording()
        self.store.delete_note(cur.id)

    def _on_saved(self) -> None:
        self.save_var.set("Saved")
        if self._saved_job is not None:
            self._scheduler.cancel(self._saved_job)
        self._saved_job = self._scheduler.call_later(2_000, self._clear_saved)

    def _clear_saved(self) -> None:
        self._saved_job = None
        if self.save_var.get() == "Saved":
            self.save_var.set("")

    # ---------- Recording ----------
    def _toggle_recording(self) -> None:
        if self.session.is_capturing():
            self._stop_recording()
        else:
            self._start_recording()

    def _start_recording(self) -> None:
        self.store.autosave()
        cur = self.store.current
        self._recording_note_id = cur.id if cur is not None else None
        self.status_var.set("Requesting microphone access...")
        self.update_idletasks()
        try:
            self.session.start()
        except AcquisitionError as e:
            _dbg(f"acquisition failed: {e}")
            self.status_var.set(e.status)
            self._recording_note_id = None
            return
        except RuntimeError as e:
            self.status_var.set(f"Error: {e}")
            return
        self.live_title_var.set(live_title(self.store.current))
        self.status_var.set("Recording... Speak now.")

    def _stop_recording(self) -> None:
        note_id = self._recording_note_id
        self._recording_note_id = None
        self.status_var.set("Processing audio...")
        try:
            artifact = self.session.stop()
        except Exception as e:  # noqa: BLE001
            _dbg(f"stop failed: {e}")
            self.status_var.set("Error processing recording. Please try again.")
            return
        if artifact is None or note_id is None:
            self.status_var.set(NoAudioCaptured.status)
            return
        self.status_var.set(f"Captured {human_readable_bytes(artifact.size)}. Processing...")
        self.pipeline.process_async(artifact, note_id)

    def _on_session_state(self, state: SessionState) -> None:
        recording = state in (SessionState.ACQUIRING, SessionState.CAPTURING)
        self.btn_record.configure(text="Stop Recording" if recording else "Start Recording")
        if state is SessionState.IDLE:
            self.live_title_var.set("")
            self.timer_var.set("00:00.00")

    def _on_canvas_resize(self) -> None:
        if self.session.is_capturing():
            self.visualizer.resize()

    def _on_pipeline_finished(self, results: list[PipelineResult]) -> None:
        _dbg(f"pipeline finished: {[(r.stage, r.ok) for r in results]}")
        self._sync_editor()

    # ---------- Export ----------
    def _export(self, fmt: ExportFormat) -> None:
        self.store.autosave()
        cur = self.store.current
        if cur is None:
            return
        try:
            path = export_note(cur, self._settings.export_dir, fmt)
        except OSError as exc:
            messagebox.showerror("Export", str(exc))
            return
        if path is None:
            messagebox.showinfo("Nothing to export", "This note has no polished content yet.")
            return
        self.status_var.set(f"Exported to {path}")

    # ---------- Window ----------
    def _restore_window_geometry(self) -> None:
        w = self._settings.window_width
        h = self._settings.window_height
        if w > 0 and h > 0:
            self.geometry(f"{w}x{h}")

    def _persist_geometry(self) -> None:
        self._settings.window_width = int(self.winfo_width())
        self._settings.window_height = int(self.winfo_height())

    def _on_close(self) -> None:
        try:
            if self.session.is_capturing():
                self.session.stop()
        except Exception as e:  # noqa: BLE001
            print(f"Error stopping recording: {e}", flush=True)
        self.store.autosave()
        self.store.stop_autosave()
        try:
            self._persist_geometry()
            save_settings(self._settings)
        except Exception:
            pass
        self.destroy()


def main() -> None:
    app = VoiceNotesApp()
    app.mainloop()


if __name__ == "__main__":
    main()
