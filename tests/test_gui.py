import json
from pathlib import Path

import pytest

try:
    import tkinter as tk  # noqa: F401

    TK_AVAILABLE = True
except Exception:  # pragma: no cover - environment without Tk
    TK_AVAILABLE = False


pytestmark = pytest.mark.skipif(
    not TK_AVAILABLE, reason="Tkinter not available in test environment"
)


@pytest.fixture
def app(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("VOICENOTES_SETTINGS_PATH", str(tmp_path / "settings.json"))
    monkeypatch.setenv("VOICENOTES_NOTES_PATH", str(tmp_path / "notes.json"))
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    try:
        from voicenotes.gui import VoiceNotesApp
    except OSError as e:  # PortAudio missing
        pytest.skip(f"Cannot import audio stack: {e}")

    try:
        instance = VoiceNotesApp()
    except Exception as e:  # e.g., TclError in headless env
        pytest.skip(f"Cannot initialize Tk root: {e}")
    instance.withdraw()
    yield instance
    try:
        instance._on_close()
    except tk.TclError:
        pass


def test_starts_with_one_placeholder_note(app, tmp_path: Path) -> None:
    assert len(app.store.notes) == 1
    assert app.title_var.get() == "Note Title"
    assert app.raw_text.get("1.0", "end-1c") == "Raw transcription will appear here..."
    assert app.notes_list.size() == 1
    stored = json.loads(json.loads((tmp_path / "notes.json").read_text())["voice-notes-app-data"])
    assert stored[0]["id"] == app.store.current.id


def test_pipeline_results_refresh_editor_and_checklist(app) -> None:
    note_id = app.store.current.id
    app.store.apply_transcription(note_id, "buy milk and eggs")
    app.store.apply_polished(note_id, "# Groceries\n- [ ] milk\n- [ ] eggs", "Groceries")

    assert app.title_var.get() == "Groceries"
    assert app.raw_text.get("1.0", "end-1c") == "buy milk and eggs"
    assert len(app._checklist_vars) == 2

    app._on_checkbox(1, True)
    assert app.store.find(note_id).polished_note == "# Groceries\n- [ ] milk\n- [x] eggs"
    assert "- [x] eggs" in app.polished_text.get("1.0", "end-1c")


def test_acquisition_error_shows_status(app, monkeypatch) -> None:
    from voicenotes.common.errors import DeviceNotFound

    def fail() -> None:
        raise DeviceNotFound()

    monkeypatch.setattr(app.session, "start", fail)
    app._start_recording()
    assert app.status_var.get() == "No microphone found. Please connect a microphone."
    assert app._recording_note_id is None


def test_stop_hands_artifact_to_pipeline_for_recording_note(app, monkeypatch) -> None:
    from voicenotes.session import AudioArtifact

    recording_id = app.store.current.id
    monkeypatch.setattr(app.session, "start", lambda: None)
    app._start_recording()

    # Switching notes mid-recording must not redirect the result
    app.store.create_note()

    artifact = AudioArtifact(b"x" * 2048, "audio/ogg", 0.5)
    monkeypatch.setattr(app.session, "stop", lambda: artifact)
    handed = []
    monkeypatch.setattr(app.pipeline, "process_async", lambda a, nid: handed.append((a, nid)))
    app._stop_recording()

    assert handed == [(artifact, recording_id)]
    assert app.status_var.get().startswith("Captured 2 KiB")


def test_stop_without_audio_reports_it(app, monkeypatch) -> None:
    monkeypatch.setattr(app.session, "start", lambda: None)
    app._start_recording()
    monkeypatch.setattr(app.session, "stop", lambda: None)
    app._stop_recording()
    assert app.status_var.get() == "No audio data captured. Please try again."


def test_close_persists_settings(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("VOICENOTES_SETTINGS_PATH", str(tmp_path / "settings.json"))
    monkeypatch.setenv("VOICENOTES_NOTES_PATH", str(tmp_path / "notes.json"))
    try:
        from voicenotes.gui import VoiceNotesApp
    except OSError as e:
        pytest.skip(f"Cannot import audio stack: {e}")
    try:
        app = VoiceNotesApp()
    except Exception as e:
        pytest.skip(f"Cannot initialize Tk root: {e}")
    app.withdraw()
    app._on_close()
    assert (tmp_path / "settings.json").exists()
