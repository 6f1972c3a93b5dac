import json
from pathlib import Path

from voicenotes.common.settings import (
    Settings,
    get_notes_path,
    get_settings_path,
    load_settings,
    resolve_api_key,
    save_settings,
)


def test_settings_load_defaults_and_roundtrip(tmp_path: Path, monkeypatch) -> None:
    settings_file = tmp_path / "settings.json"
    monkeypatch.setenv("VOICENOTES_SETTINGS_PATH", str(settings_file))

    s = load_settings()
    assert isinstance(s, Settings)
    assert s.model_name == "gemini-2.5-flash"
    assert s.autosave_interval_ms == 2000

    s.capture_format = "flac"
    s.export_dir = str(tmp_path)
    s.window_width = 900
    save_settings(s)

    s2 = load_settings()
    assert s2.capture_format == "flac"
    assert s2.export_dir == str(tmp_path)
    assert s2.window_width == 900

    data = json.loads(settings_file.read_text())
    assert data["capture_format"] == "flac"


def test_unknown_keys_and_wrong_types_are_ignored(tmp_path: Path, monkeypatch) -> None:
    settings_file = tmp_path / "settings.json"
    monkeypatch.setenv("VOICENOTES_SETTINGS_PATH", str(settings_file))
    settings_file.write_text(
        json.dumps(
            {
                "model_name": "gemini-2.0-flash",
                "unknown_key": 123,
                "sample_rate": "fast",  # wrong type; falls back to default
            }
        )
    )

    s = load_settings()
    assert s.model_name == "gemini-2.0-flash"
    assert s.sample_rate == 16_000
    assert not hasattr(s, "unknown_key")


def test_garbage_file_gives_defaults(tmp_path: Path, monkeypatch) -> None:
    settings_file = tmp_path / "settings.json"
    monkeypatch.setenv("VOICENOTES_SETTINGS_PATH", str(settings_file))
    settings_file.write_text("[1, 2, 3]")
    assert load_settings() == Settings()


def test_settings_path_override_directory(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("VOICENOTES_SETTINGS_PATH", str(tmp_path / "conf"))
    assert get_settings_path() == tmp_path / "conf" / "settings.json"


def test_notes_path_resolution(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("VOICENOTES_NOTES_PATH", raising=False)
    s = Settings(notes_path=str(tmp_path / "mine.json"))
    assert get_notes_path(s) == tmp_path / "mine.json"

    monkeypatch.setenv("VOICENOTES_NOTES_PATH", str(tmp_path / "env.json"))
    assert get_notes_path(s) == tmp_path / "env.json"


def test_api_key_falls_back_to_environment(monkeypatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    assert resolve_api_key(Settings()) == ""

    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    assert resolve_api_key(Settings()) == "google-key"
    monkeypatch.setenv("GEMINI_API_KEY", "gemini-key")
    assert resolve_api_key(Settings()) == "gemini-key"
    assert resolve_api_key(Settings(api_key="explicit")) == "explicit"
