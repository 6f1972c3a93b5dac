"""Settings persistence for Voice Notes.

Stores and retrieves preferences so that they persist across app launches.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
import json
import os
import sys
from pathlib import Path
from typing import Any


APP_NAME = "VoiceNotes"


def app_data_dir() -> Path:
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_NAME
    if sys.platform.startswith("win"):
        return (
            Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
            / APP_NAME
        )
    return (
        Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
        / APP_NAME.lower()
    )


def _default_config_dir() -> Path:
    # Allow tests or callers to override location
    override = os.environ.get("VOICENOTES_SETTINGS_PATH")
    if override:
        p = Path(override).expanduser()
        # If the override looks like a file path, use it directly
        if p.suffix:
            return p
        # Else treat as directory and append filename
        return p / "settings.json"
    return app_data_dir() / "settings.json"


@dataclass
class Settings:
    # Speech service
    model_name: str = "gemini-2.5-flash"
    api_key: str = ""  # empty -> GEMINI_API_KEY / GOOGLE_API_KEY

    # Capture
    sample_rate: int = 16_000
    capture_format: str = "ogg"  # ogg | flac | wav

    # Cadences (milliseconds)
    autosave_interval_ms: int = 2_000
    timer_interval_ms: int = 50
    frame_interval_ms: int = 16

    # Storage
    export_dir: str = str(Path.home() / "Documents")
    notes_path: str = ""  # empty -> <app data dir>/notes.json

    # Window
    window_width: int = 0
    window_height: int = 0


def get_settings_path() -> Path:
    return _default_config_dir()


def get_notes_path(s: Settings) -> Path:
    override = os.environ.get("VOICENOTES_NOTES_PATH")
    if override:
        return Path(override).expanduser()
    if s.notes_path:
        return Path(s.notes_path).expanduser()
    return app_data_dir() / "notes.json"


def resolve_api_key(s: Settings) -> str:
    return (
        s.api_key
        or os.environ.get("GEMINI_API_KEY", "")
        or os.environ.get("GOOGLE_API_KEY", "")
    )


def load_settings() -> Settings:
    path = get_settings_path()
    try:
        if path.exists():
            raw = json.loads(path.read_text())
        else:
            raw = {}
    except Exception:
        raw = {}
    if not isinstance(raw, dict):
        raw = {}

    # Only keep known keys; fall back to defaults for missing/invalid entries
    defaults = asdict(Settings())
    data: dict[str, Any] = {}
    for k, v in defaults.items():
        if k in raw and type(raw[k]) is type(v):  # noqa: E721 - strict type match
            data[k] = raw[k]
        else:
            data[k] = v
    return Settings(**data)


def save_settings(s: Settings) -> None:
    path = get_settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(s), indent=2))
    except Exception:
        # Best-effort persistence; ignore write errors
        pass
