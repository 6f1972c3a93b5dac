"""Error taxonomy for Voice Notes.

Every error carries a user-facing ``status`` string so the GUI can show it
verbatim in the status line.
"""

from __future__ import annotations


class VoiceNotesError(Exception):
    status: str = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.status)


# ---- Microphone acquisition ----
class AcquisitionError(VoiceNotesError):
    """The microphone stream could not be opened."""


class PermissionDenied(AcquisitionError):
    status = "Microphone permission denied. Please check system settings."


class DeviceNotFound(AcquisitionError):
    status = "No microphone found. Please connect a microphone."


class DeviceUnavailable(AcquisitionError):
    status = "Cannot access microphone. It may be in use by another application."


class CaptureFailed(AcquisitionError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.status = f"Error: {message}"


# ---- Capture output ----
class NoAudioCaptured(VoiceNotesError):
    status = "No audio data captured. Please try again."


class EncodingUnsupported(VoiceNotesError):
    def __init__(self, fmt: str) -> None:
        super().__init__(f"Capture format '{fmt}' is not supported by libsndfile")
        self.fmt = fmt
        self.status = f"Format '{fmt}' unsupported, using WAV."


# ---- External speech service ----
_STAGE_FAILED = {
    "transcribe": "Error getting transcription. Please try again.",
    "polish": "Error polishing note. Please try again.",
}

_STAGE_EMPTY = {
    "transcribe": "Transcription failed or returned empty.",
    "polish": "Polishing failed or returned empty.",
}


class PipelineError(VoiceNotesError):
    def __init__(self, stage: str, message: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage


class ServiceCallFailed(PipelineError):
    def __init__(self, stage: str, message: str = "") -> None:
        super().__init__(stage, message or f"{stage} call failed")
        self.status = _STAGE_FAILED.get(stage, "Error contacting speech service.")


class EmptyResult(PipelineError):
    def __init__(self, stage: str) -> None:
        super().__init__(stage, f"{stage} returned no text")
        self.status = _STAGE_EMPTY.get(stage, "Speech service returned empty.")


# ---- Durable store ----
class PersistenceCorrupt(VoiceNotesError):
    status = "Saved notes could not be read; starting with an empty list."
