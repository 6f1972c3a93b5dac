"""Transcription pipeline: audio artifact -> raw transcript -> polished note.

The two service calls run on a worker thread. Every note mutation and status
update is handed back through ``dispatch`` so the note store is only ever
touched from the UI thread.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .common.errors import EmptyResult, NoAudioCaptured, PipelineError, ServiceCallFailed
from .notes import NoteStore
from .session import AudioArtifact
from .speech import DEFAULT_MODEL, AudioPart, SpeechService, TextPart


TRANSCRIBE_INSTRUCTION = (
    "You are an expert transcriptionist specializing in technical topics like "
    "programming, computer science, and the Internet of Things (IoT). Transcribe "
    "the provided audio with high accuracy, paying close attention to technical "
    "jargon, acronyms (like API, JSON, HTTP, MQTT), and code-related terms. Focus "
    "only on spoken words. Omit any non-speech sounds, background noises, or "
    "descriptive sounds often enclosed in parentheses, such as (Sigh) or "
    "(Humming sound). Provide a clean, verbatim transcript of the speech."
)

POLISH_INSTRUCTION = """You are an expert technical writer. Take this raw transcription about a technical subject (like programming, computers, or IoT) and create a polished, well-formatted note. Your tasks are:
1.  Correct any potential transcription errors, especially for technical terms and acronyms.
2.  Remove filler words (um, uh, like), repetitions, and false starts.
3.  Structure the content logically using Markdown. Use headings, lists, bold text, and code blocks (```) where appropriate.
4.  Ensure all original content and meaning are preserved.
5.  If there is a clear main topic, create a suitable title using a level 1 Markdown heading (e.g., # My Note Title).

Raw transcription:
"""

TITLE_MAX_LENGTH = 60

_HEADING_MARKER = re.compile(r"^#+\s+")
_LEADING_MARKUP = re.compile(r"^[*_`#\->\s\[\]\(.\d)]+")
_TRAILING_MARKUP = re.compile(r"[*_`#]+$")


def extract_title(markdown: str) -> Optional[str]:
    """Title for a polished note, or None to keep the placeholder.

    A heading line wins; otherwise the first non-empty line stripped of list,
    quote and numbering markup, if it is longer than three characters.
    """
    lines = [line.strip() for line in markdown.split("\n")]
    for line in lines:
        if line.startswith("#"):
            title = _HEADING_MARKER.sub("", line).strip()
            if title:
                return title

    first = next((line for line in lines if line), "")
    candidate = _TRAILING_MARKUP.sub("", _LEADING_MARKUP.sub("", first)).strip()
    if len(candidate) <= 3:
        return None
    if len(candidate) > TITLE_MAX_LENGTH:
        return candidate[:TITLE_MAX_LENGTH] + "..."
    return candidate


@dataclass(frozen=True)
class PipelineResult:
    stage: str
    text: Optional[str] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _default_debug(msg: str) -> None:
    pass


class TranscriptionPipeline:
    def __init__(
        self,
        service: SpeechService,
        store: NoteStore,
        *,
        model: str = DEFAULT_MODEL,
        dispatch: Optional[Callable[[Callable[[], None]], None]] = None,
        on_status: Optional[Callable[[str], None]] = None,
        on_finished: Optional[Callable[[list[PipelineResult]], None]] = None,
        debug: Callable[[str], None] = _default_debug,
    ) -> None:
        self._service = service
        self._store = store
        self.model = model
        self._dispatch_fn = dispatch
        self._on_status = on_status
        self._on_finished = on_finished
        self.debug = debug
        self._worker: Optional[threading.Thread] = None

    # ---- Stages ----
    def transcribe(self, artifact: AudioArtifact) -> PipelineResult:
        contents = [
            TextPart(TRANSCRIBE_INSTRUCTION),
            AudioPart(artifact.data, artifact.media_type),
        ]
        return self._call("transcribe", contents)

    def polish(self, raw_text: str) -> PipelineResult:
        return self._call("polish", [TextPart(POLISH_INSTRUCTION + raw_text)])

    def _call(self, stage: str, contents: list) -> PipelineResult:
        try:
            text = self._service.generate(self.model, contents)
        except ServiceCallFailed as e:
            return PipelineResult(stage, error=e)
        except Exception as e:  # noqa: BLE001
            return PipelineResult(stage, error=ServiceCallFailed(stage, str(e)))
        if not text or not text.strip():
            return PipelineResult(stage, error=EmptyResult(stage))
        self.debug(f"{stage}: {len(text)} chars")
        return PipelineResult(stage, text=text)

    # ---- Orchestration ----
    def process(self, artifact: Optional[AudioArtifact], note_id: str) -> list[PipelineResult]:
        """Run both stages for `note_id`; blocking."""
        if artifact is None or artifact.size == 0:
            self._status(NoAudioCaptured.status)
            return []

        self._status("Getting transcription...")
        first = self.transcribe(artifact)
        if not first.ok:
            self.debug(f"transcribe failed: {first.error}")
            self._dispatch(lambda: self._store.reset_field(note_id, "raw"))
            self._status(first.error.status)  # type: ignore[union-attr]
            return [first]
        raw = first.text or ""
        self._dispatch(lambda: self._store.apply_transcription(note_id, raw))

        self._status("Transcription complete. Polishing note...")
        second = self.polish(raw)
        if not second.ok:
            self.debug(f"polish failed: {second.error}")
            self._dispatch(lambda: self._store.reset_field(note_id, "polished"))
            self._status(second.error.status)  # type: ignore[union-attr]
            return [first, second]
        polished = second.text or ""
        title = extract_title(polished)
        self._dispatch(lambda: self._store.apply_polished(note_id, polished, title))
        self._status("Note polished. Ready for next recording.")
        return [first, second]

    def process_async(self, artifact: AudioArtifact, note_id: str) -> threading.Thread:
        thread = threading.Thread(
            target=self._run, args=(artifact, note_id), name="TranscriptionPipeline", daemon=True
        )
        self._worker = thread
        thread.start()
        return thread

    def is_running(self) -> bool:
        worker = self._worker
        return worker is not None and worker.is_alive()

    def _run(self, artifact: AudioArtifact, note_id: str) -> None:
        results: list[PipelineResult] = []
        try:
            results = self.process(artifact, note_id)
        except Exception as exc:  # noqa: BLE001
            self.debug(f"pipeline crashed: {exc}")
            self._status("Error processing recording. Please try again.")
        finally:
            if self._on_finished is not None:
                done = self._on_finished
                self._dispatch(lambda: done(results))

    def _status(self, text: str) -> None:
        if self._on_status is not None:
            cb = self._on_status
            self._dispatch(lambda: cb(text))

    def _dispatch(self, fn: Callable[[], None]) -> None:
        if self._dispatch_fn is not None:
            self._dispatch_fn(fn)
        else:
            fn()
