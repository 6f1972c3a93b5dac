from __future__ import annotations

import json

from voicenotes.common.errors import EmptyResult, ServiceCallFailed
from voicenotes.common.storage import MemoryStore
from voicenotes.notes import PLACEHOLDER_TITLE, STORAGE_KEY, NoteStore
from voicenotes.pipeline import (
    POLISH_INSTRUCTION,
    TranscriptionPipeline,
    extract_title,
)
from voicenotes.session import AudioArtifact
from voicenotes.speech import AudioPart, TextPart


class FakeService:
    """Returns queued replies in order; an Exception reply is raised."""

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, list]] = []

    def generate(self, model, contents):
        self.calls.append((model, list(contents)))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


ARTIFACT = AudioArtifact(data=b"OggS....", media_type="audio/ogg", duration_seconds=1.0)


def make_store(clock) -> NoteStore:
    store = NoteStore(MemoryStore(), clock=clock)
    store.load()
    return store


def stored(store: NoteStore) -> dict:
    return json.loads(store._persistence.get(STORAGE_KEY))[0]


def test_title_from_heading() -> None:
    assert extract_title("# Setup Guide\nSome body") == "Setup Guide"
    assert extract_title("intro line\n## Later Heading\nbody") == "Later Heading"


def test_title_from_first_line_markup_stripped() -> None:
    assert extract_title("- Install the driver first\n- then reboot") == "Install the driver first"
    assert extract_title("\n\n> **Quoted idea here**") == "Quoted idea here"
    assert extract_title("1. Step one of many") == "Step one of many"


def test_title_truncated_with_ellipsis() -> None:
    long_line = "word " * 30
    title = extract_title(long_line)
    assert title is not None
    assert title.endswith("...")
    assert len(title) == 63


def test_short_first_line_falls_back_to_placeholder() -> None:
    body = "ok\n" + "\n".join(f"line number {i}" for i in range(60))
    assert extract_title(body) is None
    assert extract_title("") is None


def test_process_writes_raw_then_polished(clock) -> None:
    store = make_store(clock)
    note_id = store.current.id
    service = FakeService("um so the api returns json", "# API Notes\nThe API returns JSON.")
    statuses: list[str] = []
    pipeline = TranscriptionPipeline(service, store, model="m", on_status=statuses.append)

    results = pipeline.process(ARTIFACT, note_id)

    assert [r.ok for r in results] == [True, True]
    assert store.current.raw_transcription == "um so the api returns json"
    assert store.current.polished_note == "# API Notes\nThe API returns JSON."
    assert store.current.title == "API Notes"
    entry = stored(store)
    assert entry["title"] == "API Notes"
    assert entry["raw_transcription"] == "um so the api returns json"
    assert statuses[-1] == "Note polished. Ready for next recording."

    model, first = service.calls[0]
    assert model == "m"
    assert isinstance(first[1], AudioPart)
    assert first[1].media_type == "audio/ogg"
    polish_part = service.calls[1][1][0]
    assert isinstance(polish_part, TextPart)
    assert polish_part.text == POLISH_INSTRUCTION + "um so the api returns json"


def test_empty_transcript_skips_polish(clock) -> None:
    store = make_store(clock)
    service = FakeService("   ")
    statuses: list[str] = []
    pipeline = TranscriptionPipeline(service, store, on_status=statuses.append)

    results = pipeline.process(ARTIFACT, store.current.id)

    assert len(service.calls) == 1
    assert isinstance(results[0].error, EmptyResult)
    assert store.editor.raw.is_placeholder
    assert store.current.polished_note == ""
    assert statuses[-1] == "Transcription failed or returned empty."


def test_polish_failure_keeps_raw(clock) -> None:
    store = make_store(clock)
    service = FakeService("raw words", RuntimeError("quota exceeded"))
    statuses: list[str] = []
    pipeline = TranscriptionPipeline(service, store, on_status=statuses.append)

    results = pipeline.process(ARTIFACT, store.current.id)

    assert isinstance(results[1].error, ServiceCallFailed)
    assert store.current.raw_transcription == "raw words"
    assert stored(store)["raw_transcription"] == "raw words"
    assert store.editor.polished.is_placeholder
    assert store.current.title == PLACEHOLDER_TITLE
    assert statuses[-1] == "Error polishing note. Please try again."


def test_transcribe_service_error_reported(clock) -> None:
    store = make_store(clock)
    service = FakeService(ServiceCallFailed("transcribe", "boom"))
    statuses: list[str] = []
    pipeline = TranscriptionPipeline(service, store, on_status=statuses.append)

    pipeline.process(ARTIFACT, store.current.id)
    assert statuses[-1] == "Error getting transcription. Please try again."
    assert len(service.calls) == 1


def test_missing_artifact_never_calls_service(clock) -> None:
    store = make_store(clock)
    service = FakeService()
    statuses: list[str] = []
    pipeline = TranscriptionPipeline(service, store, on_status=statuses.append)

    assert pipeline.process(None, store.current.id) == []
    assert pipeline.process(AudioArtifact(b"", "audio/ogg"), store.current.id) == []
    assert service.calls == []
    assert statuses == ["No audio data captured. Please try again."] * 2


def test_result_for_deleted_note_is_dropped(clock) -> None:
    store = make_store(clock)
    doomed = store.current.id
    clock.value += 1
    store.create_note()
    store.delete_note(doomed)

    service = FakeService("hello", "# Hello\nworld")
    pipeline = TranscriptionPipeline(service, store)
    pipeline.process(ARTIFACT, doomed)

    assert store.find(doomed) is None
    assert len(store.notes) == 1
    assert store.current.title == PLACEHOLDER_TITLE


def test_mutations_run_through_dispatch(clock, scheduler) -> None:
    store = make_store(clock)
    service = FakeService("raw", "# Title here\nbody")
    finished = []
    pipeline = TranscriptionPipeline(
        service,
        store,
        dispatch=scheduler.dispatch,
        on_finished=finished.append,
    )

    pipeline._run(ARTIFACT, store.current.id)
    # Nothing touches the store until the UI loop runs the queued callbacks
    assert store.current.raw_transcription == ""
    assert finished == []

    scheduler.advance(0)
    assert store.current.title == "Title here"
    assert len(finished) == 1
    assert [r.stage for r in finished[0]] == ["transcribe", "polish"]


def test_process_async_runs_on_worker_thread(clock) -> None:
    store = make_store(clock)
    service = FakeService("raw", "- [ ] call back the vendor")
    pipeline = TranscriptionPipeline(service, store)

    thread = pipeline.process_async(ARTIFACT, store.current.id)
    thread.join(timeout=5)

    assert not pipeline.is_running()
    assert store.current.title == "call back the vendor"
