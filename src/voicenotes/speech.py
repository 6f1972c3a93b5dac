"""External speech service adapter (Gemini)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, Sequence, Union

from google import genai
from google.genai import types

from .common.errors import ServiceCallFailed


DEFAULT_MODEL = "gemini-2.5-flash"


def _default_debug(msg: str) -> None:
    pass


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class AudioPart:
    data: bytes
    media_type: str


ContentPart = Union[TextPart, AudioPart]


class SpeechService(Protocol):
    def generate(self, model: str, contents: Sequence[ContentPart]) -> str: ...


def to_gemini_contents(contents: Sequence[ContentPart]) -> list[Any]:
    parts: list[Any] = []
    for part in contents:
        if isinstance(part, AudioPart):
            parts.append(types.Part.from_bytes(data=part.data, mime_type=part.media_type))
        else:
            parts.append(part.text)
    return parts


class GeminiSpeechService:
    """Request/response access to Gemini through the google-genai client.

    One attempt per call; any client error surfaces as ServiceCallFailed.
    """

    def __init__(
        self, api_key: str, *, debug: Callable[[str], None] = _default_debug
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._client: Optional[Any] = None
        self.debug = debug

    def _models(self) -> Any:
        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)
        return self._client.models

    def generate(self, model: str, contents: Sequence[ContentPart]) -> str:
        stage = "transcribe" if any(isinstance(p, AudioPart) for p in contents) else "polish"
        if not self._api_key:
            raise ServiceCallFailed(
                stage, "No Gemini API key. Set GEMINI_API_KEY or Settings.api_key."
            )
        self.debug(f"gemini {stage} model={model} parts={len(contents)}")
        try:
            response = self._models().generate_content(
                model=model, contents=to_gemini_contents(contents)
            )
            text = response.text
        except Exception as exc:  # noqa: BLE001
            self.debug(f"gemini {stage} failed: {exc}")
            raise ServiceCallFailed(stage, str(exc)) from exc
        return text or ""
