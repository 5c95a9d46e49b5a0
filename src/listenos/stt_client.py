"""OpenAI-compatible STT client for transcribing push-to-talk recordings."""

import io
import math
from typing import Any, Dict, Optional

import requests

from listenos.config import ListenConfig
from listenos.errors import TranscriptionFailed
from listenos.messages import TranscriptionResult


class OpenAITranscriber:
    """Client wrapper around an ``/audio/transcriptions`` endpoint."""

    def __init__(
        self,
        api_base: str,
        api_key: str,
        model: str,
        language: Optional[str] = None,
        prompt: str = "",
        timeout_s: float = 20,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.language = language
        self.prompt = prompt
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: ListenConfig) -> "OpenAITranscriber":
        return cls(
            api_base=config.stt_api_base,
            api_key=config.llm_api_key(),
            model=config.stt_model,
            language=config.stt_language,
        )

    def transcribe(self, wav_bytes: bytes) -> TranscriptionResult:
        """Transcribe one WAV recording; raises TranscriptionFailed on any transport error."""
        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = {
            "model": self.model,
            "response_format": "verbose_json",
        }
        if self.prompt:
            data["prompt"] = self.prompt
        if self.language:
            data["language"] = self.language

        files = {
            "file": ("speech.wav", io.BytesIO(wav_bytes), "audio/wav"),
        }

        try:
            response = requests.post(
                f"{self.api_base}/audio/transcriptions",
                headers=headers,
                data=data,
                files=files,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise TranscriptionFailed(f"STT request failed: {exc}") from exc
        if not response.ok:
            raise TranscriptionFailed(f"STT request failed: {response.status_code} {response.text}")

        return _to_result(response.json())


def _to_result(payload: Dict[str, Any]) -> TranscriptionResult:
    text = str(payload.get("text", "")).strip()
    duration_ms = int(float(payload.get("duration") or 0.0) * 1000)

    confidence = 1.0
    segments = payload.get("segments")
    if isinstance(segments, list) and segments:
        logprobs = [
            float(segment["avg_logprob"])
            for segment in segments
            if isinstance(segment, dict) and segment.get("avg_logprob") is not None
        ]
        if logprobs:
            confidence = min(1.0, math.exp(sum(logprobs) / len(logprobs)))

    return TranscriptionResult(
        text=text,
        confidence=confidence,
        duration_ms=duration_ms,
        is_final=True,
    )
