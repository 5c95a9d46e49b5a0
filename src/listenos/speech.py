import base64

import requests

from listenos.config import ListenConfig
from listenos.errors import SpeechSynthesisFailed


AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
}


class OpenAISpeechSynthesizer:
    def __init__(
        self,
        api_base: str,
        api_key: str,
        model: str,
        voice: str,
        audio_format: str = "mp3",
        timeout_s: float = 20,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.voice = voice
        self.audio_format = audio_format
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: ListenConfig) -> "OpenAISpeechSynthesizer":
        return cls(
            api_base=config.tts_api_base,
            api_key=config.tts_api_key(),
            model=config.tts_model,
            voice=config.tts_voice,
            audio_format=config.tts_format,
        )

    @property
    def mime_type(self) -> str:
        return AUDIO_MIME_TYPES.get(self.audio_format.lower(), "application/octet-stream")

    def synthesize(self, text: str) -> bytes:
        text = text.strip()
        if not text:
            raise SpeechSynthesisFailed("Nothing to synthesize")
        if not self.api_key:
            raise SpeechSynthesisFailed("Missing TTS API key")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "input": text,
            "voice": self.voice,
            "response_format": self.audio_format,
        }
        try:
            response = requests.post(
                f"{self.api_base}/audio/speech",
                headers=headers,
                json=payload,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise SpeechSynthesisFailed(f"TTS request failed: {exc}") from exc
        if not response.ok:
            raise SpeechSynthesisFailed(
                f"TTS request failed: {response.status_code} {response.text}"
            )
        if not response.content:
            raise SpeechSynthesisFailed("TTS returned empty audio")
        return response.content

    def synthesize_base64(self, text: str) -> str:
        return base64.b64encode(self.synthesize(text)).decode("utf-8")
