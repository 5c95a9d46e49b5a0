from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
import json
from typing import Any, Callable, Dict, List, Optional

from listenos.messages import ActionEnvelope, ExecutionResult, TranscriptionResult


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self._t = float(start)

    def __call__(self) -> float:
        return self._t

    def advance(self, seconds: float) -> None:
        self._t += float(seconds)


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None, content: bytes = b""):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else (json.dumps(body) if body is not None else "")
        self.content = content

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no json body")
        return self._body


def chat_completion(content: Any) -> Dict[str, Any]:
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@dataclass
class PostRecorder:
    """Stand-in for ``requests.post`` that records calls and replays queued responses."""

    responses: List[Any] = field(default_factory=list)
    calls: List[Dict[str, Any]] = field(default_factory=list)

    def __call__(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@dataclass
class FakeClassifier:
    envelope: ActionEnvelope = field(default_factory=lambda: ActionEnvelope.type_text("typed"))
    calls: List[str] = field(default_factory=list)

    def classify(self, text: str, context=None, history=None, custom_commands=None, dictation_style=None) -> ActionEnvelope:
        self.calls.append(text)
        return self.envelope


@dataclass
class FakeResolver:
    envelope: ActionEnvelope = field(default_factory=lambda: ActionEnvelope.type_text("typed"))
    calls: List[Dict[str, Any]] = field(default_factory=list)

    def resolve(self, text: str, context=None, history=None, custom_commands=None, dictation_style=None) -> ActionEnvelope:
        self.calls.append({"text": text, "history": history, "context": context})
        return self.envelope


@dataclass
class RecordingExecutor:
    result: ExecutionResult = field(default_factory=lambda: ExecutionResult.ok("done"))
    raises: Optional[Exception] = None
    executed: List[ActionEnvelope] = field(default_factory=list)

    def execute(self, envelope: ActionEnvelope) -> ExecutionResult:
        self.executed.append(envelope)
        if self.raises is not None:
            raise self.raises
        return self.result


@dataclass
class FakeTranscriber:
    text: str = "hello there"
    fail: Optional[Exception] = None
    received: List[bytes] = field(default_factory=list)

    def transcribe(self, wav_bytes: bytes) -> TranscriptionResult:
        self.received.append(wav_bytes)
        if self.fail is not None:
            raise self.fail
        return TranscriptionResult(text=self.text, confidence=0.9, duration_ms=120)


@dataclass
class FakeSynthesizer:
    mime_type: str = "audio/mpeg"
    spoken: List[str] = field(default_factory=list)

    def synthesize_base64(self, text: str) -> str:
        self.spoken.append(text)
        return "QUJD"


@dataclass
class FakeRecorder:
    audio: bytes = b"RIFF0000WAVE"
    fail_start: bool = False
    started: int = 0
    stopped: int = 0

    def start_recording(self) -> None:
        if self.fail_start:
            raise RuntimeError("no microphone")
        self.started += 1

    def stop_recording(self) -> bytes:
        self.stopped += 1
        return self.audio


@dataclass
class FakeSpeechOutput:
    played: List[str] = field(default_factory=list)
    said: List[str] = field(default_factory=list)

    def play_base64(self, audio_b64: str, mime_type: Optional[str] = None) -> None:
        self.played.append(audio_b64)

    def speak(self, text: str) -> None:
        self.said.append(text)


class InlineExecutor:
    """Runs submitted work immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True) -> None:
        return


class DeferredExecutor(InlineExecutor):
    """Queues submitted work until ``run_all`` is called."""

    def __init__(self) -> None:
        super().__init__()
        self.queue: List[Callable[[], Any]] = []

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        self.submitted += 1
        self.queue.append(lambda: fn(*args, **kwargs))
        return Future()

    def run_all(self) -> None:
        while self.queue:
            self.queue.pop(0)()


class ManualTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def live(self) -> bool:
        return self.started and not self.cancelled and not self.fired

    def fire(self) -> None:
        self.fired = True
        self.callback()


class ManualTimerFactory:
    def __init__(self) -> None:
        self.created: List[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.created.append(timer)
        return timer

    def live(self) -> List[ManualTimer]:
        return [timer for timer in self.created if timer.live]

    def fire(self, delay: float) -> None:
        matches = [timer for timer in self.live() if timer.delay == delay]
        assert matches, f"no live timer with delay {delay}; live={[t.delay for t in self.live()]}"
        matches[0].fire()
