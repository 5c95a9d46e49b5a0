"""Push-to-talk session controller.

Drives one voice session at a time through listening, processing and the
success/error/confirm displays. Recording, transcription, execution and speech
are collaborators; every call into them is wrapped so the session always lands
back in ``idle``. Background work (level polling, processing timeout, dismiss
and confirmation timers) lives in a TimerArena that is cleared on every state
change. A confirmed action goes back through ``processing`` so the same timeout
bounds it, and no action runs once its processing window has closed.
"""

from __future__ import annotations

from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, replace
import itertools
import logging
import threading
import time
from typing import Callable, Optional, Protocol

from listenos.config import ListenConfig
from listenos.errors import NoPendingAction, ProcessingTimeout
from listenos.messages import ActionEnvelope, ActionType, PendingAction, VoiceContext
from listenos.pipeline import ProcessingResult, VoicePipeline
from listenos.state_machine import DISPLAY_STATES, RECORDING_STATES, Event, State, StateMachine
from listenos.timers import TimerArena, TimerFactory


logger = logging.getLogger(__name__)

SUCCESS_DISPLAY_S = 0.6
CONVERSATIONAL_DISPLAY_S = 4.5
EXECUTION_ERROR_DISPLAY_S = 2.8
FAILURE_DISPLAY_S = 0.8
START_FAILURE_DISPLAY_S = 2.0


class Recorder(Protocol):
    def start_recording(self) -> None:
        ...

    def stop_recording(self) -> bytes:
        ...


class LevelSource(Protocol):
    def level(self) -> float:
        ...


class SpeechOutput(Protocol):
    def play_base64(self, audio_b64: str, mime_type: Optional[str] = None) -> None:
        ...

    def speak(self, text: str) -> None:
        ...


@dataclass
class VoiceSession:
    session_id: int = 0
    state: State = State.IDLE
    status_text: str = ""
    transcript: str = ""
    response_text: str = ""
    last_envelope: Optional[ActionEnvelope] = None
    pending: Optional[PendingAction] = None
    audio_level: float = 0.0


class VoiceSessionController:
    def __init__(
        self,
        pipeline: VoicePipeline,
        recorder: Recorder,
        level_meter: Optional[LevelSource] = None,
        speech: Optional[SpeechOutput] = None,
        processing_timeout_s: float = 15.0,
        confirmation_timeout_s: float = 25.0,
        level_poll_interval_s: float = 0.05,
        timer_factory: TimerFactory = threading.Timer,
        executor: Optional[Executor] = None,
        on_change: Optional[Callable[[VoiceSession], None]] = None,
        context_provider: Optional[Callable[[], VoiceContext]] = None,
    ) -> None:
        self.pipeline = pipeline
        self.recorder = recorder
        self.level_meter = level_meter
        self.speech = speech
        self.processing_timeout_s = processing_timeout_s
        self.confirmation_timeout_s = confirmation_timeout_s
        self.level_poll_interval_s = level_poll_interval_s
        self.on_change = on_change
        self.context_provider = context_provider

        self._machine = StateMachine()
        self._timers = TimerArena(timer_factory)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="voice-session"
        )
        self._lock = threading.RLock()
        self._active = False
        self._generation = 0
        self._input_bytes = 0
        self._session_ids = itertools.count(1)
        self.session = VoiceSession()

    @classmethod
    def from_config(
        cls,
        config: ListenConfig,
        pipeline: VoicePipeline,
        recorder: Recorder,
        **kwargs,
    ) -> "VoiceSessionController":
        kwargs.setdefault("processing_timeout_s", config.processing_timeout_s)
        kwargs.setdefault("confirmation_timeout_s", config.confirmation_timeout_s)
        kwargs.setdefault("level_poll_interval_s", config.level_poll_interval_s)
        return cls(pipeline, recorder, **kwargs)

    @property
    def state(self) -> State:
        return self._machine.state

    @property
    def timers(self) -> TimerArena:
        return self._timers

    @property
    def is_active(self) -> bool:
        return self._active

    def snapshot(self) -> VoiceSession:
        with self._lock:
            return replace(self.session)

    def start(self, handsfree: bool = False) -> bool:
        """Hotkey press (or click for hands-free). No-op while a recording is active."""
        with self._lock:
            if self._active:
                logger.debug("Already active, ignoring start")
                return False
            event = Event.CLICKED if handsfree else Event.HOTKEY_PRESSED
            if not self._machine.can_transition(event):
                logger.debug("Ignoring start while %s", self._machine.state.value)
                return False

            self._active = True
            self.session = VoiceSession(session_id=next(self._session_ids))
            self._apply(event, status_text="Listening...")
            try:
                self.recorder.start_recording()
            except Exception as exc:
                logger.warning("Session %d failed to start recording: %s", self.session.session_id, exc)
                self._active = False
                self._fail("Failed to start", START_FAILURE_DISPLAY_S)
                return False
            self._schedule_level_poll()
            return True

    def stop(self) -> bool:
        """Hotkey release (or explicit stop). No-op unless a recording is active."""
        with self._lock:
            if not self._active:
                logger.debug("Not active, ignoring stop")
                return False
            self._active = False
            self._apply(Event.STOPPED, status_text="Processing...")
            generation = self._begin_processing()
            session_id = self.session.session_id

        self._submit(generation, self._process, generation, session_id)
        return True

    def confirm(self) -> bool:
        """Run the pending action in the background under the processing timeout."""
        with self._lock:
            if self._machine.state != State.CONFIRM:
                logger.debug("Nothing to confirm while %s", self._machine.state.value)
                return False
            try:
                prepared = self.pipeline.take_pending(self.session.session_id)
            except NoPendingAction:
                self._fail("Confirmation expired", EXECUTION_ERROR_DISPLAY_S)
                return False

            self.session.pending = None
            self._apply(Event.CONFIRMED, status_text="Working...")
            generation = self._begin_processing()

        self._submit(generation, self._execute_if_current, generation, prepared)
        return True

    def reject(self) -> bool:
        with self._lock:
            if self._machine.state != State.CONFIRM:
                return False
            self.pipeline.cancel_pending(self.session.session_id)
            self._apply(Event.REJECTED)
            return True

    def cancel(self) -> bool:
        """Return to idle from any state except ``processing``, which cannot be aborted."""
        with self._lock:
            state = self._machine.state
            if state == State.PROCESSING:
                logger.info("Cancel ignored: processing cannot be aborted mid-flight")
                return False
            if state == State.IDLE:
                return False
            if state in RECORDING_STATES:
                self._active = False
                try:
                    self.recorder.stop_recording()
                except Exception as exc:
                    logger.warning("Failed to stop recording on cancel: %s", exc)
            elif state == State.CONFIRM:
                self.pipeline.cancel_pending(self.session.session_id)
            self._apply(Event.CANCELLED)
            return True

    def shutdown(self) -> None:
        with self._lock:
            self._timers.cancel_all()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def _begin_processing(self) -> int:
        self._generation += 1
        generation = self._generation
        self._input_bytes = 0
        started = time.monotonic()
        self._timers.schedule(
            "processing_timeout",
            self.processing_timeout_s,
            lambda: self._on_processing_timeout(generation, started),
        )
        return generation

    def _submit(self, generation: int, fn: Callable[..., None], *args) -> None:
        try:
            self._executor.submit(fn, *args)
        except RuntimeError as exc:
            self._on_processing_failed(generation, exc)

    def _process(self, generation: int, session_id: int) -> None:
        try:
            audio = self.recorder.stop_recording()
            with self._lock:
                self._input_bytes = len(audio)
            context = self.context_provider() if self.context_provider else None
            transcription = self.pipeline.transcribe(audio)
            result = self.pipeline.prepare(transcription, context, session_id)
        except Exception as exc:
            self._on_processing_failed(generation, exc)
            return
        if result.awaiting_execution:
            self._execute_if_current(generation, result)
        else:
            self._on_processed(generation, result)

    def _execute_if_current(self, generation: int, prepared: ProcessingResult) -> None:
        # Nothing may run once the timeout has already shown an error.
        with self._lock:
            if self._is_stale(generation):
                logger.warning(
                    "Session %s: dropping %s, the processing window already closed",
                    prepared.voice_session_id,
                    prepared.envelope.action_type.value,
                )
                return
        try:
            result = self.pipeline.execute(prepared)
        except Exception as exc:
            self._on_processing_failed(generation, exc)
            return
        self._on_processed(generation, result)

    def _on_processed(self, generation: int, result: ProcessingResult) -> None:
        with self._lock:
            if self._is_stale(generation):
                logger.warning("Discarding result that arrived after the processing window")
                if result.pending is not None:
                    self.pipeline.cancel_pending(result.voice_session_id)
                return

            envelope = result.envelope
            self.session.transcript = result.transcription.text
            self.session.last_envelope = envelope

            if envelope.action_type == ActionType.NO_ACTION:
                logger.debug("Silent dismissal (NoAction: %s)", envelope.payload.get("reason"))
                self._apply(Event.NO_ACTION)
                return

            self._speak(result)

            if result.pending is not None:
                self.session.pending = result.pending
                self._apply(
                    Event.NEED_CONFIRMATION,
                    status_text=result.pending.summary,
                    response_text=envelope.response_text or "",
                )
                self._timers.schedule(
                    "confirmation_timeout",
                    self.confirmation_timeout_s,
                    self._on_confirmation_timeout,
                )
                return

            if not result.executed:
                self._fail(_failure_text(result), EXECUTION_ERROR_DISPLAY_S)
                return

            self._succeed(envelope)

    def _on_processing_failed(self, generation: int, exc: BaseException) -> None:
        with self._lock:
            if self._is_stale(generation):
                logger.info("Dropping late processing failure: %s", exc)
                return
            logger.warning("Session %d processing failed: %s", self.session.session_id, exc)
            self._fail("Error processing", FAILURE_DISPLAY_S)

    def _on_processing_timeout(self, generation: int, started: float) -> None:
        with self._lock:
            if self._is_stale(generation):
                return
            error = ProcessingTimeout(f"Processing exceeded {self.processing_timeout_s:g}s")
            logger.warning(
                "Session %d: %s (input=%d bytes, elapsed=%dms)",
                self.session.session_id,
                error,
                self._input_bytes,
                int((time.monotonic() - started) * 1000),
            )
            self._generation += 1
            self._fail("Error processing", FAILURE_DISPLAY_S, Event.TIMEOUT)

    def _on_confirmation_timeout(self) -> None:
        with self._lock:
            if self._machine.state != State.CONFIRM:
                return
            logger.info("Confirmation window elapsed, discarding pending action")
            self.pipeline.cancel_pending(self.session.session_id)
            self._apply(Event.TIMEOUT)

    def _dismiss(self) -> None:
        with self._lock:
            if self._machine.state in DISPLAY_STATES:
                self._apply(Event.DISMISSED)

    def _poll_level(self) -> None:
        with self._lock:
            if self._machine.state not in RECORDING_STATES or self.level_meter is None:
                return
            try:
                level = float(self.level_meter.level())
            except Exception as exc:
                logger.debug("Level meter unavailable: %s", exc)
                level = 0.0
            self.session.audio_level = min(1.0, max(0.0, level))
            self._notify()
            self._schedule_level_poll()

    def _schedule_level_poll(self) -> None:
        if self.level_meter is not None:
            self._timers.schedule("audio_level", self.level_poll_interval_s, self._poll_level)

    def _succeed(self, envelope: ActionEnvelope) -> None:
        delay = CONVERSATIONAL_DISPLAY_S if envelope.is_conversational else SUCCESS_DISPLAY_S
        self._apply(Event.SUCCEEDED, response_text=envelope.response_text or "")
        self._timers.schedule("dismiss", delay, self._dismiss)

    def _fail(self, message: str, delay_s: float, event: Event = Event.FAILED) -> None:
        self._apply(event, status_text=message)
        if self._machine.state == State.ERROR:
            self._timers.schedule("dismiss", delay_s, self._dismiss)

    def _speak(self, result: ProcessingResult) -> None:
        if self.speech is None:
            return
        audio = result.tts_base64
        text = (result.response_text or "").strip()
        if audio is None and not text:
            return
        mime_type = result.envelope.payload.get("audio_mime")
        try:
            self._executor.submit(self._play, audio, mime_type, text)
        except RuntimeError as exc:
            logger.warning("Speech not scheduled: %s", exc)

    def _play(self, audio: Optional[str], mime_type: Optional[str], text: str) -> None:
        try:
            if audio is not None:
                self.speech.play_base64(audio, mime_type)
            else:
                self.speech.speak(text)
        except Exception as exc:
            logger.warning("Speech playback failed: %s", exc)

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation or self._machine.state != State.PROCESSING

    def _apply(
        self,
        event: Event,
        status_text: Optional[str] = None,
        response_text: Optional[str] = None,
    ) -> State:
        previous = self._machine.state
        if not self._machine.can_transition(event):
            logger.debug("Ignoring %s while %s", event.value, previous.value)
            return previous

        self._timers.cancel_all()
        state = self._machine.transition(event)
        session_id = self.session.session_id
        if state == State.IDLE:
            self.session = VoiceSession()
        else:
            self.session.state = state
            if status_text is not None:
                self.session.status_text = status_text
            if response_text is not None:
                self.session.response_text = response_text
            if state not in RECORDING_STATES:
                self.session.audio_level = 0.0

        logger.info("Session %d: %s -> %s (%s)", session_id, previous.value, state.value, event.value)
        self._notify()
        return state

    def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(replace(self.session))
        except Exception:
            logger.exception("Session listener failed")


def _failure_text(result: ProcessingResult) -> str:
    return result.execution_error or result.response_text or "Action failed"
