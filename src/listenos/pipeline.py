"""End-to-end processing for one utterance: transcribe, resolve, gate, execute, log."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Iterable, List, Optional, Protocol, Tuple

from listenos.errors import PendingActionExists, SpeechSynthesisFailed, TranscriptionFailed
from listenos.execution_gate import ExecutionGate, requires_confirmation, summarize_action
from listenos.messages import (
    ActionEnvelope,
    ActionType,
    CustomCommand,
    ExecutionResult,
    PendingAction,
    TranscriptionResult,
    VoiceContext,
)


logger = logging.getLogger(__name__)

SILENT_TYPES = frozenset({ActionType.TYPE_TEXT, ActionType.NO_ACTION})


class Transcriber(Protocol):
    def transcribe(self, wav_bytes: bytes) -> TranscriptionResult:
        ...


class Resolver(Protocol):
    def resolve(
        self,
        text: str,
        context: Optional[VoiceContext] = None,
        history: Optional[str] = None,
        custom_commands: Optional[Iterable[CustomCommand]] = None,
        dictation_style: Optional[str] = None,
    ) -> ActionEnvelope:
        ...


class ActionExecutor(Protocol):
    def execute(self, envelope: ActionEnvelope) -> ExecutionResult:
        ...


class SpeechSynthesizer(Protocol):
    mime_type: str

    def synthesize_base64(self, text: str) -> str:
        ...


@dataclass(frozen=True)
class ProcessingResult:
    transcription: TranscriptionResult
    envelope: ActionEnvelope
    executed: bool
    pending: Optional[PendingAction] = None
    execution_message: Optional[str] = None
    execution_error: Optional[str] = None
    awaiting_execution: bool = False
    confirmed: bool = False
    voice_session_id: Optional[int] = None

    @property
    def response_text(self) -> Optional[str]:
        return self.envelope.response_text

    @property
    def tts_base64(self) -> Optional[str]:
        audio = self.envelope.payload.get("tts_base64")
        return audio if isinstance(audio, str) and audio else None


class VoicePipeline:
    """Transcribe, resolve, gate and execute utterances.

    ``process_transcription`` runs everything in one call. Callers that must be
    able to abandon an utterance before it touches the desktop use ``prepare``
    and ``execute`` separately: ``prepare`` never runs an action, it returns a
    result with ``awaiting_execution`` set and ``execute`` runs it.
    """

    def __init__(
        self,
        resolver: Resolver,
        gate: ExecutionGate,
        executor: ActionExecutor,
        transcriber: Optional[Transcriber] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        require_confirmation: bool = True,
        custom_commands: Optional[List[CustomCommand]] = None,
        dictation_style: Optional[str] = None,
        context_provider: Optional[Callable[[], VoiceContext]] = None,
    ) -> None:
        self.resolver = resolver
        self.gate = gate
        self.executor = executor
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.require_confirmation = require_confirmation
        self.custom_commands = list(custom_commands or [])
        self.dictation_style = dictation_style
        self.context_provider = context_provider

    def transcribe(self, wav_bytes: bytes) -> TranscriptionResult:
        if self.transcriber is None:
            raise TranscriptionFailed("No transcriber configured")
        transcription = self.transcriber.transcribe(wav_bytes)
        logger.debug(
            "Transcribed %d bytes in %dms (confidence %.2f)",
            len(wav_bytes),
            transcription.duration_ms,
            transcription.confidence,
        )
        return transcription

    def process(self, wav_bytes: bytes, context: Optional[VoiceContext] = None) -> ProcessingResult:
        return self.process_transcription(self.transcribe(wav_bytes), context)

    def process_text(self, text: str, context: Optional[VoiceContext] = None) -> ProcessingResult:
        return self.process_transcription(TranscriptionResult(text=text), context)

    def process_transcription(
        self,
        transcription: TranscriptionResult,
        context: Optional[VoiceContext] = None,
        voice_session_id: Optional[int] = None,
    ) -> ProcessingResult:
        prepared = self.prepare(transcription, context, voice_session_id)
        if prepared.awaiting_execution:
            return self.execute(prepared)
        return prepared

    def prepare(
        self,
        transcription: TranscriptionResult,
        context: Optional[VoiceContext] = None,
        voice_session_id: Optional[int] = None,
    ) -> ProcessingResult:
        """Resolve and gate one utterance without executing it.

        Raises ``PendingActionExists`` while an earlier action still waits for
        confirmation, so a later "yes" can never confirm something the user
        no longer sees.
        """
        text = transcription.text.strip()
        if not text:
            return ProcessingResult(
                transcription=transcription,
                envelope=ActionEnvelope.no_action("empty_transcript"),
                executed=False,
                voice_session_id=voice_session_id,
            )

        outstanding = self.gate.pending()
        if outstanding is not None:
            raise PendingActionExists(
                f"Confirm or cancel the pending action first: {outstanding.summary}"
            )

        if context is None:
            context = self.context_provider() if self.context_provider else VoiceContext()
        conversation = self.gate.conversation
        envelope = self.resolver.resolve(
            text,
            context=context,
            history=conversation.format_for_llm() if conversation is not None else None,
            custom_commands=self.custom_commands,
            dictation_style=self.dictation_style,
        )

        if envelope.action_type == ActionType.NO_ACTION:
            self.gate.record(text, envelope, executed=False, voice_session_id=voice_session_id)
            return ProcessingResult(
                transcription=transcription,
                envelope=envelope,
                executed=False,
                voice_session_id=voice_session_id,
            )

        if self.require_confirmation:
            envelope = envelope.with_confirmation(requires_confirmation(envelope))
        else:
            envelope = envelope.with_confirmation(False)

        decision = self.gate.submit(envelope, transcript=text)
        if decision.pending is not None:
            self.gate.record(
                text, decision.pending.envelope, executed=None, voice_session_id=voice_session_id
            )
            return ProcessingResult(
                transcription=transcription,
                envelope=decision.pending.envelope,
                executed=False,
                pending=decision.pending,
                voice_session_id=voice_session_id,
            )

        return ProcessingResult(
            transcription=transcription,
            envelope=decision.execute_now,
            executed=False,
            awaiting_execution=True,
            voice_session_id=voice_session_id,
        )

    def execute(self, prepared: ProcessingResult) -> ProcessingResult:
        if not prepared.awaiting_execution:
            return prepared

        envelope, outcome = self._execute(prepared.envelope)
        if prepared.confirmed:
            self.gate.record_outcome(
                f"Confirmed: {summarize_action(envelope)}",
                envelope,
                outcome.executed,
                voice_session_id=prepared.voice_session_id,
            )
        else:
            self.gate.record(
                prepared.transcription.text.strip(),
                envelope,
                outcome.executed,
                voice_session_id=prepared.voice_session_id,
            )
        return ProcessingResult(
            transcription=prepared.transcription,
            envelope=envelope,
            executed=outcome.executed,
            execution_message=outcome.execution_message,
            execution_error=outcome.execution_error,
            confirmed=prepared.confirmed,
            voice_session_id=prepared.voice_session_id,
        )

    def pending_action(self) -> Optional[PendingAction]:
        return self.gate.pending()

    def take_pending(self, voice_session_id: Optional[int] = None) -> ProcessingResult:
        """Clear the pending slot and hand back its action, ready for ``execute``."""
        pending = self.gate.pending()
        envelope = self.gate.confirm()
        transcript = pending.transcript if pending is not None else ""
        return ProcessingResult(
            transcription=TranscriptionResult(text=transcript),
            envelope=envelope.with_confirmation(False),
            executed=False,
            awaiting_execution=True,
            confirmed=True,
            voice_session_id=voice_session_id,
        )

    def confirm_pending(self, voice_session_id: Optional[int] = None) -> ProcessingResult:
        return self.execute(self.take_pending(voice_session_id))

    def cancel_pending(self, voice_session_id: Optional[int] = None) -> bool:
        pending = self.gate.pending()
        cancelled = self.gate.cancel()
        if cancelled and pending is not None:
            self.gate.record_outcome(
                f"Cancelled: {pending.summary}",
                pending.envelope,
                False,
                voice_session_id=voice_session_id,
            )
        return cancelled

    def _execute(self, envelope: ActionEnvelope) -> Tuple[ActionEnvelope, ExecutionResult]:
        if envelope.is_conversational:
            outcome = ExecutionResult.ok(envelope.response_text or "")
        else:
            try:
                outcome = self.executor.execute(envelope)
            except Exception as exc:
                logger.exception("Executor raised for %s", envelope.action_type.value)
                outcome = ExecutionResult.failed(str(exc) or type(exc).__name__)

        if outcome.executed:
            if (
                envelope.response_text is None
                and envelope.action_type not in SILENT_TYPES
                and outcome.execution_message
            ):
                envelope = envelope.with_response(outcome.execution_message)
        else:
            error = outcome.execution_error or "Action failed"
            outcome = ExecutionResult.failed(error)
            logger.warning("Execution of %s failed: %s", envelope.action_type.value, error)
            if envelope.response_text is None:
                envelope = envelope.with_response(f"I couldn't complete that: {error}")

        return self._attach_speech(envelope), outcome

    def _attach_speech(self, envelope: ActionEnvelope) -> ActionEnvelope:
        if self.synthesizer is None or envelope.action_type in SILENT_TYPES:
            return envelope
        if envelope.payload.get("tts_base64"):
            return envelope

        text = envelope.response_text or summarize_action(envelope)
        try:
            audio = self.synthesizer.synthesize_base64(text)
        except SpeechSynthesisFailed as exc:
            logger.warning("Speech unavailable for %s: %s", envelope.action_type.value, exc)
            return envelope.with_payload(tts_error=str(exc))
        return envelope.with_payload(tts_base64=audio, audio_mime=self.synthesizer.mime_type)
