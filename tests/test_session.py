from __future__ import annotations

from listenos.conversation import ConversationLog
from listenos.execution_gate import ExecutionGate
from listenos.messages import ActionEnvelope, ActionType, ExecutionResult
from listenos.pipeline import VoicePipeline
from listenos.session import VoiceSessionController
from listenos.state_machine import State

from tests.helpers.fakes import (
    DeferredExecutor,
    FakeRecorder,
    FakeResolver,
    FakeSpeechOutput,
    FakeSynthesizer,
    FakeTranscriber,
    InlineExecutor,
    ManualTimerFactory,
    RecordingExecutor,
)


class _Harness:
    def __init__(
        self,
        envelope: ActionEnvelope,
        execution: ExecutionResult = None,
        transcriber: FakeTranscriber = None,
        synthesizer: FakeSynthesizer = None,
        executor=None,
        **kwargs,
    ):
        self.actions = RecordingExecutor(execution or ExecutionResult.ok("done"))
        self.pipeline = VoicePipeline(
            resolver=FakeResolver(envelope),
            gate=ExecutionGate(conversation=ConversationLog()),
            executor=self.actions,
            transcriber=transcriber or FakeTranscriber(),
            synthesizer=synthesizer,
        )
        self.timers = ManualTimerFactory()
        self.recorder = FakeRecorder()
        self.snapshots = []
        self.controller = VoiceSessionController(
            self.pipeline,
            self.recorder,
            timer_factory=self.timers,
            executor=executor or InlineExecutor(),
            on_change=self.snapshots.append,
            **kwargs,
        )

    def utter(self) -> None:
        assert self.controller.start()
        assert self.controller.stop()

    def live_delays(self):
        return [timer.delay for timer in self.timers.live()]


def _open_app() -> ActionEnvelope:
    return ActionEnvelope.command(ActionType.OPEN_APP, app="spotify")


def _send_email() -> ActionEnvelope:
    return ActionEnvelope.command(ActionType.SEND_EMAIL, to="sam@example.com")


def test_successful_command_shows_success_then_idles():
    h = _Harness(_open_app())
    h.utter()

    assert h.controller.state == State.SUCCESS
    assert h.recorder.started == 1 and h.recorder.stopped == 1
    assert h.controller.timers.scheduled() == ["dismiss"]
    assert h.live_delays() == [0.6]
    assert [snapshot.state for snapshot in h.snapshots] == [State.LISTENING, State.PROCESSING, State.SUCCESS]

    h.timers.fire(0.6)
    assert h.controller.state == State.IDLE
    assert h.controller.session.session_id == 0
    assert h.timers.live() == []


def test_conversational_reply_stays_visible_longer():
    h = _Harness(ActionEnvelope.respond("It is 3pm."))
    h.utter()
    assert h.controller.state == State.SUCCESS
    assert h.controller.session.response_text == "It is 3pm."
    assert h.live_delays() == [4.5]


def test_failed_execution_shows_error():
    h = _Harness(_open_app(), execution=ExecutionResult.failed("App not found"))
    h.utter()
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "App not found"
    assert h.live_delays() == [2.8]
    h.timers.fire(2.8)
    assert h.controller.state == State.IDLE


def test_no_action_returns_to_idle_silently():
    h = _Harness(ActionEnvelope.no_action("farewell_phrase", response_text="ignored"))
    speech = FakeSpeechOutput()
    h.controller.speech = speech
    h.utter()
    assert h.controller.state == State.IDLE
    assert h.timers.live() == []
    assert speech.said == [] and speech.played == []


def test_transcription_error_shows_brief_error():
    h = _Harness(_open_app(), transcriber=FakeTranscriber(fail=RuntimeError("stt down")))
    h.utter()
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "Error processing"
    assert h.live_delays() == [0.8]
    assert h.actions.executed == []


def test_recorder_failure_on_start():
    h = _Harness(_open_app())
    h.recorder.fail_start = True
    assert h.controller.start() is False
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "Failed to start"
    assert h.controller.is_active is False
    assert h.live_delays() == [2.0]


def test_confirmation_confirmed():
    h = _Harness(_send_email())
    h.utter()

    assert h.controller.state == State.CONFIRM
    assert h.controller.session.pending.summary == "Send email"
    assert h.controller.session.status_text == "Send email"
    assert h.live_delays() == [25.0]
    assert h.actions.executed == []

    assert h.controller.confirm() is True
    assert h.controller.state == State.SUCCESS
    assert len(h.actions.executed) == 1
    assert h.live_delays() == [0.6]


def test_confirmation_rejected_never_executes():
    h = _Harness(_send_email())
    h.utter()
    assert h.controller.reject() is True
    assert h.controller.state == State.IDLE
    assert h.actions.executed == []
    assert h.pipeline.pending_action() is None


def test_confirmation_times_out():
    h = _Harness(_send_email())
    h.utter()
    h.timers.fire(25.0)
    assert h.controller.state == State.IDLE
    assert h.pipeline.pending_action() is None
    assert h.actions.executed == []


def test_confirmed_action_that_fails_is_not_retried():
    h = _Harness(_send_email(), execution=ExecutionResult.failed("SMTP refused"))
    h.utter()
    assert h.controller.confirm() is True
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "SMTP refused"
    assert len(h.actions.executed) == 1


def test_start_is_ignored_while_confirming():
    h = _Harness(_send_email())
    h.utter()
    assert h.controller.start() is False
    assert h.controller.state == State.CONFIRM
    assert h.recorder.started == 1


def test_start_and_stop_are_idempotent():
    h = _Harness(_open_app())
    assert h.controller.stop() is False
    assert h.controller.start() is True
    assert h.controller.start() is False
    assert h.recorder.started == 1


def test_handsfree_start():
    h = _Harness(_open_app())
    h.controller.start(handsfree=True)
    assert h.controller.state == State.HANDSFREE


def test_new_session_starts_from_success_display():
    h = _Harness(_open_app())
    h.utter()
    first_id = h.snapshots[-1].session_id
    assert h.controller.start() is True
    assert h.controller.state == State.LISTENING
    assert h.controller.session.session_id == first_id + 1


def test_cancel_while_listening_discards_recording():
    h = _Harness(_open_app())
    h.controller.start()
    assert h.controller.cancel() is True
    assert h.controller.state == State.IDLE
    assert h.recorder.stopped == 1
    assert h.actions.executed == []
    assert h.controller.stop() is False


def test_cancel_is_ignored_while_processing():
    deferred = DeferredExecutor()
    h = _Harness(_open_app(), executor=deferred)
    h.utter()
    assert h.controller.state == State.PROCESSING
    assert h.controller.cancel() is False
    assert h.controller.state == State.PROCESSING
    deferred.run_all()
    assert h.controller.state == State.SUCCESS


def test_processing_timeout_discards_late_result():
    deferred = DeferredExecutor()
    h = _Harness(_send_email(), executor=deferred)
    h.utter()
    assert h.live_delays() == [15.0]

    h.timers.fire(15.0)
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "Error processing"

    deferred.run_all()
    assert h.controller.state == State.ERROR
    assert h.pipeline.pending_action() is None
    assert h.actions.executed == []


def test_processing_timeout_prevents_late_execution():
    deferred = DeferredExecutor()
    h = _Harness(_open_app(), executor=deferred)
    h.utter()

    h.timers.fire(15.0)
    assert h.controller.state == State.ERROR

    deferred.run_all()
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "Error processing"
    assert h.actions.executed == []
    assert h.pipeline.gate.conversation.messages() == []


def test_confirmed_action_runs_in_the_background():
    deferred = DeferredExecutor()
    h = _Harness(_send_email(), executor=deferred)
    h.utter()
    deferred.run_all()
    assert h.controller.state == State.CONFIRM

    assert h.controller.confirm() is True
    assert h.controller.state == State.PROCESSING
    assert h.controller.session.status_text == "Working..."
    assert h.actions.executed == []
    assert h.live_delays() == [15.0]

    deferred.run_all()
    assert h.controller.state == State.SUCCESS
    assert len(h.actions.executed) == 1
    assert h.live_delays() == [0.6]


def test_confirmed_action_that_hangs_times_out_without_running():
    deferred = DeferredExecutor()
    h = _Harness(_send_email(), executor=deferred)
    h.utter()
    deferred.run_all()
    h.controller.confirm()

    h.timers.fire(15.0)
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "Error processing"
    assert h.live_delays() == [0.8]

    deferred.run_all()
    assert h.controller.state == State.ERROR
    assert h.actions.executed == []
    assert h.pipeline.pending_action() is None


def test_confirm_after_pending_expired():
    h = _Harness(_send_email())
    h.utter()
    h.pipeline.gate.cancel()
    assert h.controller.confirm() is False
    assert h.controller.state == State.ERROR
    assert h.controller.session.status_text == "Confirmation expired"
    assert h.actions.executed == []


def test_conversation_entries_carry_the_session_id():
    h = _Harness(_open_app())
    h.utter()
    h.timers.fire(0.6)

    confirm = _Harness(_send_email())
    confirm.utter()
    confirm.controller.confirm()

    assert [m.voice_session_id for m in h.pipeline.gate.conversation.messages()] == [1, 1]
    messages = confirm.pipeline.gate.conversation.messages()
    assert [m.content for m in messages][-1] == "Confirmed: Send email"
    assert {m.voice_session_id for m in messages} == {1}


def test_rejected_confirmation_is_logged_with_session_id():
    h = _Harness(_send_email())
    h.utter()
    h.controller.reject()
    last = h.pipeline.gate.conversation.messages()[-1]
    assert last.content == "Cancelled: Send email"
    assert last.voice_session_id == 1
    assert last.to_dict()["voice_session_id"] == 1


def test_level_is_polled_only_while_recording():
    class _Meter:
        def level(self):
            return 0.7

    h = _Harness(_open_app(), level_meter=_Meter())
    h.controller.start()
    assert h.live_delays() == [0.05]

    h.timers.fire(0.05)
    assert h.controller.session.audio_level == 0.7
    assert h.live_delays() == [0.05]

    h.controller.stop()
    assert 0.05 not in h.live_delays()
    assert h.controller.session.audio_level == 0.0


def test_spoken_reply_prefers_synthesized_audio():
    speech = FakeSpeechOutput()
    h = _Harness(ActionEnvelope.respond("Hello!"), synthesizer=FakeSynthesizer(), speech=speech)
    h.utter()
    assert speech.played == ["QUJD"]
    assert speech.said == []


def test_spoken_reply_falls_back_to_text():
    speech = FakeSpeechOutput()
    h = _Harness(ActionEnvelope.respond("Hello!"), speech=speech)
    h.utter()
    assert speech.said == ["Hello!"]


def test_speech_failure_does_not_break_session():
    class _BrokenSpeech:
        def play_base64(self, audio_b64, mime_type=None):
            raise RuntimeError("audio device busy")

        def speak(self, text):
            raise RuntimeError("audio device busy")

    h = _Harness(ActionEnvelope.respond("Hello!"), speech=_BrokenSpeech())
    h.utter()
    assert h.controller.state == State.SUCCESS
