import argparse
import logging
import os
from pathlib import Path
import sys
from typing import Callable, Dict, List, Optional

from listenos.actions import dry_run_registry
from listenos.audio_level import LevelMeter
from listenos.api_client import IntentApiClient
from listenos.config import ListenConfig
from listenos.conversation import ConversationLog
from listenos.errors import ListenOSError, NoPendingAction, PendingActionExists
from listenos.execution_gate import ExecutionGate
from listenos.llm_client import RemoteIntentClassifier
from listenos.pipeline import ProcessingResult, VoicePipeline
from listenos.recorder import WavClipRecorder
from listenos.resolver import IntentResolver
from listenos.session import VoiceSession, VoiceSessionController
from listenos.speech import OpenAISpeechSynthesizer
from listenos.state_machine import State
from listenos.stt_client import OpenAITranscriber


CONFIRM_WORDS = {"yes", "y", "confirm", "do it"}
REJECT_WORDS = {"no", "n", "cancel", "never mind"}


def main() -> None:
    parser = argparse.ArgumentParser(description="ListenOS voice intent pipeline")
    parser.add_argument(
        "--mode",
        choices=["text", "ptt", "serve"],
        default=os.getenv("LISTENOS_MODE", "text"),
    )
    parser.add_argument("--wav", type=Path, help="Transcribe and process a WAV file, then exit")
    parser.add_argument(
        "--clips",
        type=Path,
        nargs="*",
        default=[],
        help="WAV files or directories replayed as microphone input in ptt mode",
    )
    parser.add_argument("--host", default=os.getenv("LISTENOS_HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("LISTENOS_PORT", "8000")))
    args = parser.parse_args()

    config = ListenConfig.from_env()
    log_level = getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s:%(lineno)d | %(message)s",
    )
    _configure_third_party_loggers(log_level)

    logging.info("ListenOS starting")
    logging.info("Log level: %s", config.log_level)
    logging.info("Run mode: %s", args.mode)
    logging.info(
        "Intent resolution: %s",
        config.api_url if config.use_remote_api else f"local + {config.llm_model}",
    )

    if args.mode == "serve":
        _serve(config, args.host, args.port)
        return

    pipeline = build_pipeline(config)
    if args.mode == "ptt":
        _run_push_to_talk(config, pipeline, args.clips)
        return
    if args.wav is not None:
        result = pipeline.process(args.wav.read_bytes())
        _print_result(result)
        return
    _run_console(pipeline)


def build_pipeline(config: ListenConfig) -> VoicePipeline:
    if config.use_remote_api:
        resolver = IntentApiClient(config.api_url, api_key=config.api_key or None)
    else:
        resolver = IntentResolver(RemoteIntentClassifier.from_config(config))

    gate = ExecutionGate(
        conversation=ConversationLog(),
        confirmation_timeout_s=config.confirmation_timeout_s,
    )
    synthesizer: Optional[OpenAISpeechSynthesizer] = None
    if config.tts_enabled:
        synthesizer = OpenAISpeechSynthesizer.from_config(config)

    return VoicePipeline(
        resolver=resolver,
        gate=gate,
        executor=dry_run_registry(),
        transcriber=OpenAITranscriber.from_config(config),
        synthesizer=synthesizer,
        require_confirmation=config.require_confirmation,
    )


def _run_console(pipeline: VoicePipeline) -> None:
    print("Type an utterance (Ctrl-D to quit).")
    for line in sys.stdin:
        text = line.strip()
        if not text:
            continue
        try:
            if pipeline.pending_action() is not None and text.lower() in CONFIRM_WORDS:
                result = pipeline.confirm_pending()
            elif pipeline.pending_action() is not None and text.lower() in REJECT_WORDS:
                pipeline.cancel_pending()
                print("cancelled")
                continue
            else:
                result = pipeline.process_text(text)
        except NoPendingAction:
            print("nothing to confirm (it may have expired)")
            continue
        except PendingActionExists as exc:
            print(f"{exc} [yes/no]")
            continue
        except ListenOSError as exc:
            logging.warning("Processing failed: %s", exc)
            continue
        _print_result(result)


def _print_result(result: ProcessingResult) -> None:
    envelope = result.envelope
    print(f"heard: {result.transcription.text}")
    print(f"action: {envelope.action_type.value} {envelope.payload or ''}".rstrip())
    if envelope.refined_text:
        print(f"type: {envelope.refined_text}")
    if result.pending is not None:
        print(f"confirm? {result.pending.summary} [yes/no]")
    elif result.execution_error:
        print(f"error: {result.execution_error}")
    if envelope.response_text:
        print(f"say: {envelope.response_text}")


PTT_HELP = "Enter: start/stop talking, h: hands-free, y: confirm, n: reject, c: cancel, q: quit"


class ConsoleSpeech:
    """Speech output for the console: prints replies instead of playing them."""

    def play_base64(self, audio_b64: str, mime_type: Optional[str] = None) -> None:
        print(f"(playing {len(audio_b64)} base64 chars of {mime_type or 'audio'})")

    def speak(self, text: str) -> None:
        print(f"say: {text}")


class SessionPrinter:
    """Print one line per state change, plus a level bar whenever the bar length moves."""

    def __init__(self, out: Callable[[str], None] = print) -> None:
        self.out = out
        self._last_state: Optional[State] = None
        self._last_bar = 0

    def __call__(self, session: VoiceSession) -> None:
        if session.state != self._last_state:
            self._last_state = session.state
            details = " | ".join(
                text for text in (session.status_text, session.response_text) if text
            )
            self.out(f"[{session.state.value}] {details}".rstrip())
            self._last_bar = 0
            return
        bar = int(session.audio_level * 20)
        if bar and bar != self._last_bar:
            self.out("#" * bar)
        self._last_bar = bar


def handle_ptt_command(controller: VoiceSessionController, command: str) -> bool:
    command = command.strip().lower()
    if not command:
        return controller.stop() if controller.is_active else controller.start()
    actions: Dict[str, Callable[[], bool]] = {
        "h": lambda: controller.start(handsfree=True),
        "y": controller.confirm,
        "yes": controller.confirm,
        "n": controller.reject,
        "no": controller.reject,
        "c": controller.cancel,
    }
    action = actions.get(command)
    if action is None:
        print(PTT_HELP)
        return False
    return action()


def _run_push_to_talk(config: ListenConfig, pipeline: VoicePipeline, clips: List[Path]) -> None:
    meter = LevelMeter()
    recorder = WavClipRecorder(clips, level_meter=meter)
    if not recorder.clips:
        logging.warning("No --clips given; recordings will fail to start")
    controller = VoiceSessionController.from_config(
        config,
        pipeline,
        recorder,
        level_meter=meter,
        speech=ConsoleSpeech(),
        on_change=SessionPrinter(),
    )
    print(PTT_HELP)
    try:
        for line in sys.stdin:
            if line.strip().lower() == "q":
                break
            handle_ptt_command(controller, line)
    finally:
        if controller.is_active:
            controller.cancel()
        controller.shutdown()


def _serve(config: ListenConfig, host: str, port: int) -> None:
    import uvicorn

    from listenos.api import create_app

    uvicorn.run(create_app(config), host=host, port=port, log_level=config.log_level.lower())


def _configure_third_party_loggers(app_log_level: int) -> None:
    """Keep app logs verbose while preventing third-party transport log spam."""
    noisy_loggers = {
        "urllib3": logging.WARNING,
        "urllib3.connectionpool": logging.WARNING,
        "httpcore": logging.WARNING,
        "httpx": logging.WARNING,
        "uvicorn.access": logging.INFO if app_log_level <= logging.DEBUG else logging.WARNING,
        "asyncio": logging.INFO if app_log_level <= logging.DEBUG else logging.WARNING,
    }
    for logger_name, logger_level in noisy_loggers.items():
        logger = logging.getLogger(logger_name)
        logger.setLevel(logger_level)
        logger.propagate = True


if __name__ == "__main__":
    main()
