"""Recorder that replays WAV clips as if they were captured from a microphone.

Each ``start_recording`` takes the next clip, streams it chunk by chunk on a
background thread (feeding the level meter as it goes) and ``stop_recording``
returns whatever was "heard" up to that point as WAV bytes.
"""

from __future__ import annotations

import io
import itertools
import logging
from pathlib import Path
import threading
import wave
from typing import Iterable, List, Optional, Tuple, Union

import numpy as np

from listenos.audio_level import LevelMeter
from listenos.errors import RecordingFailed


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_MS = 50


def discover_clips(paths: Iterable[Union[str, Path]]) -> List[Path]:
    """Expand directories into their ``*.wav`` files, keeping the given order."""
    clips: List[Path] = []
    for path in map(Path, paths):
        if path.is_dir():
            clips.extend(sorted(path.glob("*.wav")))
        else:
            clips.append(path)
    return clips


class WavClipRecorder:
    """Stand-in microphone for push-to-talk sessions driven from a console."""

    def __init__(
        self,
        clips: Iterable[Union[str, Path]],
        level_meter: Optional[LevelMeter] = None,
        chunk_ms: int = DEFAULT_CHUNK_MS,
        realtime: bool = True,
    ) -> None:
        self.clips = discover_clips(clips)
        self.level_meter = level_meter
        self.chunk_ms = chunk_ms
        self.realtime = realtime
        self.clip_finished = threading.Event()

        self._queue = itertools.cycle(self.clips)
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._frames: List[bytes] = []
        self._format: Optional[Tuple[int, int, int]] = None

    @property
    def is_recording(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_recording(self) -> None:
        if not self.clips:
            raise RecordingFailed("No WAV clips to replay")
        if self._thread is not None:
            raise RecordingFailed("Already recording")

        clip = next(self._queue)
        try:
            reader = wave.open(str(clip), "rb")
        except (OSError, EOFError, wave.Error) as exc:
            raise RecordingFailed(f"Cannot open {clip}: {exc}") from exc
        if reader.getsampwidth() != 2:
            reader.close()
            raise RecordingFailed(f"{clip} is not 16-bit PCM")

        with self._lock:
            self._frames = []
            self._format = (reader.getnchannels(), reader.getsampwidth(), reader.getframerate())
        if self.level_meter is not None:
            self.level_meter.reset()
        self._stop_event.clear()
        self.clip_finished.clear()
        self._thread = threading.Thread(target=self._run, args=(reader,), daemon=True)
        self._thread.start()
        logger.info("Replaying %s (%d Hz, %d ch)", clip.name, reader.getframerate(), reader.getnchannels())

    def stop_recording(self) -> bytes:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        with self._lock:
            frames, audio_format = list(self._frames), self._format
            self._frames = []
        if audio_format is None or not frames:
            return b""
        return _to_wav_bytes(frames, *audio_format)

    def _run(self, reader: wave.Wave_read) -> None:
        framerate = reader.getframerate()
        channels = reader.getnchannels()
        chunk_frames = max(1, framerate * self.chunk_ms // 1000)
        try:
            while True:
                data = reader.readframes(chunk_frames)
                if not data:
                    self.clip_finished.set()
                    break
                with self._lock:
                    self._frames.append(data)
                if self.level_meter is not None:
                    samples = np.frombuffer(data, dtype=np.int16).reshape(-1, channels)
                    self.level_meter.feed(samples)
                pause = self.chunk_ms / 1000.0 if self.realtime else 0.0
                if self._stop_event.wait(pause):
                    break
        finally:
            reader.close()


def _to_wav_bytes(frames: List[bytes], channels: int, sampwidth: int, framerate: int) -> bytes:
    """Join raw PCM frames back into a WAV file."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sampwidth)
        wav_file.setframerate(framerate)
        wav_file.writeframes(b"".join(frames))
    return buffer.getvalue()
