from __future__ import annotations

import numpy as np
import pytest

from listenos.audio_level import LevelMeter


def test_silence_is_zero():
    meter = LevelMeter()
    assert meter.feed(np.zeros(1600, dtype=np.float32)) == 0.0
    assert meter.level() == 0.0


def test_full_scale_sine_is_near_top():
    t = np.linspace(0, 1, 16000, endpoint=False, dtype=np.float32)
    level = LevelMeter().feed(np.sin(2 * np.pi * 440 * t))
    # -3 dBFS on a 60 dB range
    assert level == pytest.approx(0.95, abs=0.01)


def test_int16_stereo_matches_float_mono():
    mono = np.full(800, 0.1, dtype=np.float32)
    stereo_int = np.stack([mono, mono], axis=1)
    stereo_int = (stereo_int * 32768).astype(np.int16)

    meter = LevelMeter()
    assert meter.feed(stereo_int) == pytest.approx(LevelMeter().feed(mono), abs=1e-3)


def test_dbfs_mapping_clamps_to_unit_range():
    meter = LevelMeter(floor_dbfs=-60)
    assert meter.dbfs_to_level(-80) == 0.0
    assert meter.dbfs_to_level(-30) == pytest.approx(0.5)
    assert meter.dbfs_to_level(6) == 1.0


def test_reset_and_empty_chunks():
    meter = LevelMeter()
    meter.feed(np.full(100, 0.5, dtype=np.float32))
    assert meter.level() > 0
    meter.reset()
    assert meter.level() == 0.0
    assert meter.feed(np.array([], dtype=np.float32)) == 0.0
