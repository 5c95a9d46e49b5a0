"""Live input level for the listening indicator."""

from __future__ import annotations

import threading

import numpy as np
from numpy.typing import NDArray


FLOOR_DBFS = -60.0


class LevelMeter:
    """Keep the level of the most recent capture chunk as a value in 0.0..1.0.

    The recorder feeds chunks from its capture thread; the session controller
    reads ``level()`` on its poll cadence.
    """

    def __init__(self, floor_dbfs: float = FLOOR_DBFS) -> None:
        self.floor_dbfs = floor_dbfs
        self._level = 0.0
        self._lock = threading.Lock()

    def feed(self, sample) -> float:
        mono = _to_float32_mono(sample)
        level = 0.0 if mono.size == 0 else self.dbfs_to_level(_rms_dbfs(mono))
        with self._lock:
            self._level = level
        return level

    def level(self) -> float:
        with self._lock:
            return self._level

    def reset(self) -> None:
        with self._lock:
            self._level = 0.0

    def dbfs_to_level(self, db: float) -> float:
        if db <= self.floor_dbfs:
            return 0.0
        return float(min(1.0, (db - self.floor_dbfs) / -self.floor_dbfs))


def _to_float32_mono(sample) -> NDArray[np.float32]:
    """Convert a captured chunk of any channel layout into mono float32."""
    arr = np.asarray(sample)
    if np.issubdtype(arr.dtype, np.integer):
        arr = arr.astype(np.float32) / float(np.iinfo(arr.dtype).max + 1)
    if arr.ndim == 0:
        return np.zeros(0, dtype=np.float32)
    if arr.ndim == 1:
        return arr.astype(np.float32, copy=False)
    if arr.ndim == 2:
        if arr.shape[0] <= 8 and arr.shape[0] <= arr.shape[1]:
            return np.mean(arr, axis=0).astype(np.float32, copy=False)
        return np.mean(arr, axis=1).astype(np.float32, copy=False)
    return np.mean(arr.reshape(arr.shape[0], -1), axis=0).astype(np.float32, copy=False)


def _rms_dbfs(x: NDArray[np.float32]) -> float:
    rms = np.sqrt(np.mean(x * x, dtype=np.float32) + 1e-12, dtype=np.float32)
    return float(20.0 * np.log10(float(rms) + 1e-12))
