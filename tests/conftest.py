"""Shared fixtures: small ramps and a progress observer that records events."""

from __future__ import annotations

import threading

import numpy as np
import pytest

BLACK = (0, 0, 0, 255)
WHITE = (255, 255, 255, 255)
RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)


class RecordingProgress:
    def __init__(self) -> None:
        self.events: list[tuple] = []
        self._lock = threading.Lock()

    def update(self, done, total, percent):
        with self._lock:
            self.events.append(("update", done, total, percent))

    def complete(self):
        with self._lock:
            self.events.append(("complete",))

    def aborted(self, done, total, percent):
        with self._lock:
            self.events.append(("aborted", done, total, percent))

    def kinds(self) -> list[str]:
        return [e[0] for e in self.events]


@pytest.fixture()
def recorder() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture()
def ramp_bw() -> np.ndarray:
    return np.array([BLACK, WHITE], dtype=np.uint8)


@pytest.fixture()
def ramp_rgb() -> np.ndarray:
    return np.array([RED, GREEN, BLUE], dtype=np.uint8)
