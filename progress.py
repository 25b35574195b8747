# progress.py
import math
import sys
import threading
from typing import Optional, TextIO

from grid import CompletionCounter

# ========================================
# observers
# ========================================

class ProgressObserver:
    """Receives progress events from a ProgressReporter thread."""

    def update(self, done: int, total: int, percent: float) -> None:
        pass

    def complete(self) -> None:
        pass

    def aborted(self, done: int, total: int, percent: float) -> None:
        pass


class NullProgress(ProgressObserver):
    pass


class TextProgress(ProgressObserver):
    """
    Single status line rewritten in place with carriage returns:

        rendering... 42.00% done
        rendering complete
    """

    def __init__(self, stream: Optional[TextIO] = None, erase_width: int = 80):
        self.stream = stream
        self.erase = " " * int(erase_width)

    def _write(self, s: str) -> None:
        out = self.stream if self.stream is not None else sys.stdout
        out.write(f"\r{self.erase}\r{s}")
        out.flush()

    def update(self, done, total, percent):
        self._write(f"rendering... {percent:.2f}% done")

    def complete(self):
        self._write("rendering complete\n")

    def aborted(self, done, total, percent):
        self._write(f"rendering aborted at {percent:.2f}%\n")

# ========================================
# reporter thread
# ========================================

class ProgressReporter(threading.Thread):
    """
    Polls a CompletionCounter every `interval` seconds and forwards
    whole-percent crossings to an observer.

    The reporter only reads the counter. It ends on its own once the
    counter reaches `total` (after calling observer.complete() once), or
    when stop() is called, in which case it reports completion if the
    grid finished and observer.aborted() otherwise. Join it before using
    the results so a status line is never cut off.
    """

    def __init__(
        self,
        counter: CompletionCounter,
        total: int,
        observer: Optional[ProgressObserver] = None,
        interval: float = 0.05,
    ):
        super().__init__(name="progress", daemon=True)
        self.counter = counter
        self.total = int(total)
        self.observer = observer if observer is not None else NullProgress()
        self.interval = max(0.0, float(interval))
        self._stop_evt = threading.Event()
        self.finished = threading.Event()

    def stop(self) -> None:
        self._stop_evt.set()

    def run(self) -> None:
        try:
            next_mark = 1.0
            while True:
                # read the stop flag first: once it is set the counter is final
                stopping = self._stop_evt.is_set()
                done = self.counter.value()
                if done >= self.total:
                    self.observer.complete()
                    return
                percent = done / self.total * 100.0
                if stopping:
                    self.observer.aborted(done, self.total, percent)
                    return
                if percent >= next_mark:
                    self.observer.update(done, self.total, percent)
                    next_mark = math.floor(percent) + 1.0
                self._stop_evt.wait(self.interval)
        finally:
            self.finished.set()
