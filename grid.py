# grid.py
import os
import threading
import concurrent.futures as cf
from typing import Callable, Optional

import numpy as np

from errors import FieldError, RenderCancelled

Field = Callable[[int, int], float]

# ========================================
# partitioning
# ========================================

def default_workers() -> int:
    return max(1, os.cpu_count() or 1)

def stripe_columns(width: int, workers: int, index: int) -> range:
    """Columns owned by worker `index`: every x with x % workers == index."""
    return range(index, width, workers)

def stripe_partition(width: int, workers: int) -> list[range]:
    return [stripe_columns(width, workers, i) for i in range(workers)]

# ========================================
# completion counter
# ========================================

class CompletionCounter:
    """
    Number of evaluated cells, split into one slot per worker.

    Each slot has a single writer (its worker), so increments need no lock;
    the reader sums the slots. A worker bumps its slot only after the cell
    it just computed has been stored, so any count observed by the reader
    covers cells that are already in the buffer.
    """

    def __init__(self, workers: int):
        self._slots = np.zeros(int(workers), np.int64)

    @property
    def workers(self) -> int:
        return self._slots.size

    def add(self, worker: int, n: int = 1) -> None:
        self._slots[worker] += n

    def value(self) -> int:
        return int(self._slots.sum())

# ========================================
# evaluation
# ========================================

class _Abort:
    """First-error-wins record shared by all workers of one evaluation."""

    def __init__(self, cancel: Optional[threading.Event]):
        self.flag = threading.Event()
        self.cancel = cancel
        self.error: Optional[FieldError] = None
        self._lock = threading.Lock()

    def stopped(self) -> bool:
        if self.flag.is_set():
            return True
        if self.cancel is not None and self.cancel.is_set():
            self.flag.set()
            return True
        return False

    def fail(self, x: int, y: int, exc: BaseException) -> None:
        with self._lock:
            if self.error is None:
                err = FieldError(x, y, exc)
                err.__cause__ = exc
                self.error = err
        self.flag.set()


def _evaluate_stripe(
    field: Field,
    buf: np.ndarray,
    width: int,
    height: int,
    columns: range,
    worker: int,
    counter: CompletionCounter,
    abort: _Abort,
) -> None:
    for x in columns:
        for y in range(height):
            if abort.stopped():
                return
            try:
                buf[y * width + x] = field(x, y)
            except Exception as e:
                abort.fail(x, y, e)
                return
            counter.add(worker)


def evaluate_grid(
    field: Field,
    width: int,
    height: int,
    *,
    workers: Optional[int] = None,
    counter: Optional[CompletionCounter] = None,
    cancel: Optional[threading.Event] = None,
) -> np.ndarray:
    """
    Evaluate `field(x, y)` on every cell of a width x height grid.

    Returns a flat float64 buffer with buf[y*width + x] == field(x, y).
    Columns are dealt round-robin to `workers` threads; each cell is
    computed exactly once. If the field raises, the first failure is
    kept, every worker stops at its next cell, and FieldError is raised
    once all of them have returned. Setting `cancel` stops the workers
    the same way and raises RenderCancelled.
    """
    width = int(width)
    height = int(height)
    if width <= 0 or height <= 0:
        raise ValueError(f"grid size must be positive, got {width}x{height}")
    W = default_workers() if workers is None else int(workers)
    if W < 1:
        raise ValueError(f"workers must be >= 1, got {W}")
    if counter is None:
        counter = CompletionCounter(W)
    elif counter.workers != W:
        raise ValueError(f"counter has {counter.workers} slots for {W} workers")

    buf = np.zeros(width * height, np.float64)
    abort = _Abort(cancel)

    with cf.ThreadPoolExecutor(max_workers=W, thread_name_prefix="grid") as ex:
        futs = [
            ex.submit(_evaluate_stripe, field, buf, width, height, cols, i, counter, abort)
            for i, cols in enumerate(stripe_partition(width, W))
        ]
        cf.wait(futs)

    if abort.error is not None:
        raise abort.error
    for f in futs:
        f.result()
    if abort.flag.is_set():
        done = counter.value()
        raise RenderCancelled(f"evaluation cancelled after {done} of {width * height} cells")
    return buf
