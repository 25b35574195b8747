#!/usr/bin/env python
"""
fieldrender.py

Render a scalar field f(x, y) over a pixel grid as a heatmap image:

1) load the color ramp (gradient image or inline color list, gamma corrected)
2) evaluate f on every pixel with a pool of worker threads, columns dealt
   round-robin (x % workers), while a reporter thread prints progress
3) rescale the values to [0,1] with their global min/max
4) index the ramp with floor(p * (n-1)) and assemble an RGBA image
5) encode with libvips and move the file into place atomically

This script is both:
- a CLI tool
- an importable module (RenderOptions + render / run)

Dependencies:
  pip install numpy numba pyvips
"""

from __future__ import annotations

import argparse
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pyvips

import colors
import fields
import raster
from errors import RenderCancelled, RenderError
from grid import CompletionCounter, Field, default_workers, evaluate_grid
from progress import NullProgress, ProgressObserver, ProgressReporter, TextProgress


# ----------------------------
# Config
# ----------------------------

@dataclass
class RenderOptions:
    heatmap: str
    output: Union[str, Path]
    width: int
    height: int
    field: Field
    gamma: float = colors.DEFAULT_GAMMA
    workers: Optional[int] = None          # None -> detected parallelism
    progress: Optional[ProgressObserver] = None  # None -> TextProgress on stdout
    poll_interval: float = 0.05
    timeout: Optional[float] = None        # seconds; sets the cancel token
    cancel: Optional[threading.Event] = None
    vips_threads: Optional[int] = None


@dataclass
class RenderResult:
    image: np.ndarray      # (height, width, 4) uint8
    vmin: float
    vmax: float
    field_seconds: float


def set_vips_threads(threads: Optional[int]) -> None:
    """
    Set libvips concurrency (threads used per operation) for this process.
    """
    if threads is None:
        return
    pyvips.concurrency_set(int(threads))


# ----------------------------
# Pipeline
# ----------------------------

def _evaluate_with_progress(opts: RenderOptions, workers: int) -> np.ndarray:
    total = int(opts.width) * int(opts.height)
    counter = CompletionCounter(workers)
    observer = opts.progress if opts.progress is not None else TextProgress()
    reporter = ProgressReporter(counter, total, observer, interval=opts.poll_interval)

    cancel = opts.cancel
    timer = None
    timed_out = threading.Event()
    if opts.timeout is not None:
        cancel = cancel if cancel is not None else threading.Event()

        def _expire():
            timed_out.set()
            cancel.set()

        timer = threading.Timer(float(opts.timeout), _expire)
        timer.daemon = True

    reporter.start()
    if timer is not None:
        timer.start()
    try:
        return evaluate_grid(
            opts.field,
            opts.width,
            opts.height,
            workers=workers,
            counter=counter,
            cancel=cancel,
        )
    except RenderCancelled as e:
        if timed_out.is_set():
            raise RenderCancelled(f"timed out after {opts.timeout:g}s: {e}") from e
        raise
    finally:
        if timer is not None:
            timer.cancel()
        reporter.stop()
        reporter.join()


def render(opts: RenderOptions) -> RenderResult:
    """
    Load the ramp, evaluate the field and build the RGBA image. No file I/O
    besides reading the heatmap.
    """
    if int(opts.width) <= 0 or int(opts.height) <= 0:
        raise ValueError(f"grid size must be positive, got {opts.width}x{opts.height}")
    workers = default_workers() if opts.workers is None else int(opts.workers)
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    # ramp problems abort before any field work
    ramp = colors.load_heatmap(opts.heatmap, opts.gamma)

    t0 = time.perf_counter()
    data = _evaluate_with_progress(opts, workers)
    field_seconds = time.perf_counter() - t0

    vmin, vmax = raster.normalize(data)
    img = raster.colorize(data, ramp, int(opts.width), int(opts.height))
    return RenderResult(image=img, vmin=vmin, vmax=vmax, field_seconds=field_seconds)


def run(opts: RenderOptions) -> RenderResult:
    """render() then encode and write opts.output; nothing is left at the
    destination unless the whole render succeeded."""
    set_vips_threads(opts.vips_threads)
    res = render(opts)
    raster.save_image(res.image, opts.output)
    return res


# ----------------------------
# CLI
# ----------------------------

def main(argv=None) -> int:
    p = argparse.ArgumentParser(
        "fieldrender",
        description=(
            "Render a scalar field f(x, y) as a heatmap image.\n"
            "Fields are named built-ins, module:factory references, "
            "or expressions in x, y."
        ),
    )
    p.add_argument(
        "--field",
        default="dipole",
        help="Field: built-in name, module:factory, or expression like 'sin(x/20)*cos(y/20)'.",
    )
    p.add_argument(
        "--heatmap",
        default="black:firebrick:gold:white",
        help="Gradient image path, or colon-separated colors (names or hex).",
    )
    p.add_argument("--gamma", type=float, default=colors.DEFAULT_GAMMA, help="Gamma applied to the heatmap colors.")
    p.add_argument("--pix", type=int, default=512, help="Square size when --width/--height are not given.")
    p.add_argument("--width", type=int, default=None)
    p.add_argument("--height", type=int, default=None)
    p.add_argument("--out", type=str, default="field.png", help="Output image; suffix picks the format.")
    p.add_argument("--workers", type=int, default=None, help="Evaluator threads (default: CPU count).")
    p.add_argument("--timeout", type=float, default=None, help="Give up after this many seconds.")
    p.add_argument("--quiet", "-q", action="store_true", help="No progress line.")
    p.add_argument("--vips-threads", type=int, default=None,
                   help="libvips threads per operation (like VIPS_CONCURRENCY).")
    p.add_argument("--list-fields", action="store_true", help="Print built-in field names and exit.")

    args = p.parse_args(argv)

    if args.list_fields:
        for name in sorted(fields.FIELDS):
            print(name)
        return 0

    width = args.width if args.width is not None else args.pix
    height = args.height if args.height is not None else args.pix
    if width <= 0 or height <= 0:
        p.error(f"grid size must be positive, got {width}x{height}")
    if args.workers is not None and args.workers < 1:
        p.error("--workers must be >= 1")

    try:
        field = fields.resolve_field(args.field, width, height)
    except ValueError as e:
        p.error(str(e))

    opts = RenderOptions(
        heatmap=args.heatmap,
        output=args.out,
        width=width,
        height=height,
        field=field,
        gamma=args.gamma,
        workers=args.workers,
        progress=NullProgress() if args.quiet else TextProgress(),
        timeout=args.timeout,
        vips_threads=args.vips_threads,
    )

    print(f"will save to {args.out}")
    try:
        res = run(opts)
    except RenderError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(f"field time: {res.field_seconds:.3f}s")
    print(f"range: [{res.vmin:.6g}, {res.vmax:.6g}]")
    print(f"saved: {args.out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
