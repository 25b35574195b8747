# raster.py
import os
import math
import tempfile
from pathlib import Path
from typing import Union

import numpy as np
from numba import njit, prange
import pyvips as vips

from errors import EncodeError, OutputError

NORMALIZE_EPS = 1e-8

# ========================================
# normalization
# ========================================

@njit(cache=True, nogil=True)
def value_range(values):
    """
    Single pass (min, max) over the finite entries of `values`.
    Returns (nan, nan) when there is no finite entry.
    """
    lo = math.inf
    hi = -math.inf
    for i in range(values.size):
        v = values[i]
        if not math.isfinite(v):
            continue
        if v < lo: lo = v
        if v > hi: hi = v
    if lo > hi:
        return math.nan, math.nan
    return lo, hi

@njit(cache=True, nogil=True, parallel=True)
def _rescale(values, lo, spread):
    for i in prange(values.size):
        values[i] = (values[i] - lo) / spread

def normalize(values: np.ndarray, eps: float = NORMALIZE_EPS) -> tuple[float, float]:
    """
    Rescale `values` in place to [0,1] using its own min/max and return
    the (min, max) seen before rescaling.

    When the spread is below `eps` (a constant field, or no finite value at
    all) every entry is set to 0.0 so the whole image lands on ramp[0].
    """
    lo, hi = value_range(values)
    spread = hi - lo
    if spread >= eps:
        _rescale(values, lo, spread)
    else:
        values.fill(0.0)
    return float(lo), float(hi)

# ========================================
# ramp lookup
# ========================================

@njit(cache=True, nogil=True, parallel=True)
def ramp_indices(values, n):
    """
    floor(p * (n-1)) clamped to [0, n-1]; p >= 1 is exactly n-1 and
    NaN goes to 0. No rounding to nearest, no blending.
    """
    out = np.empty(values.size, np.int64)
    top = n - 1
    for i in prange(values.size):
        p = values[i]
        if p >= 1.0:
            out[i] = top
        elif p > 0.0:
            k = int(math.floor(p * top))
            out[i] = k if k < top else top
        else:
            out[i] = 0  # p <= 0 or NaN
    return out

@njit(cache=True, nogil=True, parallel=True)
def _paint(idx, ramp, out):
    for i in prange(idx.size):
        k = idx[i]
        for c in range(4):
            out[i, c] = ramp[k, c]

def colorize(values: np.ndarray, ramp: np.ndarray, width: int, height: int) -> np.ndarray:
    """
    Map normalized values (flat, row-major, index y*width + x) through an
    (n,4) RGBA ramp. Returns uint8 (height, width, 4): pixel [y, x] with y
    pointing down.
    """
    values = np.ascontiguousarray(values, dtype=np.float64)
    if values.size != width * height:
        raise ValueError(f"buffer has {values.size} values for a {width}x{height} image")
    ramp = np.ascontiguousarray(ramp, dtype=np.uint8)
    if ramp.ndim != 2 or ramp.shape[1] != 4 or ramp.shape[0] < 1:
        raise ValueError(f"ramp must have shape (n>=1, 4), got {ramp.shape}")
    idx = ramp_indices(values, ramp.shape[0])
    out = np.empty((values.size, 4), np.uint8)
    _paint(idx, ramp, out)
    return out.reshape(height, width, 4)

# ========================================
# image output
# ========================================

def rgba_to_vips(rgba: np.ndarray) -> vips.Image:
    if rgba.dtype != np.uint8:
        rgba = rgba.astype(np.uint8, copy=False)
    rgba = np.ascontiguousarray(rgba)
    H, W, bands = rgba.shape
    return vips.Image.new_from_memory(rgba.data, W, H, bands, "uchar")

def encode_image(rgba: np.ndarray, suffix: str = ".png") -> bytes:
    """
    Encode an (H,W,4) uint8 image to bytes WITHOUT saving to disk.
    The suffix picks the libvips saver (".png", ".webp", ".tif", ...).
    """
    ext = (suffix or ".png").lower()
    try:
        img = rgba_to_vips(rgba)
        if ext in [".jpg", ".jpeg"]:
            # JPEG can't store alpha
            return img.extract_band(0, n=3).write_to_buffer(ext, Q=95, strip=True)
        return img.write_to_buffer(ext, strip=True)
    except vips.Error as e:
        raise EncodeError(f"failed to encode {ext} image: {e}") from e

def write_atomic(data: bytes, out_path: Union[str, Path]) -> None:
    """
    Write `data` to a temp file next to `out_path` and rename it into place,
    so a failed write never leaves a partial file at `out_path`.
    """
    out_path = Path(out_path)
    try:
        fd, tmp = tempfile.mkstemp(prefix=f".{out_path.name}.", suffix=".tmp", dir=out_path.parent)
    except OSError as e:
        raise OutputError(f"failed to create output file '{out_path}': {e}") from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(tmp, 0o644)
        os.replace(tmp, out_path)
    except OSError as e:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise OutputError(f"failed to write output file '{out_path}': {e}") from e

def save_image(rgba: np.ndarray, out_path: Union[str, Path]) -> None:
    suffix = Path(out_path).suffix or ".png"
    write_atomic(encode_image(rgba, suffix), out_path)

# ---------- warmup ----------

def warmup_kernels():
    try:
        v = np.linspace(-1.0, 3.0, 8)
        normalize(v)
        ramp = np.zeros((3, 4), np.uint8)
        colorize(v, ramp, 4, 2)
    except Exception as e:
        print(f"[jit] raster warmup skipped: {e}")
