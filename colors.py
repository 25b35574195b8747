import math
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pyvips

from errors import RampLoadError

DEFAULT_GAMMA = 1.0

_COLOR_NAME_MAP = {
    "black":   "000000",
    "white":   "FFFFFF",
    "red":     "FF0000",
    "green":   "00FF00",
    "blue":    "0000FF",
    "yellow":  "FFFF00",
    "cyan":    "00FFFF",
    "magenta": "FF00FF",
    "orange":  "FF8000",
    "purple":  "800080",
    "gray":    "808080",
    "grey":    "808080",
    "navy":    "000080",
    "teal":    "008080",
    "maroon":  "800000",
    "olive":   "808000",
    "firebrick": "B22222",
    "gold":    "FFD700",
    "seagreen": "2E8B57",
    "transparent": "00000000",
}

RGBA = tuple[int, int, int, int]

def parse_color_spec(spec: str, default: Optional[RGBA]) -> Optional[RGBA]:
    """
    Parse a color spec into (R,G,B,A) in 0..255.

    Accepts:
        - "RRGGBB" / "RRGGBBAA" hex
        - "#RRGGBB" / "#RRGGBBAA" hex
        - simple names: red, blue, yellow, ...
    Returns `default` when the spec can't be parsed.
    """
    if not isinstance(spec, str):
        return default

    s = spec.strip()
    if not s:
        return default

    if s.startswith("#"):
        s = s[1:]

    # Name → hex mapping
    lower = s.lower()
    if lower in _COLOR_NAME_MAP:
        s = _COLOR_NAME_MAP[lower]

    if len(s) not in (6, 8):
        return default

    try:
        r = int(s[0:2], 16)
        g = int(s[2:4], 16)
        b = int(s[4:6], 16)
        a = int(s[6:8], 16) if len(s) == 8 else 255
    except ValueError:
        return default
    return r, g, b, a

# ---------------------------------------------------------------------------
# Ramp sources
# ---------------------------------------------------------------------------

def _freeze(ramp: np.ndarray) -> np.ndarray:
    ramp = np.ascontiguousarray(ramp, dtype=np.uint8)
    ramp.setflags(write=False)
    return ramp


def ramp_from_spec(spec: str) -> np.ndarray:
    """'black:red:#FFFF00' -> (3,4) uint8 RGBA ramp."""
    parts = [p.strip() for p in spec.split(":") if p.strip()]
    if not parts:
        raise RampLoadError(f"empty heatmap color list {spec!r}")
    out = []
    for p in parts:
        c = parse_color_spec(p, None)
        if c is None:
            raise RampLoadError(f"bad color {p!r} in heatmap color list {spec!r}")
        out.append(c)
    return _freeze(np.asarray(out, dtype=np.uint8))


def _ensure_rgba_u8(img: pyvips.Image) -> pyvips.Image:
    """
    Ensure image is u8 RGBA.
    - Grayscale (+alpha) -> replicate into RGB
    - no alpha -> opaque alpha band
    """
    if img.format != "uchar":
        img = img.colourspace("srgb") if img.format == "ushort" else img.cast("uchar")

    b = img.bands
    if b == 1:
        img = img.bandjoin([img, img])
    elif b == 2:
        g = img.extract_band(0)
        a = img.extract_band(1)
        return g.bandjoin([g, g, a])
    elif b > 4:
        return img.extract_band(0, n=4)

    if img.bands == 3:
        img = img.bandjoin(255)
    return img


def ramp_from_image(path: Union[str, Path]) -> np.ndarray:
    """
    Read a gradient strip. The ramp runs along the image's longer axis,
    sampled through the middle of the shorter one.
    """
    try:
        img = pyvips.Image.new_from_file(str(path), access="random")
        img = _ensure_rgba_u8(img)
        W, H = img.width, img.height
        if W >= H:
            line = img.crop(0, H // 2, W, 1)
        else:
            line = img.crop(W // 2, 0, 1, H)
        mem = line.write_to_memory()
    except pyvips.Error as e:
        raise RampLoadError(f"failed to read heatmap image '{path}': {e}") from e

    arr = np.frombuffer(mem, dtype=np.uint8)
    if arr.size == 0 or arr.size % 4 != 0:
        raise RampLoadError(f"heatmap image '{path}' has no usable pixels")
    return _freeze(arr.reshape(-1, 4))

# ---------------------------------------------------------------------------
# Gamma
# ---------------------------------------------------------------------------

def apply_gamma(ramp: np.ndarray, gamma: float) -> np.ndarray:
    """
    c' = 255 * (c/255) ** (1/gamma) on RGB, alpha untouched.
    gamma == 1 returns the ramp unchanged.
    """
    try:
        gamma = float(gamma)
    except (TypeError, ValueError) as e:
        raise RampLoadError(f"invalid gamma {gamma!r}") from e
    if not math.isfinite(gamma) or gamma <= 0.0:
        raise RampLoadError(f"invalid gamma {gamma!r}: must be finite and > 0")
    if gamma == 1.0:
        return ramp

    out = np.array(ramp, dtype=np.float64)
    out[:, :3] = 255.0 * (out[:, :3] / 255.0) ** (1.0 / gamma)
    return _freeze(np.clip(np.rint(out), 0, 255).astype(np.uint8))


def load_heatmap(source: Union[str, Path], gamma: float = DEFAULT_GAMMA) -> np.ndarray:
    """
    Load a color ramp as a read-only (n,4) uint8 RGBA array, n >= 1.

    `source` is either a gradient image readable by libvips, or an inline
    colon-separated color list such as "black:firebrick:gold:white".
    """
    s = str(source).strip()
    if not s:
        raise RampLoadError("no heatmap source given")
    p = Path(s)
    if p.is_file():
        ramp = ramp_from_image(p)
    elif p.suffix and not p.exists() and ":" not in s:
        raise RampLoadError(f"heatmap file not found: '{s}'")
    else:
        ramp = ramp_from_spec(s)
    return apply_gamma(ramp, gamma)
