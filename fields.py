"""
fields.py

Example scalar fields for the renderer, plus the resolver the CLI uses to
turn a --field argument into a callable.

A field factory takes the grid size and returns `field(x, y) -> float`:

    FIELDS["dipole"](800, 600)(400, 300)

--field accepts:
    - a registered name           dipole
    - module:factory              mypkg.fields:vortex     (called with width, height)
    - an expression in x, y       sin(x/20) * cos(y/20)
      with w, h (grid size), cx, cy (grid center) and everything in `math`.
"""

import math
import importlib
from typing import Callable

Field = Callable[[int, int], float]
FieldFactory = Callable[[int, int], Field]

# ---------------------------------------------------------------------------
# Built-in fields
# ---------------------------------------------------------------------------

def _softened(r2: float, scale: float) -> float:
    # keeps the singularity at a charge finite; one pixel of softening
    return math.sqrt(r2 + 1.0) / scale


def charge(width: int, height: int) -> Field:
    """|potential| of a unit point charge at the center."""
    cx, cy = (width - 1) / 2.0, (height - 1) / 2.0
    scale = float(max(width, height))

    def field(x, y):
        r2 = (x - cx) ** 2 + (y - cy) ** 2
        return 1.0 / _softened(r2, scale)

    return field


def dipole(width: int, height: int) -> Field:
    """|potential| of a +q/-q pair placed on the horizontal center line."""
    cy = (height - 1) / 2.0
    xa, xb = width / 3.0, 2.0 * width / 3.0
    scale = float(max(width, height))

    def field(x, y):
        ra = _softened((x - xa) ** 2 + (y - cy) ** 2, scale)
        rb = _softened((x - xb) ** 2 + (y - cy) ** 2, scale)
        return abs(1.0 / ra - 1.0 / rb)

    return field


def ripple(width: int, height: int) -> Field:
    cx, cy = (width - 1) / 2.0, (height - 1) / 2.0
    k = 2.0 * math.pi * 8.0 / max(width, height)

    def field(x, y):
        r = math.hypot(x - cx, y - cy)
        return math.cos(k * r) / (1.0 + 0.02 * k * r)

    return field


def gradient(width: int, height: int) -> Field:
    def field(x, y):
        return x + y

    return field


FIELDS: dict[str, FieldFactory] = {
    "charge": charge,
    "dipole": dipole,
    "ripple": ripple,
    "gradient": gradient,
}

# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

_MATH_NS = {k: getattr(math, k) for k in dir(math) if not k.startswith("_")}
_MATH_NS["abs"] = abs
_MATH_NS["min"] = min
_MATH_NS["max"] = max


def expression_field(expr: str, width: int, height: int) -> Field:
    try:
        code = compile(expr, "<field>", "eval")
    except SyntaxError as e:
        raise ValueError(f"bad field expression {expr!r}: {e.msg}") from e

    allowed = set(_MATH_NS) | {"x", "y", "w", "h", "cx", "cy"}
    unknown = [n for n in code.co_names if n not in allowed]
    if unknown:
        raise ValueError(f"unknown names in field expression {expr!r}: {', '.join(unknown)}")

    env = dict(_MATH_NS)
    env.update(w=width, h=height, cx=(width - 1) / 2.0, cy=(height - 1) / 2.0)
    env["__builtins__"] = {}

    def field(x, y):
        return float(eval(code, env, {"x": x, "y": y}))

    return field


def _import_factory(spec: str) -> FieldFactory:
    mod_name, _, attr = spec.partition(":")
    try:
        mod = importlib.import_module(mod_name)
    except ImportError as e:
        raise ValueError(f"cannot import field module '{mod_name}': {e}") from e
    obj = mod
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ValueError(f"'{mod_name}' has no attribute '{attr}'") from e
    if not callable(obj):
        raise ValueError(f"'{spec}' is not callable")
    return obj


def resolve_field(spec: str, width: int, height: int) -> Field:
    s = spec.strip()
    if not s:
        raise ValueError("empty field spec")
    if s in FIELDS:
        return FIELDS[s](width, height)
    mod, sep, attr = s.partition(":")
    if sep and mod.replace(".", "").replace("_", "").isalnum() and attr.replace(".", "_").isidentifier():
        return _import_factory(s)(width, height)
    return expression_field(s, width, height)
