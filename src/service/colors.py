"""Colour palette helpers for analysis records."""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

import numpy as np

MIN_PALETTE_SIZE = 3
MAX_PALETTE_SIZE = 5

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{6}|[0-9a-fA-F]{3})$")


def normalize_hex_color(raw: object) -> Optional[str]:
    """Return ``#RRGGBB`` for a hex colour string, or ``None`` when invalid."""
    if not isinstance(raw, str):
        return None
    match = _HEX_RE.match(raw.strip())
    if not match:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits.upper()}"


def normalize_palette(colors: Iterable[object]) -> List[str]:
    """Keep valid, distinct colours in order, at most five."""
    palette: List[str] = []
    for raw in colors:
        color = normalize_hex_color(raw)
        if color is None or color in palette:
            continue
        palette.append(color)
        if len(palette) == MAX_PALETTE_SIZE:
            break
    return palette


def rgb_to_hex(rgb: Sequence[float]) -> str:
    r, g, b = (int(np.clip(round(float(value)), 0, 255)) for value in rgb[:3])
    return f"#{r:02X}{g:02X}{b:02X}"


def compute_luma(rgb: Sequence[float]) -> float:
    r, g, b = (float(value) for value in rgb[:3])
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


__all__ = [
    "MAX_PALETTE_SIZE",
    "MIN_PALETTE_SIZE",
    "compute_luma",
    "normalize_hex_color",
    "normalize_palette",
    "rgb_to_hex",
]
