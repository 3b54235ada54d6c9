"""
Linear contrast windowing.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from config import WINDOW_MIN_WIDTH, WINDOW_PRESETS


def apply_window(values, center: float, width: float) -> np.ndarray:
    """
    clamp((v - (center - width/2)) / width, 0, 1) as float32.

    Widths at or below WINDOW_MIN_WIDTH become a hard threshold at ``center``.
    """
    w = max(float(width), WINDOW_MIN_WIDTH)
    low = float(center) - w / 2.0
    out = (np.asarray(values, dtype=np.float64) - low) / w
    return np.clip(out, 0.0, 1.0).astype(np.float32)


def window_preset(name: str) -> Tuple[float, float]:
    """(center, width) for a named preset, e.g. "bone" or "Soft Tissue"."""
    key = name.strip().lower().replace(" ", "_")
    try:
        return WINDOW_PRESETS[key]
    except KeyError:
        raise ValueError(
            f"Unknown window preset {name!r}; available: {', '.join(sorted(WINDOW_PRESETS))}"
        ) from None


def window_for_range(min_hu: float, max_hu: float) -> Tuple[float, float]:
    """(center, width) that spans [min_hu, max_hu]."""
    if max_hu < min_hu:
        raise ValueError(f"Empty HU range: {min_hu} > {max_hu}")
    return ((float(min_hu) + float(max_hu)) / 2.0, float(max_hu) - float(min_hu))


def to_rgba(gray: np.ndarray) -> np.ndarray:
    """Replicate a [0, 1] grayscale field into (H, W, 4) RGBA with opaque alpha."""
    g = np.asarray(gray, dtype=np.float32)
    rgba = np.empty(g.shape + (4,), dtype=np.float32)
    rgba[..., 0] = g
    rgba[..., 1] = g
    rgba[..., 2] = g
    rgba[..., 3] = 1.0
    return rgba
