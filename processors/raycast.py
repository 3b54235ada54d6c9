"""
Front-to-back volume ray-caster.

Orthographic camera: a front view (rays along +y, image right = +x, image up
= +z) rotated about the z axis. Each sample goes through the same trilinear
lookup and windowing as the MPR path, then through a piecewise tissue
transfer function keyed on HU bands.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from config import TRANSFER_FUNCTION_BANDS
from core.base import Volume
from core.dto import RayCastParamsDTO
from processors.mpr import TRILINEAR, sample_voxels
from processors.windowing import apply_window

logger = logging.getLogger(__name__)

Band = Tuple[float, float, Tuple[float, float, float], float]


@dataclass(frozen=True, eq=False)
class RenderedImage:
    """Composited color field: ``rgba`` has shape (height, width, 4) in [0, 1]."""
    rgba: np.ndarray
    rotation_deg: float
    step_mm: float
    steps: int

    @property
    def width(self) -> int:
        return int(self.rgba.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgba.shape[0])


def view_basis(rotation_deg: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """(ray direction, image right, image up) after rotating the front view about z."""
    rot = Rotation.from_euler("z", float(rotation_deg), degrees=True)
    direction, right, up = rot.apply(np.array([
        [0.0, 1.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0],
    ]))
    return direction, right, up


def transfer_function(
    hu: np.ndarray,
    windowed: np.ndarray,
    bands: Sequence[Band] = TRANSFER_FUNCTION_BANDS,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Map HU + windowed value to (rgb, alpha).

    The first band with hu_min <= hu < hu_max applies; color and opacity are
    scaled by the windowed value. Values outside every band are transparent.
    """
    rgb = np.zeros(hu.shape + (3,), dtype=np.float64)
    alpha = np.zeros(hu.shape, dtype=np.float64)
    assigned = np.zeros(hu.shape, dtype=bool)
    for lo, hi, color, opacity in bands:
        mask = ~assigned & (hu >= lo) & (hu < hi)
        if not np.any(mask):
            continue
        rgb[mask] = np.asarray(color, dtype=np.float64) * windowed[mask][:, None]
        alpha[mask] = float(opacity) * windowed[mask]
        assigned |= mask
    return rgb, alpha


def render_volume(
    volume: Volume,
    params: Optional[RayCastParamsDTO] = None,
    bands: Sequence[Band] = TRANSFER_FUNCTION_BANDS,
    callback: Optional[Callable[[int, str], None]] = None,
) -> RenderedImage:
    """
    Ray-cast the whole volume.

    Samples that fall outside the volume are skipped. A ray stops once its
    accumulated opacity reaches ``params.termination_alpha``.
    """
    params = params or RayCastParamsDTO()
    width, height = max(int(params.width), 1), max(int(params.height), 1)

    spacing = np.asarray(volume.spacing_mm, dtype=np.float64)
    origin = np.asarray(volume.origin_mm, dtype=np.float64)
    dims = np.asarray(volume.dimensions, dtype=np.float64)
    hi = dims - 1.0
    center = np.asarray(volume.center_mm, dtype=np.float64)

    diameter = max(float(np.linalg.norm(hi * np.abs(spacing))), float(np.min(np.abs(spacing))))
    step = float(params.step_mm) if params.step_mm else float(np.min(np.abs(spacing)))
    step = max(step, 1e-3)
    n_steps = int(math.ceil(diameter / step)) + 1

    direction, right, up = view_basis(params.rotation_deg)
    pixel = diameter / max(width, height)
    cols = (np.arange(width) + 0.5 - width / 2.0) * pixel
    rows = (height / 2.0 - (np.arange(height) + 0.5)) * pixel
    cc, rr = np.meshgrid(cols, rows)
    starts = (
        center
        + cc.reshape(-1, 1) * right
        + rr.reshape(-1, 1) * up
        - direction * (diameter / 2.0)
    )

    n_rays = starts.shape[0]
    color = np.zeros((n_rays, 3), dtype=np.float64)
    accum = np.zeros(n_rays, dtype=np.float64)
    active = np.ones(n_rays, dtype=bool)

    for k in range(n_steps):
        idx = np.nonzero(active)[0]
        if idx.size == 0:
            break
        pos = starts[idx] + direction * (k * step)
        voxel = (pos - origin) / spacing
        inside = np.all((voxel >= 0.0) & (voxel <= hi), axis=1)
        if not np.any(inside):
            continue
        idx = idx[inside]

        hu = sample_voxels(volume, voxel[inside], TRILINEAR)
        windowed = apply_window(hu, params.window_center, params.window_width).astype(np.float64)
        rgb, a = transfer_function(hu, windowed, bands)

        weight = a * (1.0 - accum[idx])
        color[idx] += rgb * weight[:, None]
        accum[idx] += weight
        active[idx] = accum[idx] < params.termination_alpha

        if callback and k % 32 == 0:
            callback(int(100 * k / n_steps), f"Ray step {k}/{n_steps}")

    rgba = np.empty((height, width, 4), dtype=np.float32)
    rgba[..., :3] = np.clip(color, 0.0, 1.0).reshape(height, width, 3)
    rgba[..., 3] = np.clip(accum, 0.0, 1.0).reshape(height, width)

    logger.debug("Ray cast %dx%d, %d steps of %.3f mm, rotation %.1f deg",
                 width, height, n_steps, step, params.rotation_deg)
    if callback:
        callback(100, "Volume render complete.")
    return RenderedImage(rgba=rgba, rotation_deg=float(params.rotation_deg), step_mm=step, steps=n_steps)
