"""
Multiplanar reconstruction (MPR) sampler.

Produces windowed grayscale fields for axial, sagittal and coronal planes at
an arbitrary depth. Interpolation is shared with the ray-caster through
``sample_voxels``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from config import DEFAULT_INTERPOLATION, DEFAULT_WINDOW
from core.base import Volume
from core.coordinates import Plane, plane_image_shape, plane_uv_to_voxel_xyz
from core.dto import SliceRequestDTO
from processors.windowing import apply_window, to_rgba

logger = logging.getLogger(__name__)

NEAREST = "nearest"
TRILINEAR = "trilinear"
_MODE_ALIASES = {
    "nearest": NEAREST,
    "linear": TRILINEAR,
    "trilinear": TRILINEAR,
}


def resolve_interpolation(mode: str) -> str:
    """Canonical mode name; unknown names fall back to trilinear."""
    resolved = _MODE_ALIASES.get(str(mode).strip().lower())
    if resolved is None:
        logger.warning("Unknown interpolation %r, using %s", mode, TRILINEAR)
        return TRILINEAR
    return resolved


def sample_voxels(volume: Volume, coords_xyz, mode: str = TRILINEAR) -> np.ndarray:
    """
    Sample the volume at fractional voxel coordinates.

    Args:
        volume: Source volume.
        coords_xyz: Array (..., 3) of (x, y, z) voxel coordinates. Values are
            clamped to [0, dim - 1] per axis; NaN maps to 0.
        mode: "nearest" (round half up) or "trilinear".

    Returns:
        float64 array of shape coords_xyz.shape[:-1].
    """
    data = volume.samples
    nz, ny, nx = data.shape
    hi = np.array([nx - 1, ny - 1, nz - 1], dtype=np.float64)
    c = np.nan_to_num(np.asarray(coords_xyz, dtype=np.float64), nan=0.0)
    c = np.clip(c, 0.0, hi)

    if resolve_interpolation(mode) == NEAREST:
        idx = np.minimum(np.floor(c + 0.5), hi).astype(np.intp)
        return data[idx[..., 2], idx[..., 1], idx[..., 0]].astype(np.float64)

    base = np.floor(c)
    frac = c - base
    i0 = base.astype(np.intp)
    i1 = np.minimum(base + 1.0, hi).astype(np.intp)
    x0, y0, z0 = i0[..., 0], i0[..., 1], i0[..., 2]
    x1, y1, z1 = i1[..., 0], i1[..., 1], i1[..., 2]
    fx, fy, fz = frac[..., 0], frac[..., 1], frac[..., 2]

    def at(z, y, x):
        return data[z, y, x].astype(np.float64)

    # Blend along x, then y, then z
    c00 = at(z0, y0, x0) + (at(z0, y0, x1) - at(z0, y0, x0)) * fx
    c10 = at(z0, y1, x0) + (at(z0, y1, x1) - at(z0, y1, x0)) * fx
    c01 = at(z1, y0, x0) + (at(z1, y0, x1) - at(z1, y0, x0)) * fx
    c11 = at(z1, y1, x0) + (at(z1, y1, x1) - at(z1, y1, x0)) * fx
    c0 = c00 + (c10 - c00) * fy
    c1 = c01 + (c11 - c01) * fy
    return c0 + (c1 - c0) * fz


def sample_world(volume: Volume, world_xyz, mode: str = TRILINEAR) -> float:
    """HU value at a world position (mm)."""
    voxel = (np.asarray(world_xyz, dtype=np.float64) - np.asarray(volume.origin_mm)) / np.asarray(volume.spacing_mm)
    return float(sample_voxels(volume, voxel, mode))


@dataclass(frozen=True, eq=False)
class SliceImage:
    """
    Windowed plane image.

    ``pixels`` holds float32 values in [0, 1] with shape (height, width);
    ``hu`` holds the interpolated samples before windowing.
    """
    plane: Plane
    pixels: np.ndarray
    hu: np.ndarray
    depth_fraction: float
    window: Tuple[float, float]
    interpolation: str

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def rgba(self) -> np.ndarray:
        return to_rgba(self.pixels)


def _axis_positions(n: int) -> np.ndarray:
    if n <= 1:
        return np.zeros(max(n, 1), dtype=np.float64)
    return np.linspace(0.0, 1.0, n)


def sample_slice(
    volume: Volume,
    plane,
    depth_fraction: float,
    window_center: float = DEFAULT_WINDOW[0],
    window_width: float = DEFAULT_WINDOW[1],
    interpolation: str = DEFAULT_INTERPOLATION,
) -> SliceImage:
    """
    Resample one plane of the volume and window it.

    The output grid is dims[u] x dims[v] so every pixel center lands on a
    voxel center. Never raises for bad parameters: an unknown plane gives
    the axial center slice, a NaN depth gives 0.5, depths outside [0, 1] are
    clamped and a non-finite window uses the default.
    """
    resolved = Plane.coerce(plane)
    depth = float(depth_fraction) if depth_fraction is not None else math.nan
    if resolved is None:
        logger.warning("Invalid plane selector %r, falling back to axial center", plane)
        resolved, depth = Plane.AXIAL, 0.5
    if math.isnan(depth):
        depth = 0.5
    depth = min(1.0, max(0.0, depth))

    center, width = float(window_center), float(window_width)
    if not (math.isfinite(center) and math.isfinite(width)):
        logger.warning("Non-finite window (%r, %r), using default", window_center, window_width)
        center, width = DEFAULT_WINDOW

    mode = resolve_interpolation(interpolation)
    dims = volume.dimensions
    height, width_px = plane_image_shape(resolved, dims)
    uu, vv = np.meshgrid(_axis_positions(width_px), _axis_positions(height))
    coords = plane_uv_to_voxel_xyz(resolved, uu, vv, depth, dims)
    hu = sample_voxels(volume, coords, mode)

    return SliceImage(
        plane=resolved,
        pixels=apply_window(hu, center, width),
        hu=hu.astype(np.float32),
        depth_fraction=depth,
        window=(center, width),
        interpolation=mode,
    )


def sample_request(volume: Volume, request: SliceRequestDTO) -> SliceImage:
    return sample_slice(
        volume,
        request.plane,
        request.depth_fraction,
        request.window_center,
        request.window_width,
        request.interpolation,
    )
