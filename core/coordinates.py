"""
Coordinate conversion helpers for the project-wide 3D convention.

Convention:
- Raw voxel arrays use index order (z, y, x)
- World-space geometry uses axis order (x, y, z)
- Spacing/origin tuples are stored as (x, y, z)
- Plane images use normalized (u, v) in [0, 1] with v = 0 at the top row

Every component that needs to know how a plane maps onto the volume consults
``PLANE_TABLE`` instead of branching on the plane itself.
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional, Tuple, Union
import numpy as np


# ==========================================
# Plane table
# ==========================================

class PlaneGeometry(NamedTuple):
    slice_axis: int     # world axis held constant (0=x, 1=y, 2=z)
    u_axis: int         # world axis along image columns
    v_axis: int         # world axis along image rows
    flip_v: bool        # True when row 0 sits at the high end of v_axis


class Plane(Enum):
    AXIAL = "axial"
    SAGITTAL = "sagittal"
    CORONAL = "coronal"

    @property
    def geometry(self) -> PlaneGeometry:
        return PLANE_TABLE[self]

    @classmethod
    def coerce(cls, selector: Union["Plane", str, int, None]) -> Optional["Plane"]:
        """Resolve a plane from an enum, a name or an index; None if invalid."""
        if isinstance(selector, Plane):
            return selector
        if isinstance(selector, str):
            key = selector.strip().lower()
            for plane in cls:
                if plane.value == key:
                    return plane
            return None
        if isinstance(selector, (int, np.integer)) and not isinstance(selector, bool):
            members = list(cls)
            if 0 <= int(selector) < len(members):
                return members[int(selector)]
        return None


# Sagittal and coronal images put superior (+z) at the top.
PLANE_TABLE = {
    Plane.AXIAL:    PlaneGeometry(slice_axis=2, u_axis=0, v_axis=1, flip_v=False),
    Plane.SAGITTAL: PlaneGeometry(slice_axis=0, u_axis=1, v_axis=2, flip_v=True),
    Plane.CORONAL:  PlaneGeometry(slice_axis=1, u_axis=0, v_axis=2, flip_v=True),
}


def plane_image_shape(plane: Plane, dims_xyz: Tuple[int, int, int]) -> Tuple[int, int]:
    """Output (height, width) of a plane image sampled at voxel resolution."""
    g = PLANE_TABLE[plane]
    return (int(dims_xyz[g.v_axis]), int(dims_xyz[g.u_axis]))


def plane_physical_size(
    plane: Plane,
    dims_xyz: Tuple[int, int, int],
    spacing_xyz: Tuple[float, float, float],
) -> Tuple[float, float]:
    """Physical (width, height) in mm: pixel count x spacing per in-plane axis."""
    g = PLANE_TABLE[plane]
    return (
        float(dims_xyz[g.u_axis]) * float(spacing_xyz[g.u_axis]),
        float(dims_xyz[g.v_axis]) * float(spacing_xyz[g.v_axis]),
    )


def plane_uv_to_voxel_xyz(
    plane: Plane,
    u_norm,
    v_norm,
    depth_fraction: float,
    dims_xyz: Tuple[int, int, int],
) -> np.ndarray:
    """
    Map normalized plane coordinates to fractional voxel coordinates.

    Args:
        plane: Target plane.
        u_norm, v_norm: Scalars or broadcastable arrays in [0, 1].
        depth_fraction: Position along the slice axis in [0, 1].
        dims_xyz: Volume dimensions (nx, ny, nz).

    Returns:
        Array of shape (..., 3) holding (x, y, z) voxel coordinates.
    """
    g = PLANE_TABLE[plane]
    u = np.asarray(u_norm, dtype=np.float64)
    v = np.asarray(v_norm, dtype=np.float64)
    u, v = np.broadcast_arrays(u, v)
    if g.flip_v:
        v = 1.0 - v

    extent = np.maximum(np.asarray(dims_xyz, dtype=np.float64) - 1.0, 0.0)
    out = np.empty(u.shape + (3,), dtype=np.float64)
    out[..., g.u_axis] = u * extent[g.u_axis]
    out[..., g.v_axis] = v * extent[g.v_axis]
    out[..., g.slice_axis] = float(depth_fraction) * extent[g.slice_axis]
    return out


def voxel_xyz_to_plane_uv(
    plane: Plane,
    voxel_xyz,
    dims_xyz: Tuple[int, int, int],
) -> Tuple[float, float, float]:
    """Inverse of plane_uv_to_voxel_xyz: returns (u_norm, v_norm, depth_fraction)."""
    g = PLANE_TABLE[plane]
    extent = np.maximum(np.asarray(dims_xyz, dtype=np.float64) - 1.0, 1.0)
    norm = np.asarray(voxel_xyz, dtype=np.float64) / extent
    u = float(norm[g.u_axis])
    v = float(norm[g.v_axis])
    if g.flip_v:
        v = 1.0 - v
    return (u, v, float(norm[g.slice_axis]))


# ==========================================
# Letterboxing
# ==========================================

class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float

    def contains(self, px: float, py: float) -> bool:
        return (
            self.x <= px <= self.x + self.width
            and self.y <= py <= self.y + self.height
        )


def letterbox_rect(
    viewport: Tuple[float, float],
    physical_size: Tuple[float, float],
) -> Rect:
    """
    Largest centered rectangle inside ``viewport`` (width, height) with the
    aspect ratio of ``physical_size`` (width_mm, height_mm).
    """
    vw, vh = float(viewport[0]), float(viewport[1])
    pw, ph = float(physical_size[0]), float(physical_size[1])
    if vw <= 0 or vh <= 0:
        return Rect(0.0, 0.0, max(vw, 0.0), max(vh, 0.0))
    if pw <= 0 or ph <= 0:
        return Rect(0.0, 0.0, vw, vh)

    scale = min(vw / pw, vh / ph)
    width = pw * scale
    height = ph * scale
    return Rect((vw - width) / 2.0, (vh - height) / 2.0, width, height)


# ==========================================
# Voxel <-> world
# ==========================================

def raw_zyx_to_grid_xyz(raw_data: np.ndarray) -> np.ndarray:
    """
    Reorder a raw volume from (z, y, x) to (x, y, z) for VTK/PyVista grids.
    """
    arr = np.asarray(raw_data)
    if arr.ndim != 3:
        raise ValueError(f"Expected 3D volume, got shape={arr.shape}")
    return np.transpose(arr, (2, 1, 0))


def world_xyz_to_voxel_zyx(
    world_xyz: Tuple[float, float, float],
    spacing_xyz: Tuple[float, float, float],
    origin_xyz: Tuple[float, float, float],
) -> Tuple[float, float, float]:
    """
    Convert world coordinates (x, y, z) to fractional voxel indices (z, y, x).
    """
    xw, yw, zw = world_xyz
    sx, sy, sz = spacing_xyz
    ox, oy, oz = origin_xyz
    if abs(sx) < 1e-12 or abs(sy) < 1e-12 or abs(sz) < 1e-12:
        raise ValueError("Spacing components must be non-zero.")
    x_idx = (xw - ox) / sx
    y_idx = (yw - oy) / sy
    z_idx = (zw - oz) / sz
    return (z_idx, y_idx, x_idx)


def world_xyz_to_index_zyx(
    world_xyz: Tuple[float, float, float],
    spacing_xyz: Tuple[float, float, float],
    origin_xyz: Tuple[float, float, float],
    *,
    rounding: str = "round",
) -> Tuple[int, int, int]:
    """
    Convert world coordinates (x, y, z) to integer voxel indices (z, y, x).

    rounding:
    - "round" (default): nearest integer, halves round up like nearest sampling
    - "floor": floor toward -inf
    - "ceil": ceil toward +inf
    """
    zf, yf, xf = world_xyz_to_voxel_zyx(world_xyz, spacing_xyz, origin_xyz)

    mode = str(rounding).strip().lower()
    if mode == "round":
        return (int(np.floor(zf + 0.5)), int(np.floor(yf + 0.5)), int(np.floor(xf + 0.5)))
    if mode == "floor":
        return (int(np.floor(zf)), int(np.floor(yf)), int(np.floor(xf)))
    if mode == "ceil":
        return (int(np.ceil(zf)), int(np.ceil(yf)), int(np.ceil(xf)))
    raise ValueError(f"Unknown rounding mode: {rounding}")


def voxel_zyx_to_world_xyz(
    z_idx: float,
    y_idx: float,
    x_idx: float,
    spacing_xyz: Tuple[float, float, float],
    origin_xyz: Tuple[float, float, float],
) -> Tuple[float, float, float]:
    """
    Convert one voxel index triple (z, y, x) to one world coordinate (x, y, z).
    """
    sx, sy, sz = spacing_xyz
    ox, oy, oz = origin_xyz
    return (
        float(ox + x_idx * sx),
        float(oy + y_idx * sy),
        float(oz + z_idx * sz),
    )


__all__ = [
    "Plane",
    "PlaneGeometry",
    "PLANE_TABLE",
    "plane_image_shape",
    "plane_physical_size",
    "plane_uv_to_voxel_xyz",
    "voxel_xyz_to_plane_uv",
    "Rect",
    "letterbox_rect",
    "raw_zyx_to_grid_xyz",
    "world_xyz_to_voxel_zyx",
    "world_xyz_to_index_zyx",
    "voxel_zyx_to_world_xyz",
]
