"""
Coordinate authority for one loaded volume.

Single source of truth for mapping between world positions (mm), normalized
plane coordinates and viewport pixels. Viewport mapping is letterboxed so the
displayed image keeps its physical aspect ratio.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple, Union

import numpy as np

from config import DEFAULT_VIEWPORT, FOCUS_MIN_DELTA_MM
from core.base import ROIStructure, Volume
from core.coordinates import (
    PLANE_TABLE,
    Plane,
    Rect,
    letterbox_rect,
    plane_physical_size,
    world_xyz_to_index_zyx,
    world_xyz_to_voxel_zyx,
    voxel_zyx_to_world_xyz,
)
from core.focus import FocusPosition

logger = logging.getLogger(__name__)

PlaneSelector = Union[Plane, str, int, None]


class CoordinateAuthority:
    """
    Owns the FocusPosition and the active plane for one volume.

    All mapping methods are pure reads of the volume geometry plus a focus
    snapshot; only ``update_focus`` / ``set_slice_index`` mutate state.
    """

    def __init__(
        self,
        volume: Volume,
        active_plane: Plane = Plane.AXIAL,
        min_delta_mm: float = FOCUS_MIN_DELTA_MM,
    ) -> None:
        self.volume = volume
        self.dims = np.asarray(volume.dimensions, dtype=np.int64)
        self.spacing = np.asarray(volume.spacing_mm, dtype=np.float64)
        self.origin = np.asarray(volume.origin_mm, dtype=np.float64)
        self.min_delta_mm = float(min_delta_mm)
        self.active_plane = Plane.coerce(active_plane) or Plane.AXIAL

        far = self.origin + (self.dims - 1) * self.spacing
        self._lo = np.minimum(self.origin, far)
        self._hi = np.maximum(self.origin, far)
        self.focus = FocusPosition(volume.center_mm)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _plane(self, plane: PlaneSelector) -> Plane:
        return Plane.coerce(plane) or self.active_plane

    def set_active_plane(self, plane: PlaneSelector) -> Plane:
        resolved = Plane.coerce(plane)
        if resolved is not None:
            self.active_plane = resolved
        return self.active_plane

    @property
    def focus_position(self) -> Tuple[float, float, float]:
        return self.focus.position

    # ------------------------------------------------------------------
    # World <-> voxel <-> normalized
    # ------------------------------------------------------------------

    def world_to_voxel(self, world_xyz) -> Tuple[float, float, float]:
        """Fractional voxel coordinates (x, y, z)."""
        z, y, x = world_xyz_to_voxel_zyx(tuple(world_xyz), tuple(self.spacing), tuple(self.origin))
        return (x, y, z)

    def voxel_to_world(self, voxel_xyz) -> Tuple[float, float, float]:
        x, y, z = voxel_xyz
        return voxel_zyx_to_world_xyz(z, y, x, tuple(self.spacing), tuple(self.origin))

    def world_to_normalized(self, world_xyz) -> np.ndarray:
        """Per-axis position in [0, 1] across the voxel centers (inside the volume)."""
        pts = np.asarray(world_xyz, dtype=np.float64)
        extent = np.maximum(self.dims - 1, 1) * self.spacing
        return (pts - self.origin) / extent

    def normalized_to_world(self, normalized_xyz) -> np.ndarray:
        extent = np.maximum(self.dims - 1, 1) * self.spacing
        return self.origin + np.asarray(normalized_xyz, dtype=np.float64) * extent

    # ------------------------------------------------------------------
    # Plane / viewport
    # ------------------------------------------------------------------

    def plane_physical_size(self, plane: PlaneSelector = None) -> Tuple[float, float]:
        return plane_physical_size(self._plane(plane), tuple(self.dims), tuple(self.spacing))

    def image_rect(self, plane: PlaneSelector = None, viewport: Tuple[float, float] = DEFAULT_VIEWPORT) -> Rect:
        """Letterboxed image rectangle inside the viewport."""
        return letterbox_rect(viewport, self.plane_physical_size(plane))

    def _world_to_uv(self, points: np.ndarray, plane: Plane) -> Tuple[np.ndarray, np.ndarray]:
        g = PLANE_TABLE[plane]
        norm = self.world_to_normalized(points)
        u = norm[..., g.u_axis]
        v = norm[..., g.v_axis]
        if g.flip_v:
            v = 1.0 - v
        return u, v

    def world_to_screen(
        self,
        world_xyz,
        plane: PlaneSelector = None,
        viewport: Tuple[float, float] = DEFAULT_VIEWPORT,
    ) -> Tuple[float, float]:
        """Viewport pixel for a world position; the slice-axis coordinate is ignored."""
        resolved = self._plane(plane)
        rect = self.image_rect(resolved, viewport)
        u, v = self._world_to_uv(np.asarray(world_xyz, dtype=np.float64), resolved)
        return (float(rect.x + u * rect.width), float(rect.y + v * rect.height))

    def screen_to_world(
        self,
        point: Tuple[float, float],
        plane: PlaneSelector = None,
        viewport: Tuple[float, float] = DEFAULT_VIEWPORT,
    ) -> Optional[Tuple[float, float, float]]:
        """
        World position under a viewport pixel.

        Returns None when the pixel lies outside the letterboxed image. The
        slice-axis coordinate is taken from the current focus.
        """
        resolved = self._plane(plane)
        rect = self.image_rect(resolved, viewport)
        sx, sy = float(point[0]), float(point[1])
        if rect.width <= 0 or rect.height <= 0 or not rect.contains(sx, sy):
            return None

        g = PLANE_TABLE[resolved]
        u = (sx - rect.x) / rect.width
        v = (sy - rect.y) / rect.height
        if g.flip_v:
            v = 1.0 - v

        focus = self.focus.snapshot().position
        norm = self.world_to_normalized(focus)
        norm[g.u_axis] = u
        norm[g.v_axis] = v
        world = self.normalized_to_world(norm)
        world[g.slice_axis] = focus[g.slice_axis]
        return (float(world[0]), float(world[1]), float(world[2]))

    def project_polygon(
        self,
        points,
        plane: PlaneSelector = None,
        viewport: Tuple[float, float] = DEFAULT_VIEWPORT,
    ) -> np.ndarray:
        """Project (N, 3) world points to (N, 2) viewport pixels."""
        resolved = self._plane(plane)
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        rect = self.image_rect(resolved, viewport)
        u, v = self._world_to_uv(pts, resolved)
        return np.column_stack((rect.x + u * rect.width, rect.y + v * rect.height))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def clamp(self, world_xyz) -> np.ndarray:
        """Clamp a world position to the span of voxel centers."""
        return np.clip(np.asarray(world_xyz, dtype=np.float64), self._lo, self._hi)

    def update_focus(self, world_xyz) -> bool:
        """
        Move the focus (clamped to the volume).

        Returns:
            bool: False when the clamped move is shorter than the minimum delta.
        """
        target = self.clamp(world_xyz)
        current = np.asarray(self.focus.position)
        if np.linalg.norm(target - current) < self.min_delta_mm:
            return False
        snap = self.focus.set(tuple(target))
        logger.debug("Focus -> (%.2f, %.2f, %.2f) gen=%d", *snap.position, snap.generation)
        return True

    def center_on_structure(self, roi: ROIStructure) -> bool:
        """Move the focus to the mean of all contour points of ``roi``."""
        points = [c.points for c in roi.contours if len(c)]
        if not points:
            return False
        center = np.vstack(points).mean(axis=0)
        logger.info("Centering on %s at (%.1f, %.1f, %.1f)", roi.name, *center)
        return self.update_focus(center)

    def slice_count(self, plane: PlaneSelector = None) -> int:
        return int(self.dims[PLANE_TABLE[self._plane(plane)].slice_axis])

    def slice_index(self, plane: PlaneSelector = None) -> int:
        axis = PLANE_TABLE[self._plane(plane)].slice_axis
        index_zyx = world_xyz_to_index_zyx(self.focus.position, tuple(self.spacing), tuple(self.origin))
        idx = index_zyx[2 - axis]
        return max(0, min(int(self.dims[axis]) - 1, idx))

    def set_slice_index(self, index: int, plane: PlaneSelector = None) -> bool:
        axis = PLANE_TABLE[self._plane(plane)].slice_axis
        idx = max(0, min(int(self.dims[axis]) - 1, int(index)))
        target = np.asarray(self.focus.position, dtype=np.float64)
        target[axis] = self.origin[axis] + idx * self.spacing[axis]
        return self.update_focus(target)

    def step_slice(self, delta: int, plane: PlaneSelector = None) -> bool:
        return self.set_slice_index(self.slice_index(plane) + int(delta), plane)

    def depth_fraction(self, plane: PlaneSelector = None) -> float:
        """Focus position along the plane's slice axis, normalized to [0, 1]."""
        axis = PLANE_TABLE[self._plane(plane)].slice_axis
        if self.dims[axis] <= 1:
            return 0.5
        return float(self.world_to_normalized(self.focus.position)[axis])

    def depth_mm(self, plane: PlaneSelector = None) -> float:
        axis = PLANE_TABLE[self._plane(plane)].slice_axis
        return float(self.focus.position[axis])
