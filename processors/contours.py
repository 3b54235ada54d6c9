"""
Contour cross-sectioning.

Structures are authored as planar polygons on one native plane. To draw a
structure on another plane, every polygon edge that crosses the plane
contributes an interpolated point; the points are merged, then ordered by
angle around their centroid into a single closed outline.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

import numpy as np

from config import CONTOUR_DEDUP_THRESHOLD_MM, CONTOUR_SLICE_TOLERANCE_MM
from core.base import Contour, ROIStructure
from core.coordinates import PLANE_TABLE, Plane

logger = logging.getLogger(__name__)

MIN_POLYGON_POINTS = 3


def project_to_plane(points, plane: Plane) -> np.ndarray:
    """(N, 3) world points -> (N, 2) in-plane (u, v) coordinates in mm."""
    g = PLANE_TABLE[plane]
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return pts[:, [g.u_axis, g.v_axis]]


def _edge_crossings(contour: Contour, axis: int, target: float) -> List[np.ndarray]:
    pts = contour.points
    n = len(pts)
    if n < 2:
        return []

    starts = pts if contour.closed else pts[:-1]
    ends = np.roll(pts, -1, axis=0) if contour.closed else pts[1:]
    if contour.closed and n == 2:
        # Two points form a single edge; the wraparound would repeat it
        starts, ends = pts[:1], pts[1:]

    a1 = starts[:, axis]
    a2 = ends[:, axis]
    hit = (np.minimum(a1, a2) <= target) & (target <= np.maximum(a1, a2))

    found: List[np.ndarray] = []
    for i in np.nonzero(hit)[0]:
        p1, p2 = starts[i], ends[i]
        if a1[i] == a2[i]:
            # Edge lies in the plane
            found.append(p1.copy())
            found.append(p2.copy())
            continue
        t = min(1.0, max(0.0, (target - a1[i]) / (a2[i] - a1[i])))
        p = p1 + t * (p2 - p1)
        p[axis] = target
        found.append(p)
    return found


def deduplicate(points: List[np.ndarray], threshold_mm: float) -> np.ndarray:
    """Drop points closer than ``threshold_mm`` to an earlier kept point."""
    kept: List[np.ndarray] = []
    for p in points:
        if kept:
            dist = np.linalg.norm(np.asarray(kept) - p, axis=1)
            if np.any(dist < threshold_mm):
                continue
        kept.append(p)
    return np.asarray(kept, dtype=np.float64).reshape(-1, 3)


def order_by_angle(points: np.ndarray, plane: Plane) -> np.ndarray:
    """Sort points by ascending atan2(dv, du) around their in-plane centroid."""
    uv = project_to_plane(points, plane)
    centroid = uv.mean(axis=0)
    angles = np.arctan2(uv[:, 1] - centroid[1], uv[:, 0] - centroid[0])
    return points[np.argsort(angles, kind="stable")]


def cross_section(
    structure: ROIStructure,
    plane,
    depth_mm: float,
    dedup_threshold_mm: float = CONTOUR_DEDUP_THRESHOLD_MM,
) -> Optional[Contour]:
    """
    Closed polygon where ``structure`` meets ``plane`` at ``depth_mm``.

    Args:
        structure: Source structure.
        plane: Plane selector (enum, name or index).
        depth_mm: World coordinate on the plane's slice axis.
        dedup_threshold_mm: Merge distance for near-coincident crossings.

    Returns:
        Contour on the plane, or None when fewer than 3 distinct crossings
        exist (or the plane/depth is invalid).
    """
    resolved = Plane.coerce(plane)
    target = float(depth_mm)
    if resolved is None or not math.isfinite(target):
        return None
    axis = PLANE_TABLE[resolved].slice_axis

    crossings: List[np.ndarray] = []
    for contour in structure.contours:
        crossings.extend(_edge_crossings(contour, axis, target))

    unique = deduplicate(crossings, dedup_threshold_mm)
    if len(unique) < MIN_POLYGON_POINTS:
        return None

    return Contour(
        slice_position_mm=target,
        points=order_by_angle(unique, resolved),
        closed=True,
        geometric_type="CLOSED_PLANAR",
    )


def contours_for_plane(
    structure: ROIStructure,
    plane,
    depth_mm: float,
    tolerance_mm: float = CONTOUR_SLICE_TOLERANCE_MM,
    dedup_threshold_mm: float = CONTOUR_DEDUP_THRESHOLD_MM,
) -> List[Contour]:
    """
    Contours to draw for ``structure`` on a plane.

    On the structure's native plane the authored contours within
    ``tolerance_mm`` are returned unchanged; on any other plane the
    cross-section is synthesized.
    """
    resolved = Plane.coerce(plane)
    if resolved is None:
        return []
    axis = PLANE_TABLE[resolved].slice_axis

    native = [c for c in structure.contours if c.native_axis == axis]
    if native:
        return [c for c in native if abs(c.slice_position_mm - float(depth_mm)) <= tolerance_mm]

    section = cross_section(structure, resolved, depth_mm, dedup_threshold_mm)
    return [section] if section is not None else []
