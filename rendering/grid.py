"""
PyVista hand-off for the rendering backend.

Volumes become ImageData (point samples at voxel centers, VTK x-fastest
order); contours become closed polylines.
"""

from __future__ import annotations

import numpy as np
import pyvista as pv

from core.base import Contour, Volume
from core.coordinates import raw_zyx_to_grid_xyz


def volume_to_image_data(volume: Volume, name: str = "HU") -> pv.ImageData:
    """
    Create a PyVista ImageData object from an assembled volume.

    Samples are stored in project order (z, y, x) and converted to VTK axis
    order (x, y, z).
    """
    raw_xyz = raw_zyx_to_grid_xyz(volume.samples)

    grid = pv.ImageData()
    grid.dimensions = raw_xyz.shape
    grid.origin = volume.origin_mm
    grid.spacing = volume.spacing_mm
    grid.point_data[name] = np.ascontiguousarray(raw_xyz.ravel(order="F"))
    return grid


def contour_to_polydata(contour: Contour) -> pv.PolyData:
    """Polyline through the contour points, closed when the contour is."""
    pts = np.asarray(contour.points, dtype=np.float64)
    n = len(pts)
    if n == 0:
        return pv.PolyData()

    poly = pv.PolyData(pts)
    ids = list(range(n))
    if contour.closed and n > 2:
        ids.append(0)
    poly.lines = np.asarray([len(ids)] + ids, dtype=np.int64)
    return poly
