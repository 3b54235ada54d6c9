import numpy as np
import pytest

pv = pytest.importorskip("pyvista")

from core.base import Contour, Volume
from rendering.grid import contour_to_polydata, volume_to_image_data


def test_volume_to_image_data_keeps_x_fastest_order():
    samples = np.arange(2 * 3 * 4).reshape(2, 3, 4)
    volume = Volume(samples=samples, spacing_mm=(0.5, 1.0, 2.0), origin_mm=(1.0, 2.0, 3.0))
    grid = volume_to_image_data(volume)

    assert tuple(grid.dimensions) == (4, 3, 2)
    assert tuple(grid.spacing) == (0.5, 1.0, 2.0)
    assert tuple(grid.origin) == (1.0, 2.0, 3.0)
    np.testing.assert_array_equal(grid.point_data["HU"], volume.samples.ravel())


def test_closed_contour_polyline():
    contour = Contour.from_points([[0, 0, 1], [1, 0, 1], [1, 1, 1]])
    poly = contour_to_polydata(contour)
    assert poly.n_points == 3
    np.testing.assert_array_equal(poly.lines, [4, 0, 1, 2, 0])


def test_open_contour_polyline():
    contour = Contour.from_points([[0, 0, 1], [1, 0, 1], [1, 1, 1]], closed=False, geometric_type="OPEN_PLANAR")
    poly = contour_to_polydata(contour)
    np.testing.assert_array_equal(poly.lines, [3, 0, 1, 2])


def test_empty_contour():
    assert contour_to_polydata(Contour(0.0, np.zeros((0, 3)))).n_points == 0
