"""
Tests for the volume ray-caster.
"""

import numpy as np
import pytest

from core.base import Volume
from core.dto import RayCastParamsDTO
from processors.raycast import render_volume, transfer_function, view_basis


def uniform_cube(value, n=8):
    return Volume(samples=np.full((n, n, n), value, dtype=np.int16))


PARAMS = RayCastParamsDTO(width=16, height=16, window_center=40.0, window_width=400.0)


def test_air_is_transparent():
    image = render_volume(uniform_cube(-1024), PARAMS)
    assert image.rgba.shape == (16, 16, 4)
    assert float(image.rgba[..., 3].max()) == 0.0


def test_bone_cube_terminates_early():
    image = render_volume(uniform_cube(1000), PARAMS)
    # Four samples at alpha 0.6 cross the 0.95 termination threshold
    assert image.rgba[8, 8, 3] == pytest.approx(1.0 - 0.4 ** 4, abs=1e-5)
    assert image.rgba[0, 0, 3] == 0.0
    assert image.step_mm == 1.0
    assert image.steps == int(np.ceil(np.linalg.norm([7.0, 7.0, 7.0]))) + 1


def test_color_is_bone_band():
    image = render_volume(uniform_cube(1000), PARAMS)
    rgb = image.rgba[8, 8, :3]
    np.testing.assert_allclose(rgb / image.rgba[8, 8, 3], [1.0, 1.0, 0.95], atol=1e-5)


def test_quarter_turn_of_symmetric_cube():
    cube = uniform_cube(1000)
    a = render_volume(cube, PARAMS)
    b = render_volume(cube, RayCastParamsDTO(width=16, height=16, rotation_deg=90.0,
                                             window_center=40.0, window_width=400.0))
    np.testing.assert_allclose(a.rgba, b.rgba, atol=1e-6)
    assert b.rotation_deg == 90.0


def test_progress_callback_completes():
    calls = []
    render_volume(uniform_cube(0, n=4), RayCastParamsDTO(width=4, height=4), callback=lambda p, m: calls.append(p))
    assert calls[-1] == 100


@pytest.mark.parametrize("angle", [0.0, 30.0, 90.0, 200.0])
def test_view_basis_is_orthonormal(angle):
    direction, right, up = view_basis(angle)
    basis = np.stack([direction, right, up])
    np.testing.assert_allclose(basis @ basis.T, np.eye(3), atol=1e-12)
    np.testing.assert_allclose(up, [0.0, 0.0, 1.0], atol=1e-12)


def test_view_basis_front():
    direction, right, _ = view_basis(0.0)
    np.testing.assert_allclose(direction, [0.0, 1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(right, [1.0, 0.0, 0.0], atol=1e-12)


def test_transfer_function_bands():
    hu = np.array([-2000.0, -1024.0, -200.0, 0.0, 1000.0, 5000.0])
    rgb, alpha = transfer_function(hu, np.ones_like(hu))
    np.testing.assert_allclose(alpha, [0.0, 0.0, 0.02, 0.08, 0.6, 0.0])
    np.testing.assert_allclose(rgb[3], [0.9, 0.4, 0.3])
    np.testing.assert_allclose(rgb[0], [0.0, 0.0, 0.0])


def test_transfer_function_scales_with_window():
    hu = np.array([0.0, 0.0])
    _, alpha = transfer_function(hu, np.array([0.5, 0.0]))
    np.testing.assert_allclose(alpha, [0.04, 0.0])
