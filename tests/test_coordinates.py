import unittest
import numpy as np

from core.coordinates import (
    PLANE_TABLE,
    Plane,
    Rect,
    letterbox_rect,
    plane_image_shape,
    plane_physical_size,
    plane_uv_to_voxel_xyz,
    raw_zyx_to_grid_xyz,
    voxel_xyz_to_plane_uv,
    voxel_zyx_to_world_xyz,
    world_xyz_to_index_zyx,
    world_xyz_to_voxel_zyx,
)


class TestCoordinateConversions(unittest.TestCase):
    def test_raw_zyx_to_grid_xyz(self):
        raw = np.arange(2 * 3 * 4, dtype=np.int32).reshape(2, 3, 4)
        grid = raw_zyx_to_grid_xyz(raw)
        self.assertEqual(grid.shape, (4, 3, 2))
        self.assertEqual(grid[3, 2, 1], raw[1, 2, 3])

    def test_world_to_voxel_and_index_zyx(self):
        spacing = (2.0, 3.0, 4.0)
        origin = (10.0, 20.0, 30.0)
        world = (14.4, 23.2, 34.1)

        zf, yf, xf = world_xyz_to_voxel_zyx(world, spacing, origin)
        self.assertAlmostEqual(zf, (34.1 - 30.0) / 4.0)
        self.assertAlmostEqual(yf, (23.2 - 20.0) / 3.0)
        self.assertAlmostEqual(xf, (14.4 - 10.0) / 2.0)

        z, y, x = world_xyz_to_index_zyx(world, spacing, origin, rounding="round")
        self.assertEqual((z, y, x), (1, 1, 2))

        # Halves round up, not to even
        self.assertEqual(world_xyz_to_index_zyx((15.0, 20.0, 30.0), spacing, origin), (0, 0, 3))

    def test_voxel_to_world_inverse(self):
        spacing = (2.0, 3.0, 4.0)
        origin = (10.0, 20.0, 30.0)
        world = voxel_zyx_to_world_xyz(1.0, 2.0, 3.0, spacing, origin)
        self.assertEqual(world, (16.0, 26.0, 34.0))
        np.testing.assert_allclose(world_xyz_to_voxel_zyx(world, spacing, origin), (1.0, 2.0, 3.0))

    def test_zero_spacing_rejected(self):
        with self.assertRaises(ValueError):
            world_xyz_to_voxel_zyx((0, 0, 0), (1.0, 0.0, 1.0), (0, 0, 0))


class TestPlaneTable(unittest.TestCase):
    def test_axes_are_a_permutation(self):
        for plane, g in PLANE_TABLE.items():
            self.assertEqual(sorted((g.slice_axis, g.u_axis, g.v_axis)), [0, 1, 2], plane)

    def test_only_axial_keeps_row_order(self):
        self.assertFalse(Plane.AXIAL.geometry.flip_v)
        self.assertTrue(Plane.SAGITTAL.geometry.flip_v)
        self.assertTrue(Plane.CORONAL.geometry.flip_v)

    def test_coerce(self):
        self.assertIs(Plane.coerce("Sagittal"), Plane.SAGITTAL)
        self.assertIs(Plane.coerce(2), Plane.CORONAL)
        self.assertIs(Plane.coerce(Plane.AXIAL), Plane.AXIAL)
        self.assertIsNone(Plane.coerce("oblique"))
        self.assertIsNone(Plane.coerce(7))
        self.assertIsNone(Plane.coerce(True))
        self.assertIsNone(Plane.coerce(None))

    def test_image_shape_and_physical_size(self):
        dims = (20, 10, 5)
        spacing = (0.5, 1.0, 3.0)
        self.assertEqual(plane_image_shape(Plane.AXIAL, dims), (10, 20))
        self.assertEqual(plane_image_shape(Plane.SAGITTAL, dims), (5, 10))
        self.assertEqual(plane_image_shape(Plane.CORONAL, dims), (5, 20))
        self.assertEqual(plane_physical_size(Plane.AXIAL, dims, spacing), (10.0, 10.0))
        self.assertEqual(plane_physical_size(Plane.SAGITTAL, dims, spacing), (10.0, 15.0))
        self.assertEqual(plane_physical_size(Plane.CORONAL, dims, spacing), (10.0, 15.0))

    def test_uv_mapping_corners(self):
        dims = (5, 4, 3)
        axial = plane_uv_to_voxel_xyz(Plane.AXIAL, 1.0, 0.0, 0.5, dims)
        np.testing.assert_allclose(axial, [4.0, 0.0, 1.0])
        # Top row of a sagittal image is the superior end
        sagittal = plane_uv_to_voxel_xyz(Plane.SAGITTAL, 0.0, 0.0, 1.0, dims)
        np.testing.assert_allclose(sagittal, [4.0, 0.0, 2.0])

    def test_uv_round_trip(self):
        dims = (7, 6, 5)
        for plane in Plane:
            voxel = plane_uv_to_voxel_xyz(plane, 0.25, 0.75, 0.4, dims)
            u, v, depth = voxel_xyz_to_plane_uv(plane, voxel, dims)
            self.assertAlmostEqual(u, 0.25)
            self.assertAlmostEqual(v, 0.75)
            self.assertAlmostEqual(depth, 0.4)

    def test_uv_mapping_broadcasts(self):
        uu, vv = np.meshgrid(np.linspace(0, 1, 3), np.linspace(0, 1, 2))
        out = plane_uv_to_voxel_xyz(Plane.CORONAL, uu, vv, 0.0, (3, 4, 2))
        self.assertEqual(out.shape, (2, 3, 3))


class TestLetterbox(unittest.TestCase):
    def test_wide_viewport_pillarboxes(self):
        self.assertEqual(letterbox_rect((400, 300), (10.0, 10.0)), Rect(50.0, 0.0, 300.0, 300.0))

    def test_tall_image(self):
        rect = letterbox_rect((400, 300), (10.0, 15.0))
        self.assertEqual(rect, Rect(100.0, 0.0, 200.0, 300.0))

    def test_aspect_preserved(self):
        rect = letterbox_rect((640, 480), (300.0, 120.0))
        self.assertAlmostEqual(rect.width / rect.height, 300.0 / 120.0)
        self.assertLessEqual(rect.width, 640)
        self.assertLessEqual(rect.height, 480)

    def test_degenerate_physical_size(self):
        self.assertEqual(letterbox_rect((100, 50), (0.0, 10.0)), Rect(0.0, 0.0, 100.0, 50.0))

    def test_contains_is_inclusive(self):
        rect = Rect(10.0, 0.0, 20.0, 20.0)
        self.assertTrue(rect.contains(10.0, 0.0))
        self.assertTrue(rect.contains(30.0, 20.0))
        self.assertFalse(rect.contains(9.99, 5.0))


if __name__ == "__main__":
    unittest.main()
