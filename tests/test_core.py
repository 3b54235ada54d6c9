import unittest
import numpy as np

from core import Contour, ROIStructure, StructureSet, Volume


class TestVolume(unittest.TestCase):
    def test_initialization(self):
        data = np.zeros((4, 3, 2))
        vol = Volume(samples=data, spacing_mm=(1.0, 2.0, 3.0), origin_mm=(-1, 0, 5))
        self.assertEqual(vol.samples.dtype, np.int16)
        self.assertEqual(vol.dimensions, (2, 3, 4))
        self.assertEqual(vol.physical_size_mm, (2.0, 6.0, 12.0))
        self.assertEqual(vol.max_corner_mm, (0.0, 4.0, 14.0))
        self.assertEqual(vol.center_mm, (-0.5, 2.0, 9.5))

    def test_caller_buffer_is_not_aliased(self):
        data = np.zeros((2, 2, 2), dtype=np.int16)
        vol = Volume(samples=data)
        data[0, 0, 0] = 9
        self.assertEqual(int(vol.samples[0, 0, 0]), 0)
        self.assertFalse(vol.samples.flags.writeable)

    def test_rejects_non_3d(self):
        with self.assertRaises(ValueError):
            Volume(samples=np.zeros((3, 3)))

    def test_statistics(self):
        vol = Volume(samples=np.arange(8).reshape(2, 2, 2))
        stats = vol.statistics()
        self.assertEqual(stats["min"], 0.0)
        self.assertEqual(stats["max"], 7.0)
        self.assertAlmostEqual(stats["mean"], 3.5)

    def test_flat_samples_x_fastest(self):
        vol = Volume(samples=np.arange(24).reshape(2, 3, 4))
        self.assertEqual(int(vol.flat_samples[1]), int(vol.samples[0, 0, 1]))
        self.assertEqual(int(vol.flat_samples[4]), int(vol.samples[0, 1, 0]))


class TestStructures(unittest.TestCase):
    def test_contour_flat_axis(self):
        pts = [[3.0, 0.0, 0.0], [3.0, 1.0, 0.0], [3.0, 1.0, 1.0], [3.0, 0.0, 1.0]]
        contour = Contour.from_points(pts)
        self.assertEqual(contour.native_axis, 0)
        self.assertEqual(contour.slice_position_mm, 3.0)
        self.assertEqual(len(contour), 4)

    def test_structure_set_lookup(self):
        liver = ROIStructure(name="Liver", display_color=(0.6, 0.3, 0.0))
        structure_set = StructureSet(structures=(liver,))
        self.assertIs(structure_set.get(" LIVER "), liver)
        self.assertIsNone(structure_set.get("Heart"))
        self.assertEqual(len(structure_set), 1)

    def test_contours_near(self):
        contours = tuple(Contour.from_points([[0, 0, z], [1, 0, z], [1, 1, z]]) for z in (0.0, 2.0, 4.0))
        roi = ROIStructure(name="Body", display_color=(0.0, 1.0, 0.0), contours=contours)
        near = roi.contours_near(3.0, tolerance_mm=1.0)
        self.assertEqual([c.slice_position_mm for c in near], [2.0, 4.0])


if __name__ == '__main__':
    unittest.main()
