"""
Unit tests for structure-set extraction and validation.
"""

import struct
import unittest

import numpy as np
import pytest

from core.errors import TypeMismatch
from loaders.dicom_codec import decode
from loaders.rtstruct import extract_structure_set, extract_structures, standard_color
from loaders.structure_validator import StructureSetValidator, is_structure_set

from dicom_builders import (
    EXPLICIT_LE,
    UNDEFINED,
    explicit,
    image_file,
    item,
    part10,
    rtstruct_file,
    sequence,
    square,
    text,
)

SEQ_DELIMITER = struct.pack("<HHI", 0xFFFE, 0xE0DD, 0)


def _two_rois():
    return [
        {"number": 1, "name": "Liver", "color": (255, 0, 0), "contours": [square(0.0), square(2.0)], "type": "ORGAN"},
        {"number": 2, "name": "PTV_high", "color": None, "contours": [square(4.0, half=2.0)], "type": "PTV"},
    ]


class TestExtraction(unittest.TestCase):
    def setUp(self):
        self.structure_set = extract_structure_set(decode(rtstruct_file(_two_rois())))

    def test_names_and_numbers(self):
        self.assertEqual([s.name for s in self.structure_set], ["Liver", "PTV_high"])
        self.assertEqual([s.number for s in self.structure_set], [1, 2])
        self.assertEqual(self.structure_set.label, "TEST")

    def test_display_color_is_normalized(self):
        self.assertEqual(self.structure_set.get("liver").display_color, (1.0, 0.0, 0.0))

    def test_missing_color_falls_back_to_standard_table(self):
        self.assertEqual(self.structure_set.get("PTV_high").display_color, standard_color("ptv"))

    def test_contour_points_and_slice_positions(self):
        liver = self.structure_set.get("Liver")
        self.assertEqual(len(liver.contours), 2)
        np.testing.assert_allclose(liver.contours[0].points, square(0.0))
        self.assertEqual([c.slice_position_mm for c in liver.contours], [0.0, 2.0])
        self.assertTrue(all(c.closed for c in liver.contours))
        self.assertEqual(liver.point_count, 8)
        self.assertEqual(liver.slice_range(), (0.0, 2.0))

    def test_interpreted_type(self):
        self.assertEqual(self.structure_set.get("PTV_high").interpreted_type, "PTV")

    def test_extract_structures_list(self):
        structures = extract_structures(decode(rtstruct_file(_two_rois())))
        self.assertEqual(len(structures), 2)

    def test_image_dataset_is_not_a_structure_set(self):
        ds = decode(image_file(np.zeros((2, 2), dtype=np.int16)))
        self.assertIsNone(extract_structure_set(ds))
        self.assertIsNone(extract_structures(ds))
        self.assertFalse(is_structure_set(ds))

    def test_defined_roi_without_contours_is_kept(self):
        rois = [{"number": 3, "name": "Heart", "color": None, "contours": []}]
        structure_set = extract_structure_set(decode(rtstruct_file(rois)))
        heart = structure_set.get("heart")
        self.assertIsNotNone(heart)
        self.assertEqual(heart.contours, ())
        self.assertIsNone(heart.slice_range())

    def test_malformed_contour_count_keeps_structures(self):
        rois = _two_rois()
        rois[0]["counts"] = ["4", "x"]
        structure_set = extract_structure_set(decode(rtstruct_file(rois)))
        self.assertEqual([s.name for s in structure_set], ["Liver", "PTV_high"])
        self.assertEqual(len(structure_set.get("Liver").contours), 2)

    def test_malformed_roi_reference_drops_only_that_contour_set(self):
        rois = _two_rois()
        rois[1]["ref"] = "x"
        structure_set = extract_structure_set(decode(rtstruct_file(rois)))
        liver = structure_set.get("Liver")
        self.assertEqual(len(liver.contours), 2)
        # Definition survives without its contours
        ptv = structure_set.get("PTV_high")
        self.assertIsNotNone(ptv)
        self.assertEqual(ptv.contours, ())


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Liver", (0.6, 0.3, 0.0)),
        ("  SPINAL CORD ", (1.0, 1.0, 0.0)),
        ("Left_Kidney", (0.8, 0.4, 0.2)),
        ("Unknown thing", (1.0, 0.0, 0.0)),
    ],
)
def test_standard_color(name, expected):
    assert standard_color(name) == expected


def _undefined_contour_sequence_file():
    definitions = [explicit(0x3006, 0x0022, "IS", text("1")) + explicit(0x3006, 0x0026, "LO", text("Liver"))]
    body = (
        explicit(0x0008, 0x0060, "CS", text("RTSTRUCT"))
        + sequence(0x3006, 0x0020, definitions)
        + explicit(0x3006, 0x0039, "SQ", b"", length=UNDEFINED)
        + item(explicit(0x3006, 0x0084, "IS", text("1")))
        + SEQ_DELIMITER
    )
    return part10(body, EXPLICIT_LE)


class TestValidator(unittest.TestCase):
    def test_valid_structure_set(self):
        report = StructureSetValidator().validate(decode(rtstruct_file(_two_rois())))
        self.assertTrue(report["ok"])
        self.assertEqual(report["error_count"], 0)
        self.assertEqual(report["warnings"], [])
        self.assertTrue(report["checks"]["modality"])

    def test_wrong_modality_is_error(self):
        report = StructureSetValidator().validate(decode(rtstruct_file(_two_rois(), modality="CT")))
        self.assertFalse(report["ok"])
        self.assertIn("expected 'RTSTRUCT'", report["errors"][0])

    def test_strict_mode_raises(self):
        ds = decode(rtstruct_file(_two_rois(), modality="CT"))
        with self.assertRaises(ValueError):
            StructureSetValidator(strict=True).validate(ds)

    def test_missing_uids_are_warnings(self):
        report = StructureSetValidator().validate(decode(rtstruct_file(_two_rois(), include_uids=False)))
        self.assertTrue(report["ok"])
        self.assertIn("SeriesInstanceUID missing", report["warnings"])
        self.assertIn("StudyInstanceUID missing", report["warnings"])

    def test_roi_without_contours_is_warning(self):
        rois = [{"number": 3, "name": "Heart", "color": None, "contours": []}]
        report = StructureSetValidator().validate(decode(rtstruct_file(rois)))
        self.assertIn("ROI 3: no contours", report["warnings"])

    def test_malformed_integers_are_warnings(self):
        rois = _two_rois()
        rois[0]["counts"] = ["4", "x"]
        rois[1]["ref"] = "x"
        report = StructureSetValidator().validate(decode(rtstruct_file(rois)))
        self.assertTrue(report["ok"])
        self.assertTrue(any(w.startswith("ROI 1 contour 1:") for w in report["warnings"]))
        self.assertTrue(any(w.startswith("ROI contour set 1:") for w in report["warnings"]))

    def test_undefined_length_sequence(self):
        ds = decode(_undefined_contour_sequence_file())
        self.assertTrue(is_structure_set(ds))

        report = StructureSetValidator().validate(ds)
        self.assertTrue(report["ok"])
        self.assertTrue(any("undefined length" in w for w in report["warnings"]))

        with self.assertRaises(TypeMismatch):
            extract_structure_set(ds)


if __name__ == "__main__":
    unittest.main()
