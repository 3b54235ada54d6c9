"""
Unit tests for DICOM loaders.
"""

import unittest

import numpy as np
import pytest

from core.errors import EmptyInput
from loaders.dicom import DicomSeriesLoader, _find_dicom_files, _natural_sort_key

from dicom_builders import image_file, implicit, part10, rtstruct_file, square, text


class TestNaturalSortKey(unittest.TestCase):
    """Test natural sorting function for filenames."""

    def test_numeric_sorting(self):
        """Test that numeric parts are sorted numerically, not lexicographically."""
        files = ['img_1.dcm', 'img_10.dcm', 'img_2.dcm', 'img_20.dcm', 'img_3.dcm']
        sorted_files = sorted(files, key=_natural_sort_key)
        expected = ['img_1.dcm', 'img_2.dcm', 'img_3.dcm', 'img_10.dcm', 'img_20.dcm']
        self.assertEqual(sorted_files, expected)

    def test_case_insensitive(self):
        """Test that sorting is case-insensitive."""
        files = ['IMG_1.dcm', 'img_2.dcm', 'Img_3.dcm']
        sorted_files = sorted(files, key=_natural_sort_key)
        expected = ['IMG_1.dcm', 'img_2.dcm', 'Img_3.dcm']
        self.assertEqual(sorted_files, expected)

    def test_mixed_format(self):
        """Test various filename formats."""
        files = ['slice001.dcm', 'slice010.dcm', 'slice002.dcm']
        sorted_files = sorted(files, key=_natural_sort_key)
        expected = ['slice001.dcm', 'slice002.dcm', 'slice010.dcm']
        self.assertEqual(sorted_files, expected)

    def test_pure_numbers(self):
        """Test files named with just numbers."""
        files = ['1', '10', '2', '20', '100']
        sorted_files = sorted(files, key=_natural_sort_key)
        expected = ['1', '2', '10', '20', '100']
        self.assertEqual(sorted_files, expected)


class TestLoaderInitialization(unittest.TestCase):
    def test_loader_initialization(self):
        """Test that loaders can be instantiated with default args."""
        loader1 = DicomSeriesLoader()
        self.assertEqual(loader1.max_workers, 4)
        self.assertTrue(loader1.validate_structures)

        loader2 = DicomSeriesLoader(max_workers=0, validate_structures=False)
        self.assertEqual(loader2.max_workers, 1)
        self.assertFalse(loader2.validate_structures)


def _write_series(folder, z_values=(4.0, 0.0, 2.0)):
    for i, z in enumerate(z_values, start=1):
        pixels = np.full((4, 5), int(z) * 10, dtype=np.int16)
        (folder / f"img_{i}.dcm").write_bytes(image_file(pixels, position=(0.0, 0.0, z), spacing=(0.5, 0.5)))


@pytest.fixture
def series_dir(tmp_path):
    _write_series(tmp_path)
    rois = [{"number": 1, "name": "Body", "color": (0, 255, 0), "contours": [square(0.0), square(2.0)]}]
    (tmp_path / "rs.dcm").write_bytes(rtstruct_file(rois))
    (tmp_path / "broken.dcm").write_bytes(b"\x00" * 40)
    (tmp_path / "report.dcm").write_bytes(part10(implicit(0x0008, 0x0060, text("SR"))))
    return tmp_path


def test_load_series_with_structures(series_dir):
    progress = []
    study = DicomSeriesLoader(max_workers=2).load(str(series_dir), lambda p, m: progress.append(p))

    volume = study.volume
    assert volume.dimensions == (5, 4, 3)
    assert volume.spacing_mm == (0.5, 0.5, 2.0)
    assert volume.origin_mm == (0.0, 0.0, 0.0)
    np.testing.assert_array_equal(volume.samples[:, 0, 0], [0, 20, 40])

    assert study.has_structures
    body = study.structure_set.get("Body")
    assert body.display_color == (0.0, 1.0, 0.0)
    assert len(body.contours) == 2
    assert study.structure_report["ok"]

    reasons = {path.rsplit("/", 1)[-1].rsplit("\\", 1)[-1]: reason for path, reason in study.skipped}
    assert set(reasons) == {"broken.dcm", "report.dcm"}
    assert reasons["broken.dcm"].startswith("InvalidFormat")
    assert reasons["report.dcm"] == "no pixel data"

    assert progress[0] == 0
    assert progress[-1] == 100


def test_extra_structure_set_is_skipped(series_dir):
    (series_dir / "rs_2.dcm").write_bytes(rtstruct_file([{"number": 1, "name": "Other", "color": None}]))
    study = DicomSeriesLoader().load(str(series_dir))
    assert study.structure_set.get("Body") is not None
    assert any(reason == "additional structure set" for _, reason in study.skipped)


def test_malformed_contour_count_keeps_structure_set(tmp_path):
    _write_series(tmp_path, z_values=(0.0, 2.0))
    rois = [{"number": 1, "name": "Body", "color": None, "contours": [square(0.0), square(2.0)], "counts": ["4", "x"]}]
    (tmp_path / "rs.dcm").write_bytes(rtstruct_file(rois))

    study = DicomSeriesLoader().load(str(tmp_path))
    assert study.structure_set is not None
    assert len(study.structure_set.get("Body").contours) == 2
    assert study.skipped == []
    assert any("contour 1" in w for w in study.structure_report["warnings"])


def test_files_without_extension_use_magic(tmp_path):
    (tmp_path / "IM0002").write_bytes(image_file(np.zeros((2, 2), dtype=np.int16), position=(0, 0, 1)))
    (tmp_path / "IM0001").write_bytes(image_file(np.zeros((2, 2), dtype=np.int16), position=(0, 0, 0)))
    (tmp_path / "notes.txt").write_text("not an image")
    files = _find_dicom_files(str(tmp_path))
    assert [f.rsplit("IM", 1)[-1] for f in files] == ["0001", "0002"]
    study = DicomSeriesLoader().load(str(tmp_path))
    assert study.volume.dimensions == (2, 2, 2)
    assert study.structure_set is None


def test_folder_without_images(tmp_path):
    (tmp_path / "rs.dcm").write_bytes(rtstruct_file([{"number": 1, "name": "Body", "color": None}]))
    with pytest.raises(EmptyInput):
        DicomSeriesLoader().load(str(tmp_path))


def test_missing_folder(tmp_path):
    with pytest.raises(FileNotFoundError):
        DicomSeriesLoader().load(str(tmp_path / "nope"))


if __name__ == '__main__':
    unittest.main()
